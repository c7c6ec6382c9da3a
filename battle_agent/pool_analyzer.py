"""
PoolAnalyzer: reads Uniswap V4 pool state straight from PoolManager storage
(extsload) and scores BattleArena battles.
"""

import json
import logging
import os
import time
from decimal import Decimal, getcontext

import numpy as np
from eth_abi.packed import encode_packed
from eth_utils.crypto import keccak
from web3 import Web3

from battle_agent.models import (
    Battle,
    BattleAnalysis,
    BattleStatus,
    BattleType,
    PoolState,
    PositionAnalysis,
    WinProbability,
    dex_type_name,
)

getcontext().prec = 40

logger = logging.getLogger(__name__)

ABI_DIR = os.path.join(os.path.dirname(__file__), "abi")

# slot0: sqrtPriceX96 (160) | tick (24) | protocolFee (24) | lpFee (24) | unused (24)
SQRT_PRICE_BITS = 160
TICK_OFFSET, TICK_BITS = 160, 24
PROTOCOL_FEE_OFFSET, FEE_BITS = 184, 24
LP_FEE_OFFSET = 208

MAX_INT24 = 0x7FFFFF
INT24_RANGE = 0x1000000

# Confidence ramps 0 -> 0.5 over the first quarter, holds, then 0.5 -> 1.0 over the last quarter
CONFIDENCE_KNOTS = ([0.0, 0.25, 0.75, 1.0], [0.0, 0.5, 0.5, 1.0])


def _load_abi(filename: str) -> list:
    with open(os.path.join(ABI_DIR, filename)) as f:
        return json.load(f)


def _mask(bits: int) -> int:
    return (1 << bits) - 1


def _pool_id_bytes(pool_id) -> bytes:
    if isinstance(pool_id, (bytes, bytearray)):
        raw = bytes(pool_id)
    else:
        raw = bytes.fromhex(pool_id[2:] if pool_id.startswith("0x") else pool_id)
    if len(raw) != 32:
        raise ValueError(f"pool id must be 32 bytes, got {len(raw)}")
    return raw


def compute_pool_slot0(pool_id, mapping_slot: int = 6) -> bytes:
    """Storage key of pools[poolId]: keccak256(poolId . mapping_slot)."""
    return keccak(encode_packed(["bytes32", "uint256"], [_pool_id_bytes(pool_id), mapping_slot]))


def decode_slot0(raw: int) -> PoolState:
    """Split a packed slot0 word into its four fields."""
    tick = (raw >> TICK_OFFSET) & _mask(TICK_BITS)
    if tick > MAX_INT24:
        tick -= INT24_RANGE
    return PoolState(
        sqrt_price_x96=raw & _mask(SQRT_PRICE_BITS),
        tick=tick,
        protocol_fee=(raw >> PROTOCOL_FEE_OFFSET) & _mask(FEE_BITS),
        lp_fee=(raw >> LP_FEE_OFFSET) & _mask(FEE_BITS),
    )


def encode_slot0(state: PoolState) -> int:
    """Pack a PoolState back into the low 232 bits of a slot0 word."""
    return (
        (state.sqrt_price_x96 & _mask(SQRT_PRICE_BITS))
        | ((state.tick & _mask(TICK_BITS)) << TICK_OFFSET)
        | ((state.protocol_fee & _mask(FEE_BITS)) << PROTOCOL_FEE_OFFSET)
        | ((state.lp_fee & _mask(FEE_BITS)) << LP_FEE_OFFSET)
    )


def confidence_weight(elapsed: int, duration: int) -> float:
    """Weight given to observed in-range data as the battle progresses."""
    if elapsed <= 0:
        return 0.0
    ratio = 1.0 if duration <= 0 else min(elapsed / duration, 1.0)
    return float(np.interp(ratio, *CONFIDENCE_KNOTS))


def estimate_win_probability(
    elapsed: int, duration: int, creator_in_range: int, opponent_in_range: int
) -> WinProbability:
    """Blend in-range share with a coin flip, trusting the data more as time passes."""
    if elapsed <= 0:
        return WinProbability(0.5, 0.5, 0.0, "Battle has not started yet - no data, even odds")

    confidence = confidence_weight(elapsed, duration)
    if creator_in_range <= 0 and opponent_in_range <= 0:
        return WinProbability(
            0.5,
            0.5,
            confidence,
            "Neither position has been in range yet - even odds",
        )

    creator_ratio = creator_in_range / elapsed
    opponent_ratio = opponent_in_range / elapsed
    raw_creator = creator_ratio / (creator_ratio + opponent_ratio)

    creator_probability = float(np.clip(confidence * raw_creator + (1 - confidence) * 0.5, 0.0, 1.0))
    opponent_probability = 1.0 - creator_probability

    progress = 100.0 if duration <= 0 else min(elapsed / duration, 1.0) * 100
    if creator_probability > opponent_probability:
        leader = "Creator"
    elif opponent_probability > creator_probability:
        leader = "Opponent"
    else:
        leader = None
    reasoning = (
        f"Creator in range {creator_ratio:.0%} of elapsed time, opponent {opponent_ratio:.0%}. "
        f"Battle {progress:.0f}% complete, confidence {confidence:.2f}. "
    )
    reasoning += f"{leader} favoured." if leader else "Dead even."
    return WinProbability(creator_probability, opponent_probability, confidence, reasoning)


def score_battle_for_entry(analysis: BattleAnalysis) -> int:
    """Entry attractiveness 0-100; only PENDING battles are joinable."""
    if analysis.status != BattleStatus.PENDING:
        return 0

    score = 50
    # Shorter duration = less risk
    duration_hours = analysis.time_remaining / 3600
    if duration_hours <= 1:
        score += 20
    elif duration_hours <= 6:
        score += 10
    elif duration_hours >= 24:
        score -= 10
    return max(0, min(100, score))


class PoolAnalyzer:
    """Reads V4 pool storage and BattleArena state to score battles."""

    def __init__(self, w3: Web3, config):
        self.w3 = w3
        self.config = config

        self.pool_manager = None
        if config.POOL_MANAGER:
            self.pool_manager = w3.eth.contract(
                address=Web3.to_checksum_address(config.POOL_MANAGER),
                abi=_load_abi("pool_manager.json"),
            )
        self.arena = w3.eth.contract(
            address=Web3.to_checksum_address(config.BATTLE_ARENA_ADDRESS),
            abi=_load_abi("battle_arena.json"),
        )

    # ------------------------------------------------------------------
    # Pool state
    # ------------------------------------------------------------------

    def _extsload(self, slot: bytes) -> int:
        if self.pool_manager is None:
            raise RuntimeError("POOL_MANAGER is not configured")
        data = self.pool_manager.functions.extsload(slot).call()
        return int.from_bytes(bytes(data), "big")

    def get_pool_state(self, pool_id) -> PoolState | None:
        """Read slot0 (sqrtPriceX96, tick, protocolFee, lpFee) via extsload."""
        try:
            slot = compute_pool_slot0(pool_id, self.config.POOLS_MAPPING_SLOT)
            return decode_slot0(self._extsload(slot))
        except Exception as e:
            logger.debug("Failed to read pool state for %s: %s", pool_id, e)
            return None

    def get_pool_liquidity(self, pool_id) -> int | None:
        """Read in-range liquidity (uint128) stored three slots after slot0."""
        try:
            slot0 = compute_pool_slot0(pool_id, self.config.POOLS_MAPPING_SLOT)
            liquidity_slot = (
                int.from_bytes(slot0, "big") + self.config.LIQUIDITY_SLOT_OFFSET
            ).to_bytes(32, "big")
            return self._extsload(liquidity_slot) & _mask(128)
        except Exception as e:
            logger.debug("Failed to read pool liquidity for %s: %s", pool_id, e)
            return None

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def is_position_in_range(self, current_tick: int, tick_lower: int, tick_upper: int) -> bool:
        return tick_lower <= current_tick < tick_upper

    def analyze_position(
        self, current_tick: int, tick_lower: int, tick_upper: int
    ) -> PositionAnalysis:
        range_width = tick_upper - tick_lower
        range_mid = tick_lower + range_width / 2
        if range_width > 0:
            position_in_range = (current_tick - tick_lower) / range_width
        else:
            position_in_range = 0.0
        return PositionAnalysis(
            is_in_range=self.is_position_in_range(current_tick, tick_lower, tick_upper),
            tick_distance=abs(current_tick - range_mid),
            range_width=range_width,
            position_in_range=max(0.0, min(1.0, position_in_range)),
        )

    def sqrt_price_to_price(
        self, sqrt_price_x96: int, decimals0: int = 18, decimals1: int = 18
    ) -> float:
        """Price of token0 in token1: (sqrtPriceX96 / 2^96)^2 * 10^(d0 - d1)."""
        sqrt_price = Decimal(sqrt_price_x96)
        q96 = Decimal(2**96)
        return float((sqrt_price / q96) ** 2 * Decimal(10) ** (decimals0 - decimals1))

    def tick_to_price(self, tick: int, decimals0: int = 18, decimals1: int = 18) -> float:
        """Formula: price = 1.0001^tick * 10^(d0 - d1)."""
        base = Decimal("1.0001")
        return float(base**tick * Decimal(10) ** (decimals0 - decimals1))

    # ------------------------------------------------------------------
    # Battle analysis
    # ------------------------------------------------------------------

    def _is_expired(self, battle: Battle, now: int) -> bool:
        if battle.status >= BattleStatus.EXPIRED:
            return True
        if battle.status != BattleStatus.ACTIVE or battle.start_time == 0:
            return False
        try:
            return bool(self.arena.functions.isBattleExpired(battle.id).call())
        except Exception as e:
            logger.debug("isBattleExpired(%s) failed, using local clock: %s", battle.id, e)
            return now >= battle.end_time

    def analyze_battle(self, battle_id: int) -> BattleAnalysis | None:
        """Analyze any battle from the BattleArena contract."""
        try:
            result = self.arena.functions.getBattle(battle_id).call()
            battle = Battle.from_tuple(battle_id, result)
        except Exception as e:
            logger.error("Failed to analyze battle %s: %s", battle_id, e)
            return None

        now = int(time.time())
        is_expired = self._is_expired(battle, now)

        if battle.status < BattleStatus.EXPIRED and battle.start_time > 0:
            time_remaining = max(battle.end_time - now, 0)
        elif battle.status == BattleStatus.PENDING:
            time_remaining = battle.duration
        else:
            time_remaining = 0

        base = dict(
            battle_id=battle.id,
            battle_type=battle.battle_type,
            status=battle.status,
            creator_dex=dex_type_name(battle.creator_dex),
            opponent_dex=dex_type_name(battle.opponent_dex),
        )

        if battle.status == BattleStatus.RESOLVED:
            return BattleAnalysis(
                **base,
                is_expired=True,
                time_remaining=0,
                creator_score=0,
                opponent_score=0,
                current_leader=battle.winner,
                recommendation=f"Battle resolved. Winner: {battle.winner[:12]}...",
            )

        creator_score = 0
        opponent_score = 0
        current_leader = ""
        if not battle.has_opponent:
            recommendation = "PENDING - Waiting for opponent to join"
        elif is_expired:
            recommendation = "RESOLVE NOW - Battle expired, earn resolver reward"
        elif battle.battle_type == BattleType.RANGE:
            creator_score = battle.creator_in_range_time
            opponent_score = battle.opponent_in_range_time
            current_leader = battle.creator if creator_score >= opponent_score else battle.opponent
            if creator_score == opponent_score:
                recommendation = "Tied on in-range time"
            else:
                leader = "Creator" if creator_score > opponent_score else "Opponent"
                recommendation = (
                    f"{leader} leading with {max(creator_score, opponent_score)}s in-range time"
                )
        else:
            # Fee battles are scored by the scoring engine at resolution
            recommendation = "Fee battle in progress - winner determined at resolution"
            current_leader = battle.creator

        return BattleAnalysis(
            **base,
            is_expired=is_expired,
            time_remaining=time_remaining,
            creator_score=creator_score,
            opponent_score=opponent_score,
            current_leader=current_leader,
            recommendation=recommendation,
        )

    def calculate_win_probability(self, battle: Battle) -> WinProbability:
        """Win odds from in-range counters as of the last on-chain update.

        Elapsed time runs from startTime to lastUpdateTime, capped at the
        battle end.
        """
        if battle.start_time == 0:
            return estimate_win_probability(0, battle.duration, 0, 0)
        observed_until = min(battle.last_update_time, battle.end_time)
        elapsed = max(observed_until - battle.start_time, 0)
        return estimate_win_probability(
            elapsed,
            battle.duration,
            battle.creator_in_range_time,
            battle.opponent_in_range_time,
        )

    def score_battle_for_entry(self, analysis: BattleAnalysis) -> int:
        return score_battle_for_entry(analysis)
