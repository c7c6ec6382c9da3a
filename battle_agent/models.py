"""
Battle records shared by the analyzer, the agent loop and the HTTP layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from enum import IntEnum
from typing import Any, ClassVar

# Integers above this lose precision in JavaScript clients.
MAX_SAFE_JSON_INT = 2**53 - 1


class BattleStatus(IntEnum):
    PENDING = 0
    ACTIVE = 1
    EXPIRED = 2
    RESOLVED = 3


class BattleType(IntEnum):
    RANGE = 0
    FEE = 1


class DexType(IntEnum):
    UNISWAP_V4 = 0
    CAMELOT_V3 = 1


def _enum_name(enum_cls, value: int) -> str:
    try:
        return enum_cls(value).name
    except ValueError:
        return "UNKNOWN"


def status_name(status: int) -> str:
    return _enum_name(BattleStatus, status)


def battle_type_name(battle_type: int) -> str:
    return _enum_name(BattleType, battle_type)


def dex_type_name(dex: int) -> str:
    return _enum_name(DexType, dex)


@dataclass(frozen=True)
class PoolState:
    """Decoded V4 slot0 word."""

    UINT_FIELDS: ClassVar[tuple[str, ...]] = ("sqrt_price_x96",)

    sqrt_price_x96: int
    tick: int
    protocol_fee: int
    lp_fee: int


@dataclass(frozen=True)
class PositionAnalysis:
    is_in_range: bool
    tick_distance: float
    range_width: int
    position_in_range: float


@dataclass
class Battle:
    """One BattleArena.getBattle() result."""

    # uint256 on-chain; sent to API clients as decimal strings
    UINT_FIELDS: ClassVar[tuple[str, ...]] = (
        "id",
        "creator_token_id",
        "opponent_token_id",
        "creator_value_usd",
        "opponent_value_usd",
        "start_time",
        "duration",
        "creator_in_range_time",
        "opponent_in_range_time",
        "last_update_time",
    )

    id: int
    creator: str
    opponent: str
    winner: str
    creator_dex: int
    opponent_dex: int
    creator_token_id: int
    opponent_token_id: int
    creator_value_usd: int
    opponent_value_usd: int
    battle_type: int
    status: int
    start_time: int
    duration: int
    token0: str
    token1: str
    creator_in_range_time: int
    opponent_in_range_time: int
    last_update_time: int

    @classmethod
    def from_tuple(cls, battle_id: int, result) -> "Battle":
        """Build from the ABI tuple in BattleArena.getBattle component order."""
        (
            creator,
            opponent,
            winner,
            creator_dex,
            opponent_dex,
            creator_token_id,
            opponent_token_id,
            creator_value_usd,
            opponent_value_usd,
            battle_type,
            status,
            start_time,
            duration,
            token0,
            token1,
            creator_in_range_time,
            opponent_in_range_time,
            last_update_time,
        ) = result
        return cls(
            id=int(battle_id),
            creator=creator,
            opponent=opponent,
            winner=winner,
            creator_dex=int(creator_dex),
            opponent_dex=int(opponent_dex),
            creator_token_id=int(creator_token_id),
            opponent_token_id=int(opponent_token_id),
            creator_value_usd=int(creator_value_usd),
            opponent_value_usd=int(opponent_value_usd),
            battle_type=int(battle_type),
            status=int(status),
            start_time=int(start_time),
            duration=int(duration),
            token0=token0,
            token1=token1,
            creator_in_range_time=int(creator_in_range_time),
            opponent_in_range_time=int(opponent_in_range_time),
            last_update_time=int(last_update_time),
        )

    @property
    def has_opponent(self) -> bool:
        return int(self.opponent, 16) != 0

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration


@dataclass
class BattleAnalysis:
    battle_id: int
    battle_type: int
    status: int
    is_expired: bool
    time_remaining: int
    creator_score: int
    opponent_score: int
    current_leader: str
    creator_dex: str
    opponent_dex: str
    recommendation: str
    pool_state: PoolState | None = None


@dataclass(frozen=True)
class WinProbability:
    creator_probability: float
    opponent_probability: float
    confidence: float
    reasoning: str


@dataclass
class AgentAction:
    type: str  # resolve | update_status | analyze
    priority: int
    reasoning: str
    battle_id: int | None = None
    battle_type: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class MonitorResult:
    analyses: list[BattleAnalysis]
    pending_battles: list[int]
    expired_battles: list[int]
    active_battles: list[int] = field(default_factory=list)


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses/enums/bytes to JSON types.

    Dataclass fields become camelCase keys and the names in a class's
    UINT_FIELDS are rendered as decimal strings. Any other int outside the
    JavaScript safe range becomes a string too. Plain dict keys are kept.
    """
    if is_dataclass(value) and not isinstance(value, type):
        uint_fields = getattr(value, "UINT_FIELDS", ())
        out = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if f.name in uint_fields and item is not None:
                out[camel_case(f.name)] = str(int(item))
            else:
                out[camel_case(f.name)] = to_jsonable(item)
        return out
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_JSON_INT:
            return str(value)
        return int(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value
