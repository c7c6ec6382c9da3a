"""
BattleArena contract access: battle enumeration and detail reads, plus the
resolveBattle / updateBattleStatus write path.
"""

import json
import logging
import os

from eth_utils import to_checksum_address
from web3 import Web3

from battle_agent.models import Battle, BattleStatus, status_name

logger = logging.getLogger(__name__)

ABI_DIR = os.path.join(os.path.dirname(__file__), "abi")


def _load_abi(filename: str) -> list:
    with open(os.path.join(ABI_DIR, filename)) as f:
        return json.load(f)


class SettlementError(RuntimeError):
    """A write transaction was rejected, reverted or could not be sent."""


class ArenaReadError(RuntimeError):
    """A contract read failed where the caller needs a definite answer."""


class ArenaManager:
    """Reads BattleArena state and sends resolve/update transactions."""

    def __init__(self, w3: Web3, account, config):
        self.w3 = w3
        self.account = account
        self.config = config

        self.arena = w3.eth.contract(
            address=to_checksum_address(config.BATTLE_ARENA_ADDRESS),
            abi=_load_abi("battle_arena.json"),
        )
        self.leaderboard = w3.eth.contract(
            address=to_checksum_address(config.LEADERBOARD_ADDRESS),
            abi=_load_abi("leaderboard.json"),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self) -> float:
        """Native balance of the agent wallet in ETH."""
        try:
            wei = self.w3.eth.get_balance(self.account.address)
        except Exception as e:
            raise ArenaReadError(f"Could not read agent balance: {e}") from e
        return wei / 10**18

    def get_battles_by_status(self, status: BattleStatus) -> list[int] | None:
        """Battle ids with the given status, or None if the read failed."""
        try:
            ids = self.arena.functions.getBattlesByStatus(int(status)).call()
            return [int(i) for i in ids]
        except Exception as e:
            logger.error("Failed to get battles with status %s: %s", status_name(status), e)
            return None

    def get_battle_count(self) -> int:
        try:
            return int(self.arena.functions.getBattleCount().call())
        except Exception as e:
            logger.error("Failed to get battle count: %s", e)
            return 0

    def get_battle(self, battle_id: int) -> Battle | None:
        try:
            result = self.arena.functions.getBattle(battle_id).call()
            return Battle.from_tuple(battle_id, result)
        except Exception as e:
            logger.error("Failed to get battle %s: %s", battle_id, e)
            return None

    def is_battle_expired(self, battle_id: int) -> bool | None:
        try:
            return bool(self.arena.functions.isBattleExpired(battle_id).call())
        except Exception as e:
            logger.debug("isBattleExpired(%s) failed: %s", battle_id, e)
            return None

    def get_player_stats(self, address: str) -> dict:
        """Leaderboard stats; raises on RPC failure."""
        elo, wins, losses, total_battles, total_value_won = self.leaderboard.functions.getPlayerStats(
            to_checksum_address(address)
        ).call()
        return {
            "address": address,
            "elo": int(elo),
            "wins": int(wins),
            "losses": int(losses),
            "totalBattles": int(total_battles),
            "totalValueWon": int(total_value_won),
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def resolve_battle(self, battle_id: int) -> dict:
        """Send BattleArena.resolveBattle(battleId).

        Returns {"tx_hash": str, "gas_used": int, "block_number": int}.
        """
        return self._send(self.arena.functions.resolveBattle(battle_id), f"resolveBattle({battle_id})")

    def update_battle_status(self, battle_id: int) -> dict:
        """Send BattleArena.updateBattleStatus(battleId) to refresh in-range tracking."""
        return self._send(
            self.arena.functions.updateBattleStatus(battle_id), f"updateBattleStatus({battle_id})"
        )

    def _send(self, fn, label: str) -> dict:
        sender = self.account.address
        try:
            # eth_call first; a revert raises here before anything is signed
            fn.call({"from": sender})
            tx = fn.build_transaction(
                {
                    "from": sender,
                    "nonce": self.w3.eth.get_transaction_count(sender),
                    "gasPrice": self.w3.eth.gas_price,
                    "chainId": self.config.CHAIN_ID,
                }
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info("%s submitted tx=%s", label, Web3.to_hex(tx_hash))
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            raise SettlementError(f"{label} failed: {e}") from e

        if receipt["status"] != 1:
            raise SettlementError(f"{label} reverted in tx {Web3.to_hex(tx_hash)}")

        logger.info(
            "%s confirmed tx=%s block=%s gas=%s",
            label,
            Web3.to_hex(tx_hash),
            receipt["blockNumber"],
            receipt["gasUsed"],
        )
        return {
            "tx_hash": Web3.to_hex(tx_hash),
            "gas_used": int(receipt["gasUsed"]),
            "block_number": int(receipt["blockNumber"]),
        }
