"""
In-memory agent journal: structured action logs and on-chain transaction
evidence. One AgentContext is created per process, owned by the agent and
read by the HTTP layer.
"""

import json
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from battle_agent import config
from battle_agent.models import to_jsonable

logger = logging.getLogger(__name__)

ACTION_STATUSES = ("pending", "success", "failed")
TX_TYPES = ("resolve", "bridge", "swap", "approve", "entry", "update", "analyze")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ActionRecord:
    action: str
    reasoning: str
    status: str
    timestamp: str = field(default_factory=_utc_now)
    battle_id: str | None = None
    contract_type: str | None = None
    inputs: dict[str, Any] | None = None
    outputs: dict[str, Any] | None = None
    tx_hash: str | None = None
    gas_used: str | None = None


@dataclass
class TxRecord:
    hash: str
    description: str
    chain: str
    chain_id: int
    type: str
    timestamp: float
    gas_used: str | None = None
    block_number: int | None = None
    from_address: str | None = None
    to_address: str | None = None

    @property
    def explorer_url(self) -> str:
        return config.explorer_tx_url(self.hash, self.chain_id)


class ActionLog:
    """Append-only list of agent actions, mirrored to a JSONL file when configured."""

    def __init__(self, jsonl_path: Path | None = None):
        self.jsonl_path = Path(jsonl_path) if jsonl_path else None
        self._records: list[ActionRecord] = []
        self._lock = threading.Lock()

    def log_action(self, action: str, reasoning: str, status: str = "pending", **details) -> ActionRecord:
        if status not in ACTION_STATUSES:
            raise ValueError(f"unknown action status: {status}")
        record = ActionRecord(action=action, reasoning=reasoning, status=status, **details)
        with self._lock:
            self._records.append(record)

        level = logging.ERROR if status == "failed" else logging.INFO
        logger.log(
            level,
            "ACTION: %s status=%s battle=%s | %s%s",
            action,
            status.upper(),
            record.battle_id,
            reasoning,
            f" | tx={record.tx_hash}" if record.tx_hash else "",
        )

        if self.jsonl_path is not None:
            try:
                self.jsonl_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.jsonl_path, "a") as f:
                    f.write(json.dumps(to_jsonable(record), default=str) + "\n")
            except OSError as e:
                logger.warning("Could not append action to %s: %s", self.jsonl_path, e)
        return record

    def all(self) -> list[ActionRecord]:
        with self._lock:
            return list(self._records)

    def recent(self, limit: int = 50) -> list[ActionRecord]:
        with self._lock:
            return list(self._records[-limit:]) if limit > 0 else []

    def counts(self) -> dict[str, int]:
        tally = Counter(r.status for r in self.all())
        return {status: tally.get(status, 0) for status in ACTION_STATUSES}

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def summary_lines(self) -> list[str]:
        records = self.all()
        counts = self.counts()
        lines = [
            "=" * 60,
            "[AGENT SUMMARY]",
            "=" * 60,
            f"  Total Actions:  {len(records)}",
            f"  Successful:     {counts['success']}",
            f"  Failed:         {counts['failed']}",
            f"  Pending:        {counts['pending']}",
            "=" * 60,
        ]
        hashes = [r.tx_hash for r in records if r.tx_hash]
        if hashes:
            lines.append("Transaction Hashes:")
            lines.extend(f"  {i}. {h}" for i, h in enumerate(hashes, 1))
        return lines


class TxCollector:
    """Records every on-chain transaction the agent sends."""

    def __init__(self):
        self._txs: list[TxRecord] = []
        self._lock = threading.Lock()

    def record(self, tx: TxRecord) -> None:
        if tx.type not in TX_TYPES:
            raise ValueError(f"unknown transaction type: {tx.type}")
        with self._lock:
            self._txs.append(tx)

    def all(self) -> list[TxRecord]:
        with self._lock:
            return list(self._txs)

    def by_type(self, tx_type: str) -> list[TxRecord]:
        return [tx for tx in self.all() if tx.type == tx_type]

    def count(self) -> int:
        return len(self._txs)

    def clear(self) -> None:
        with self._lock:
            self._txs.clear()

    def export(self) -> dict:
        txs = self.all()
        return {
            "totalTxs": len(txs),
            "transactions": [to_jsonable(tx) for tx in txs],
            "explorerLinks": [tx.explorer_url for tx in txs],
            "summary": dict(Counter(tx.type for tx in txs)),
        }

    def summary_lines(self) -> list[str]:
        txs = self.all()
        lines = [
            "=" * 70,
            "  TRANSACTION EVIDENCE SUMMARY",
            "=" * 70,
            f"  Total Transactions: {len(txs)}",
        ]
        for tx_type, n in Counter(tx.type for tx in txs).items():
            lines.append(f"    {tx_type}: {n}")
        for i, tx in enumerate(txs, 1):
            lines.append(f"  {i}. [{tx.type.upper()}] {tx.description}")
            lines.append(f"     {tx.hash}")
            lines.append(f"     {tx.explorer_url}")
        lines.append("=" * 70)
        return lines


@dataclass
class AgentContext:
    """Process-wide journal handed to the agent and the HTTP server."""

    actions: ActionLog = field(default_factory=ActionLog)
    transactions: TxCollector = field(default_factory=TxCollector)

    @classmethod
    def with_log_dir(cls, log_dir: Path) -> "AgentContext":
        return cls(actions=ActionLog(Path(log_dir) / "actions.jsonl"))

    def clear(self) -> dict[str, int]:
        """Drop buffered actions and transactions; the JSONL file is kept."""
        cleared = {"actions": len(self.actions.all()), "transactions": self.transactions.count()}
        self.actions.clear()
        self.transactions.clear()
        logger.info("Cleared %d actions and %d transactions", cleared["actions"], cleared["transactions"])
        return cleared
