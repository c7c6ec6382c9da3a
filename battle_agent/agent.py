"""
BattleAgent: monitor -> decide -> act loop for BattleArena battles.

Scans the arena every POLL_INTERVAL seconds, resolves expired battles for the
resolver reward, refreshes in-range tracking on live range battles, and logs
joinable battles as entry opportunities. Cross-chain entry planning is
delegated to CrossChainEntryAgent.
"""

import logging
import sys
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

from eth_account import Account
from web3 import Web3

from battle_agent import config
from battle_agent.arena_manager import ArenaManager, ArenaReadError, SettlementError
from battle_agent.cross_chain import CrossChainEntryAgent
from battle_agent.journal import AgentContext, TxRecord
from battle_agent.models import (
    AgentAction,
    Battle,
    BattleStatus,
    BattleType,
    MonitorResult,
    battle_type_name,
    dex_type_name,
    status_name,
)
from battle_agent.pool_analyzer import PoolAnalyzer

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(level: str | None = None, log_dir: Path | None = None) -> logging.Logger:
    """Attach console + logs/agent.log handlers to the package logger (once)."""
    root = logging.getLogger("battle_agent")
    root.setLevel(logging.DEBUG)
    if root.handlers:
        return root

    console = logging.StreamHandler()
    console.setLevel(level or config.LOG_LEVEL)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console)

    log_dir = Path(log_dir or config.LOG_DIR)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / "agent.log")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(fh)
    except OSError as e:
        root.warning("File logging disabled, cannot write to %s: %s", log_dir, e)
    return root


class BattleAgent:
    """Autonomous BattleArena keeper."""

    # Decision priorities, highest runs first
    PRIORITY_RESOLVE = 100
    PRIORITY_UPDATE_STATUS = 50
    PRIORITY_ANALYZE = 30

    def __init__(
        self,
        private_key: str | None = None,
        w3: Web3 | None = None,
        settings=config,
        context: AgentContext | None = None,
        account=None,
        cross_chain: CrossChainEntryAgent | None = None,
    ):
        self.config = settings
        if w3 is None:
            logger.info("Connecting to RPC: %s", settings.RPC_URL)
            w3 = Web3(Web3.HTTPProvider(settings.RPC_URL, request_kwargs={"timeout": settings.HTTP_TIMEOUT}))
            if not w3.is_connected():
                raise ConnectionError(f"Cannot connect to RPC at {settings.RPC_URL}")
            logger.info("Connected. Chain ID: %d", w3.eth.chain_id)
        self.w3 = w3

        self.account = account or Account.from_key(private_key or settings.PRIVATE_KEY)
        logger.info("Agent initialized with address: %s", self.account.address)

        self.context = context or AgentContext.with_log_dir(settings.LOG_DIR)
        self.arena = ArenaManager(w3, self.account, settings)
        self.analyzer = PoolAnalyzer(w3, settings)
        self.cross_chain = cross_chain or CrossChainEntryAgent(journal=self.context.actions)

        self.cycle_count = 0
        self.started_at = time.time()
        self.is_running = False
        self.last_monitor_result: MonitorResult | None = None
        self.last_decisions: list[AgentAction] = []
        self.last_routes: list = []

        # One cycle at a time: background loop vs. POST /api/cycle
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()

    @property
    def address(self) -> str:
        return self.account.address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self) -> float:
        return self.arena.get_balance()

    def get_battle(self, battle_id: int) -> Battle | None:
        return self.arena.get_battle(battle_id)

    def _battle_ids(self, status: BattleStatus, strict: bool) -> list[int]:
        ids = self.arena.get_battles_by_status(status)
        if ids is None:
            if strict:
                raise ArenaReadError(f"Could not read {status_name(status)} battles")
            return []
        return ids

    def get_active_battles(self, strict: bool = False) -> list[int]:
        """ACTIVE battle ids. A failed read gives [] unless strict, which raises ArenaReadError."""
        return self._battle_ids(BattleStatus.ACTIVE, strict)

    def get_pending_battles(self, strict: bool = False) -> list[int]:
        return self._battle_ids(BattleStatus.PENDING, strict)

    def get_expired_battles(self, strict: bool = False) -> list[int]:
        return self._battle_ids(BattleStatus.EXPIRED, strict)

    def get_battles_ready_to_resolve(self, strict: bool = False) -> list[int]:
        """Every EXPIRED battle plus ACTIVE ones the contract reports as expired."""
        active = self.get_active_battles(strict)
        ready = list(self.get_expired_battles(strict))
        for battle_id in active:
            if self.arena.is_battle_expired(battle_id):
                ready.append(battle_id)
        return ready

    def get_time_remaining(self, battle: Battle) -> int:
        if battle.status >= BattleStatus.EXPIRED:
            return 0
        if battle.start_time == 0:
            # Not started yet
            return battle.duration
        return max(battle.end_time - int(time.time()), 0)

    # ------------------------------------------------------------------
    # Strategy loop
    # ------------------------------------------------------------------

    def monitor(self) -> MonitorResult:
        logger.info("[MONITOR] Scanning BattleArena on %s...", self.config.CHAIN_NAME)
        active = self.get_active_battles()
        pending = self.get_pending_battles()
        expired = self.get_expired_battles()
        logger.info(
            "[MONITOR] Active: %d | Pending: %d | Expired: %d",
            len(active),
            len(pending),
            len(expired),
        )

        analyses = []
        for battle_id in active + expired:
            analysis = self.analyzer.analyze_battle(battle_id)
            if analysis is None:
                continue
            analyses.append(analysis)
            logger.info(
                "  Battle #%d %s/%s | %s | %ds left | %s",
                analysis.battle_id,
                battle_type_name(analysis.battle_type),
                status_name(analysis.status),
                "EXPIRED" if analysis.is_expired else "live",
                analysis.time_remaining,
                analysis.recommendation,
            )

        if pending:
            logger.info("[MONITOR] Joinable battles: %d", len(pending))
        return MonitorResult(
            analyses=analyses,
            pending_battles=pending,
            expired_battles=expired,
            active_battles=active,
        )

    def decide(self, result: MonitorResult) -> list[AgentAction]:
        logger.info("[DECIDE] Evaluating actions...")
        actions: list[AgentAction] = []

        for analysis in result.analyses:
            if analysis.is_expired:
                actions.append(
                    AgentAction(
                        type="resolve",
                        priority=self.PRIORITY_RESOLVE,
                        battle_id=analysis.battle_id,
                        battle_type=battle_type_name(analysis.battle_type).lower(),
                        reasoning=(
                            f"Battle #{analysis.battle_id} expired "
                            f"({battle_type_name(analysis.battle_type)}) - resolve for reward"
                        ),
                    )
                )
            elif analysis.battle_type == BattleType.RANGE and analysis.status == BattleStatus.ACTIVE:
                actions.append(
                    AgentAction(
                        type="update_status",
                        priority=self.PRIORITY_UPDATE_STATUS,
                        battle_id=analysis.battle_id,
                        battle_type="range",
                        reasoning=f"Update in-range tracking for battle #{analysis.battle_id}",
                    )
                )

        for battle_id in result.pending_battles:
            actions.append(
                AgentAction(
                    type="analyze",
                    priority=self.PRIORITY_ANALYZE,
                    battle_id=battle_id,
                    reasoning=f"Pending battle #{battle_id} - evaluate for entry opportunity",
                )
            )

        actions.sort(key=lambda a: a.priority, reverse=True)
        if not actions:
            logger.info("[DECIDE] No actions needed this cycle")
        else:
            logger.info("[DECIDE] %d actions planned:", len(actions))
            for i, action in enumerate(actions, 1):
                logger.info("  %d. [%s] %s", i, action.type.upper(), action.reasoning)
        return actions

    def act(self, actions: list[AgentAction]) -> dict[str, int]:
        """Execute actions in order; one failure never stops the rest."""
        tally = {"success": 0, "failed": 0, "skipped": 0}
        for action in actions:
            logger.info("[ACT] Executing: %s - %s", action.type, action.reasoning)
            try:
                outcome = self._execute(action)
            except Exception as e:
                logger.error("[ACT] %s on battle %s failed: %s", action.type, action.battle_id, e)
                outcome = "failed"
            tally[outcome] += 1
        logger.info(
            "[ACT] Done: %d ok, %d failed, %d skipped",
            tally["success"],
            tally["failed"],
            tally["skipped"],
        )
        return tally

    def _execute(self, action: AgentAction) -> str:
        if action.type == "resolve":
            if not self.config.AUTO_SETTLE:
                logger.info("AUTO_SETTLE disabled, not resolving battle %s", action.battle_id)
                return "skipped"
            return "success" if self.settle_battle(action.battle_id) else "failed"

        if action.type == "update_status":
            if not self.config.AUTO_UPDATE_STATUS:
                logger.debug("AUTO_UPDATE_STATUS disabled, skipping battle %s", action.battle_id)
                return "skipped"
            return "success" if self.update_battle_status(action.battle_id) else "failed"

        if action.type == "analyze":
            analysis = self.analyzer.analyze_battle(action.battle_id)
            outputs = None
            if analysis is not None:
                outputs = {
                    "entryScore": self.analyzer.score_battle_for_entry(analysis),
                    "timeRemaining": analysis.time_remaining,
                    "battleType": battle_type_name(analysis.battle_type),
                    "creatorDex": analysis.creator_dex,
                }
            self.context.actions.log_action(
                "ANALYZE_OPPORTUNITY",
                action.reasoning,
                status="success",
                battle_id=str(action.battle_id),
                outputs=outputs,
            )
            return "success"

        logger.warning("Unknown action type: %s", action.type)
        return "skipped"

    def run_strategy_cycle(self) -> list[AgentAction]:
        """One monitor -> decide -> act pass. Errors are logged, never raised."""
        with self._cycle_lock:
            self.cycle_count += 1
            logger.info("=" * 70)
            logger.info(
                "  STRATEGY CYCLE #%d  %s",
                self.cycle_count,
                datetime.now(timezone.utc).isoformat(),
            )
            logger.info("=" * 70)
            try:
                result = self.monitor()
                self.last_monitor_result = result
                actions = self.decide(result)
                self.last_decisions = actions
                self.act(actions)
            except Exception as e:
                logger.error("Strategy cycle error: %s", e, exc_info=True)
            return self.last_decisions

    def start_monitoring(self):
        """Run strategy cycles every POLL_INTERVAL until stopped or Ctrl+C."""
        self.is_running = True
        self._stop_event.clear()
        logger.info(
            "Starting autonomous strategy loop. Checking every %ss. Press Ctrl+C to stop.",
            self.config.POLL_INTERVAL,
        )
        try:
            logger.info("Agent balance: %.6f ETH", self.get_balance())
        except Exception as e:
            logger.warning("Could not read agent balance: %s", e)

        try:
            while self.is_running:
                self.run_strategy_cycle()
                if self._stop_event.wait(self.config.POLL_INTERVAL):
                    break
        except KeyboardInterrupt:
            logger.info("Agent stopped by user.")
        finally:
            if self.is_running:
                self.stop_monitoring()

    def stop_monitoring(self):
        self.is_running = False
        self._stop_event.set()
        logger.info("Stopping agent...")
        for line in self.context.actions.summary_lines():
            logger.info(line)
        if self.context.transactions.count():
            for line in self.context.transactions.summary_lines():
                logger.info(line)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def settle_battle(self, battle_id: int) -> str | None:
        """Resolve a battle on-chain. Returns the tx hash, or None on any failure."""
        battle = self.get_battle(battle_id)
        if battle is None:
            logger.error("Cannot settle - battle %s not found", battle_id)
            return None

        contract_type = battle_type_name(battle.battle_type)
        self.context.actions.log_action(
            "SETTLE_BATTLE",
            (
                f"Battle duration elapsed. Status: {status_name(battle.status)}. "
                f"Creator: {battle.creator[:10]}... vs Opponent: {battle.opponent[:10]}..."
            ),
            status="pending",
            battle_id=str(battle_id),
            contract_type=contract_type,
            inputs={
                "battleId": str(battle_id),
                "creator": battle.creator,
                "opponent": battle.opponent,
                "startTime": str(battle.start_time),
                "duration": str(battle.duration),
            },
        )

        try:
            receipt = self.arena.resolve_battle(battle_id)
        except SettlementError as e:
            self.context.actions.log_action(
                "SETTLE_BATTLE",
                f"Failed to settle battle: {e}",
                status="failed",
                battle_id=str(battle_id),
                contract_type=contract_type,
            )
            return None

        updated = self.get_battle(battle_id)
        winner = updated.winner if updated else "unknown"
        self._record_tx(receipt, f"Resolve battle #{battle_id} ({contract_type})", "resolve")
        self.context.actions.log_action(
            "SETTLE_BATTLE",
            f"Battle {battle_id} settled successfully. Winner: {winner}",
            status="success",
            battle_id=str(battle_id),
            contract_type=contract_type,
            outputs={"winner": winner, "blockNumber": str(receipt["block_number"])},
            tx_hash=receipt["tx_hash"],
            gas_used=str(receipt["gas_used"]),
        )
        logger.info("TX: %s", config.explorer_tx_url(receipt["tx_hash"], self.config.CHAIN_ID))
        return receipt["tx_hash"]

    def update_battle_status(self, battle_id: int) -> str | None:
        """Refresh in-range tracking for a live range battle."""
        try:
            receipt = self.arena.update_battle_status(battle_id)
        except SettlementError as e:
            logger.debug("Failed to update battle status for %s: %s", battle_id, e)
            return None

        self._record_tx(receipt, f"Update in-range status for battle #{battle_id}", "update")
        self.context.actions.log_action(
            "UPDATE_BATTLE_STATUS",
            "Updated in-range time tracking for active battle",
            status="success",
            battle_id=str(battle_id),
            contract_type="range",
            tx_hash=receipt["tx_hash"],
            gas_used=str(receipt["gas_used"]),
        )
        return receipt["tx_hash"]

    def _record_tx(self, receipt: dict, description: str, tx_type: str):
        self.context.transactions.record(
            TxRecord(
                hash=receipt["tx_hash"],
                description=description,
                chain=self.config.CHAIN_NAME,
                chain_id=self.config.CHAIN_ID,
                type=tx_type,
                timestamp=time.time(),
                gas_used=str(receipt["gas_used"]),
                block_number=receipt["block_number"],
                from_address=self.account.address,
                to_address=self.config.BATTLE_ARENA_ADDRESS,
            )
        )

    # ------------------------------------------------------------------
    # Cross-chain entry
    # ------------------------------------------------------------------

    def get_cross_chain_routes(self, intent) -> list | None:
        """Route options for an entry intent, kept as last_routes. None if the intent is invalid."""
        logger.info("[LIFI] Analyzing cross-chain routes...")
        validation = self.cross_chain.analyze_intent(intent)
        if not validation["is_valid"]:
            logger.error("[LIFI] Invalid intent: %s", "; ".join(validation["issues"]))
            return None
        for rec in validation["recommendations"]:
            logger.info("[LIFI] Recommendation: %s", rec)

        routes = self.cross_chain.get_route_options(intent)
        self.last_routes = routes
        if not routes:
            logger.warning("[LIFI] No routes found")
            return routes

        logger.info("[LIFI] Found %d route options:", len(routes))
        for i, route in enumerate(routes, 1):
            tag = " (RECOMMENDED)" if route.recommended else ""
            logger.info("  %d. %s%s - %s - %s", i, route.method, tag, route.estimated_time, route.fees)
        return routes

    def plan_cross_chain_entry(self, intent, routes=None):
        """Execution plan over the recommended route, or None when there is no route."""
        if routes is None:
            routes = self.get_cross_chain_routes(intent)
        if not routes:
            return None
        recommended = next((r for r in routes if r.recommended), routes[0])
        plan = self.cross_chain.create_execution_plan(intent, recommended)
        logger.info(
            "[LIFI] Planned %d steps via %s, %s",
            len(plan.transactions),
            recommended.method,
            plan.estimated_total_gas,
        )
        return plan

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status_lines(self, verbose: bool = False, strict: bool = False) -> list[str]:
        """Status report. strict raises ArenaReadError instead of printing partial data."""
        try:
            balance = f"{self.get_balance():.6f}"
        except ArenaReadError as e:
            if strict:
                raise
            logger.warning("Could not read agent balance: %s", e)
            balance = "unknown"

        active = self.get_active_battles(strict)
        pending = self.get_pending_battles(strict)
        lines = [
            "=" * 70,
            "  LP BATTLE ARENA - AUTONOMOUS AGENT",
            "=" * 70,
            "  Agent",
            f"    Address:  {self.account.address}",
            f"    Balance:  {balance} ETH",
            f"    Network:  {self.config.CHAIN_NAME} ({self.config.CHAIN_ID})",
            f"    Cycles:   {self.cycle_count}",
            f"  BattleArena {self.config.BATTLE_ARENA_ADDRESS}",
            f"    Total Battles:   {self.arena.get_battle_count()}",
            f"    Active Battles:  {len(active)}",
            f"    Pending Battles: {len(pending)}",
        ]

        for battle_id in active:
            battle = self.get_battle(battle_id)
            if battle is None:
                continue
            total_usd = (battle.creator_value_usd + battle.opponent_value_usd) / 10**8
            lines.append(
                f"    Battle #{battle_id}: ACTIVE | {battle_type_name(battle.battle_type)} | "
                f"{total_usd:.2f} USD | {self.get_time_remaining(battle)}s remaining"
            )
            if verbose:
                lines.extend(self._battle_detail_lines(battle))

        for battle_id in pending:
            battle = self.get_battle(battle_id)
            if battle is None:
                continue
            lines.append(
                f"    Battle #{battle_id}: PENDING | {battle_type_name(battle.battle_type)} | "
                f"{dex_type_name(battle.creator_dex)} | Creator: {battle.creator[:12]}..."
            )
            if verbose:
                lines.extend(self._battle_detail_lines(battle))

        if verbose and not active and not pending:
            lines.append("    No active battles found.")
        if self.context.transactions.count():
            lines.extend(self.context.transactions.summary_lines())
        lines.append("=" * 70)
        return lines

    def _battle_detail_lines(self, battle: Battle) -> list[str]:
        started = (
            datetime.fromtimestamp(battle.start_time, timezone.utc).isoformat()
            if battle.start_time
            else "not started"
        )
        lines = [
            f"      Creator:        {battle.creator}",
            f"      Opponent:       {battle.opponent}",
            f"      Creator Token:  {battle.creator_token_id}",
            f"      Opponent Token: {battle.opponent_token_id}",
            f"      Start Time:     {started}",
            f"      Duration:       {battle.duration}s",
            f"      Time Remaining: {self.get_time_remaining(battle)}s",
            f"      Status:         {status_name(battle.status)}",
        ]
        if battle.battle_type == BattleType.RANGE:
            lines.append(
                f"      In-Range Time:  creator {battle.creator_in_range_time}s / "
                f"opponent {battle.opponent_in_range_time}s"
            )
        if int(battle.winner, 16) != 0:
            lines.append(f"      Winner:         {battle.winner}")
        return lines

    def print_status(self, verbose: bool = False, strict: bool = False):
        print("\n".join(self.status_lines(verbose, strict)))


# ======================================================================
# Entry point
# ======================================================================

if __name__ == "__main__":
    setup_logging()
    agent = BattleAgent(sys.argv[1] if len(sys.argv) > 1 else None)
    agent.print_status()
    agent.start_monitoring()
