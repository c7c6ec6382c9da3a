"""
Cross-chain battle entry planner.

Given a user's funds on some chain, compares a LI.FI direct route with a
CCTP USDC bridge and lays out the transaction sequence needed to end up in a
battle pool. Nothing is signed here.
"""

import logging
from dataclasses import dataclass, field

from battle_agent.cctp import CCTP_CONTRACTS, CCTPBridge, format_usdc
from battle_agent.lifi import USDC_BY_CHAIN, LiFiClient, format_amount

logger = logging.getLogger(__name__)

CHAIN_NAMES = {
    1: "ETHEREUM",
    42161: "ARBITRUM",
    8453: "BASE",
    137: "POLYGON",
    10: "OPTIMISM",
    11155111: "SEPOLIA",
    84532: "BASE_SEPOLIA",
    421614: "ARBITRUM_SEPOLIA",
}

# Rough per-action gas used for plan estimates
GAS_ESTIMATES = {
    "approve": 50_000,
    "depositForBurn": 150_000,
    "receiveMessage": 200_000,
    "swap": 200_000,
    "addLiquidity": 300_000,
    "createBattle": 200_000,
    "joinBattle": 150_000,
}
DEFAULT_GAS_ESTIMATE = 100_000
SMALL_AMOUNT = 10 * 10**6  # 10 USDC
DEFAULT_BATTLE_DURATION = 86_400


@dataclass
class TargetPool:
    chain_id: int
    token0: str
    token1: str
    tick_lower: int
    tick_upper: int


@dataclass
class BattleEntryIntent:
    user_address: str
    source_chain: int
    source_token: str
    amount: int
    target_pool: TargetPool
    battle_id: int | None = None
    duration: int | None = None


@dataclass
class RouteOption:
    method: str  # lifi_direct | cctp
    estimated_time: str
    estimated_output: str
    fees: str
    steps: int
    recommended: bool
    details: dict = field(default_factory=dict)


@dataclass
class PlannedTx:
    step: int
    action: str
    chain_id: int
    to: str
    description: str
    data: str | None = None


@dataclass
class ExecutionPlan:
    intent: BattleEntryIntent
    selected_route: RouteOption
    transactions: list[PlannedTx]
    estimated_total_gas: str


def chain_name(chain_id: int) -> str | None:
    return CHAIN_NAMES.get(chain_id)


def is_usdc_token(chain_id: int, token_address: str) -> bool:
    usdc = USDC_BY_CHAIN.get(chain_id)
    if usdc is None:
        cctp = CCTP_CONTRACTS.get(chain_name(chain_id) or "")
        usdc = cctp["usdc"] if cctp else None
    return usdc is not None and usdc.lower() == token_address.lower()


def estimate_fees(route: dict) -> str:
    total = 0.0
    for step in route.get("steps", []):
        for fee in (step.get("estimate") or {}).get("feeCosts") or []:
            total += float(fee.get("amountUSD") or 0)
    return f"~${total:.2f}"


def estimate_total_gas(transactions: list[PlannedTx]) -> str:
    total = sum(
        GAS_ESTIMATES.get(tx.action, DEFAULT_GAS_ESTIMATE)
        for tx in transactions
        if tx.action != "waitForAttestation"
    )
    return f"~{total / 1_000_000:.2f}M gas"


class CrossChainEntryAgent:
    """Monitor intent -> decide route -> lay out the execution plan."""

    def __init__(self, lifi: LiFiClient | None = None, bridge: CCTPBridge | None = None, journal=None):
        self.lifi = lifi or LiFiClient()
        self.bridge = bridge or CCTPBridge()
        self.journal = journal

    def _log(self, action: str, reasoning: str, status: str = "pending", **details) -> None:
        if self.journal is not None:
            self.journal.log_action(action, reasoning, status=status, **details)

    def analyze_intent(self, intent: BattleEntryIntent) -> dict:
        issues = []
        recommendations = []

        if chain_name(intent.source_chain) is None:
            issues.append(f"Source chain {intent.source_chain} not supported")
        if chain_name(intent.target_pool.chain_id) is None:
            issues.append(f"Target chain {intent.target_pool.chain_id} not supported")
        if intent.amount <= 0:
            issues.append("Amount must be positive")

        if 0 < intent.amount < SMALL_AMOUNT:
            recommendations.append("Amount is small, fees may be significant percentage")
        if is_usdc_token(intent.source_chain, intent.source_token):
            recommendations.append("USDC detected - CCTP available for native burn-and-mint bridging")
        if intent.source_chain == intent.target_pool.chain_id:
            recommendations.append("Same chain - no bridging needed, just swap")

        return {"is_valid": not issues, "issues": issues, "recommendations": recommendations}

    def get_route_options(self, intent: BattleEntryIntent) -> list[RouteOption]:
        options: list[RouteOption] = []
        self._log(
            "ANALYZE_ROUTES",
            f"Finding routes from chain {intent.source_chain} to chain {intent.target_pool.chain_id}",
            inputs={
                "sourceChain": intent.source_chain,
                "targetChain": intent.target_pool.chain_id,
                "amount": str(intent.amount),
            },
        )

        # Bridge into one of the pool tokens first
        routes = self.lifi.get_routes(
            intent.source_chain,
            intent.target_pool.chain_id,
            intent.source_token,
            intent.target_pool.token1,
            intent.amount,
            intent.user_address,
        )
        if routes:
            best = routes[0]
            decimals = (best.get("toToken") or {}).get("decimals", 6)
            options.append(
                RouteOption(
                    method="lifi_direct",
                    estimated_time="5-15 minutes",
                    estimated_output=format_amount(best.get("toAmount", "0"), decimals),
                    fees=estimate_fees(best),
                    steps=len(best.get("steps", [])),
                    recommended=True,
                    details={"route": best},
                )
            )

        source_name = chain_name(intent.source_chain)
        target_name = chain_name(intent.target_pool.chain_id)
        if (
            is_usdc_token(intent.source_chain, intent.source_token)
            and source_name in CCTP_CONTRACTS
            and target_name in CCTP_CONTRACTS
            and source_name != target_name
        ):
            instructions = self.bridge.get_bridge_instructions(
                source_name, target_name, intent.amount, intent.user_address
            )
            options.append(
                RouteOption(
                    method="cctp",
                    estimated_time="15-20 minutes",
                    estimated_output=format_usdc(intent.amount),
                    fees="~$0.50-1.00 (gas only)",
                    steps=len(instructions["steps"]),
                    recommended=not options,
                    details={"bridgeInstructions": instructions},
                )
            )

        options.sort(key=lambda o: not o.recommended)
        self._log(
            "ANALYZE_ROUTES",
            f"Found {len(options)} route options",
            status="success",
            outputs={
                "options": [
                    {"method": o.method, "time": o.estimated_time, "recommended": o.recommended}
                    for o in options
                ]
            },
        )
        return options

    def create_execution_plan(self, intent: BattleEntryIntent, route: RouteOption) -> ExecutionPlan:
        pool = intent.target_pool
        transactions: list[PlannedTx] = []

        def add(action, chain_id, to, description, data=None):
            transactions.append(
                PlannedTx(len(transactions) + 1, action, chain_id, to, description, data)
            )

        self._log(
            "CREATE_EXECUTION_PLAN",
            f"Building execution plan using {route.method}",
            inputs={"method": route.method, "sourceChain": intent.source_chain, "targetChain": pool.chain_id},
        )

        if route.method == "lifi_direct" and route.details.get("route"):
            for step in route.details["route"].get("steps", []):
                action = step.get("action", {})
                add(
                    step.get("type", "lifi"),
                    action.get("fromChainId", intent.source_chain),
                    action.get("fromAddress", ""),
                    f"{step.get('type')}: {step.get('tool')} - "
                    f"{action.get('fromToken', {}).get('symbol')} -> {action.get('toToken', {}).get('symbol')}",
                )
        elif route.method == "cctp":
            source_name = chain_name(intent.source_chain)
            target_name = chain_name(pool.chain_id)
            approve = self.bridge.prepare_approve_data(source_name, intent.amount)
            add("approve", intent.source_chain, approve["to"], "Approve USDC for TokenMessenger", approve["data"])
            burn = self.bridge.prepare_deposit_for_burn_data(
                source_name, target_name, intent.amount, intent.user_address
            )
            add("depositForBurn", intent.source_chain, burn["to"], "Burn USDC on source chain", burn["data"])
            add("waitForAttestation", 0, "", "Wait for Circle attestation (~15 min)")
            add(
                "receiveMessage",
                pool.chain_id,
                CCTP_CONTRACTS[target_name]["message_transmitter"],
                "Mint USDC on destination chain",
            )
            if self.journal is not None:
                self.bridge.log_bridge_action(
                    self.journal, "PLAN", source_name, target_name, intent.amount,
                    intent.user_address, "pending",
                )

        add("swap", pool.chain_id, "LI.FI Router", "Swap 50% USDC -> WETH for LP position")
        add(
            "addLiquidity",
            pool.chain_id,
            "Uniswap V4 PositionManager",
            f"Add liquidity at ticks [{pool.tick_lower}, {pool.tick_upper}]",
        )
        if intent.battle_id is not None:
            add("joinBattle", pool.chain_id, "BattleArena", f"Join battle #{intent.battle_id}")
        else:
            duration = intent.duration or DEFAULT_BATTLE_DURATION
            add("createBattle", pool.chain_id, "BattleArena", f"Create new battle ({duration}s duration)")

        plan = ExecutionPlan(intent, route, transactions, estimate_total_gas(transactions))
        self._log(
            "CREATE_EXECUTION_PLAN",
            f"Execution plan created with {len(transactions)} steps",
            status="success",
            outputs={"totalSteps": len(transactions), "estimatedGas": plan.estimated_total_gas},
        )
        return plan


def format_plan(plan: ExecutionPlan) -> list[str]:
    lines = [
        "=" * 70,
        "CROSS-CHAIN BATTLE ENTRY EXECUTION PLAN",
        "=" * 70,
        "Intent:",
        f"   From: Chain {plan.intent.source_chain}",
        f"   To: Chain {plan.intent.target_pool.chain_id}",
        f"   Amount: {plan.intent.amount}",
        "Selected Route:",
        f"   Method: {plan.selected_route.method}",
        f"   Time: {plan.selected_route.estimated_time}",
        f"   Output: {plan.selected_route.estimated_output}",
        f"   Fees: {plan.selected_route.fees}",
        "Transactions:",
    ]
    for tx in plan.transactions:
        label = "(offchain)" if tx.chain_id == 0 else f"[{tx.chain_id}]"
        lines.append(f"   {tx.step}. {label} {tx.action}")
        lines.append(f"      {tx.description}")
    lines.append(f"Estimated Total Gas: {plan.estimated_total_gas}")
    lines.append("=" * 70)
    return lines
