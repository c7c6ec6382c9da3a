"""Tests for cross-chain entry planning."""

from battle_agent.cctp import CCTP_CONTRACTS, CCTPBridge
from battle_agent.cross_chain import (
    BattleEntryIntent,
    CrossChainEntryAgent,
    PlannedTx,
    TargetPool,
    estimate_fees,
    estimate_total_gas,
    format_plan,
    is_usdc_token,
)
from battle_agent.journal import ActionLog

from conftest import FakeSession, StubLiFi

USER = "0x" + "aa" * 20
BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
BASE_WETH = "0x4200000000000000000000000000000000000006"


LIFI_ROUTE = {
    "toAmount": "24900000",
    "toToken": {"decimals": 6},
    "steps": [
        {
            "type": "cross",
            "tool": "across",
            "action": {
                "fromChainId": 8453,
                "fromAddress": USER,
                "fromToken": {"symbol": "USDC"},
                "toToken": {"symbol": "USDC"},
            },
            "estimate": {"feeCosts": [{"amountUSD": "0.10"}, {"amountUSD": "0.25"}]},
        }
    ],
}


def _intent(source_chain=8453, token=BASE_USDC, amount=25_000_000, target_chain=42161, **kw):
    return BattleEntryIntent(
        user_address=USER,
        source_chain=source_chain,
        source_token=token,
        amount=amount,
        target_pool=TargetPool(target_chain, "0x" + "e0" * 20, "0x" + "e1" * 20, -600, 600),
        **kw,
    )


def _planner(routes=None, journal=None):
    return CrossChainEntryAgent(lifi=StubLiFi(routes), bridge=CCTPBridge(session=FakeSession()), journal=journal)


def test_analyze_intent_flags_problems():
    result = _planner().analyze_intent(_intent(source_chain=999, amount=5_000_000, target_chain=999))
    assert not result["is_valid"]
    assert result["issues"] == ["Source chain 999 not supported", "Target chain 999 not supported"]
    assert "Same chain - no bridging needed, just swap" in result["recommendations"]
    assert result["recommendations"][0].startswith("Amount is small")


def test_analyze_intent_detects_usdc():
    result = _planner().analyze_intent(_intent())
    assert result["is_valid"]
    assert any(r.startswith("USDC detected") for r in result["recommendations"])
    assert not any(r.startswith("USDC detected") for r in _planner().analyze_intent(_intent(token=BASE_WETH))["recommendations"])


def test_is_usdc_token_uses_cctp_table_for_testnets():
    assert is_usdc_token(84532, CCTP_CONTRACTS["BASE_SEPOLIA"]["usdc"].lower())
    assert not is_usdc_token(84532, BASE_WETH)
    assert not is_usdc_token(999, BASE_USDC)


def test_route_options_prefer_lifi():
    journal = ActionLog()
    options = _planner([LIFI_ROUTE], journal).get_route_options(_intent())

    assert [(o.method, o.recommended) for o in options] == [("lifi_direct", True), ("cctp", False)]
    lifi, cctp = options
    assert lifi.estimated_output == "24.9000"
    assert lifi.fees == "~$0.35"
    assert lifi.steps == 1
    assert cctp.estimated_output == "25.00 USDC"
    assert cctp.fees == "~$0.50-1.00 (gas only)"
    assert cctp.steps == 4
    assert [r.status for r in journal.all()] == ["pending", "success"]


def test_cctp_is_recommended_when_lifi_has_nothing():
    options = _planner([]).get_route_options(_intent())
    assert [(o.method, o.recommended) for o in options] == [("cctp", True)]


def test_no_routes_for_non_usdc_without_lifi():
    assert _planner([]).get_route_options(_intent(token=BASE_WETH)) == []


def test_cctp_execution_plan():
    journal = ActionLog()
    planner = _planner([], journal)
    intent = _intent()
    plan = planner.create_execution_plan(intent, planner.get_route_options(intent)[0])

    assert [tx.action for tx in plan.transactions] == [
        "approve",
        "depositForBurn",
        "waitForAttestation",
        "receiveMessage",
        "swap",
        "addLiquidity",
        "createBattle",
    ]
    assert [tx.step for tx in plan.transactions] == list(range(1, 8))
    approve = plan.transactions[0]
    assert approve.chain_id == 8453
    assert approve.data.startswith("0x095ea7b3")
    assert plan.transactions[2].chain_id == 0
    assert plan.transactions[3].to == CCTP_CONTRACTS["ARBITRUM"]["message_transmitter"]
    assert plan.transactions[5].description == "Add liquidity at ticks [-600, 600]"
    assert plan.transactions[6].description == "Create new battle (86400s duration)"
    assert plan.estimated_total_gas == "~1.10M gas"
    assert "CCTP_PLAN" in [r.action for r in journal.all()]


def test_lifi_execution_plan_joins_battle():
    planner = _planner([LIFI_ROUTE])
    intent = _intent(battle_id=7)
    plan = planner.create_execution_plan(intent, planner.get_route_options(intent)[0])

    assert [tx.action for tx in plan.transactions] == ["cross", "swap", "addLiquidity", "joinBattle"]
    assert plan.transactions[0].description == "cross: across - USDC -> USDC"
    assert plan.transactions[-1].description == "Join battle #7"
    assert plan.estimated_total_gas == "~0.75M gas"

    lines = format_plan(plan)
    assert "   Method: lifi_direct" in lines
    assert "   4. [42161] joinBattle" in lines


def test_estimators():
    assert estimate_fees({"steps": [{"estimate": {"feeCosts": None}}, {}]}) == "~$0.00"
    txs = [PlannedTx(1, "waitForAttestation", 0, "", ""), PlannedTx(2, "approve", 1, "", "")]
    assert estimate_total_gas(txs) == "~0.05M gas"
