"""Tests for the Flask API using the test client."""

import pytest

from battle_agent.cctp import CCTPBridge
from battle_agent.cross_chain import CrossChainEntryAgent
from battle_agent.pool_analyzer import compute_pool_slot0, encode_slot0
from battle_agent.models import PoolState
from battle_agent.server import create_app

from conftest import AGENT_ADDRESS, CREATOR, NOW, OPPONENT, ZERO, FakeSession, StubLiFi

POOL_ID = "0x" + "5a" * 32


@pytest.fixture
def client(arena, agent, frozen_time):
    arena.add(1)
    arena.add(2, status=0, opponent=ZERO, start_time=0, duration=100_000, last_update_time=0)
    arena.add(3, status=0, opponent=ZERO, start_time=0, duration=1_800, last_update_time=0)
    arena.add(4, status=2, start_time=NOW - 200_000)
    app = create_app(agent)
    app.config["TESTING"] = True
    return app.test_client()


def test_health_before_and_after_cycle(client):
    assert client.get("/health").status_code == 503
    client.post("/api/cycle")
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["cycleCount"] == 1


def test_status(client):
    data = client.get("/api/status").get_json()
    assert data["address"] == AGENT_ADDRESS
    assert data["chainId"] == 421614
    assert data["balance"] == pytest.approx(0.5)
    assert data["isRunning"] is False
    assert data["cycleCount"] == 0


def test_battles_summary(client):
    client.post("/api/cycle")
    data = client.get("/api/battles").get_json()
    assert data["active"]["count"] == 1
    active = data["active"]["battles"][0]
    assert set(active) == {
        "id",
        "creator",
        "opponent",
        "winner",
        "creatorDex",
        "opponentDex",
        "creatorTokenId",
        "opponentTokenId",
        "creatorValueUsd",
        "opponentValueUsd",
        "battleType",
        "status",
        "startTime",
        "duration",
        "token0",
        "token1",
        "creatorInRangeTime",
        "opponentInRangeTime",
        "lastUpdateTime",
        "timeRemaining",
    }
    assert active["timeRemaining"] == 86_400 - 3_600
    assert active["creator"] == CREATOR
    assert active["id"] == "1"
    assert active["creatorValueUsd"] == str(1_000 * 10**8)
    assert active["startTime"] == str(NOW - 3_600)
    assert active["status"] == 1
    assert active["opponentDex"] == 1
    assert data["pending"]["battles"][0]["duration"] == "100000"
    assert data["pending"]["count"] == 2
    assert data["expired"]["count"] == 1


def test_vaults_redirects(client):
    resp = client.get("/api/vaults")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/api/battles")


def test_cycle_then_decisions_logs_transactions(client):
    data = client.post("/api/cycle").get_json()
    assert data["success"] is True
    assert data["cycleCount"] == 1
    assert [d["type"] for d in data["decisions"]] == ["resolve", "update_status", "analyze", "analyze"]

    assert client.get("/api/decisions").get_json() == data["decisions"]
    logs = client.get("/api/logs?limit=2").get_json()
    assert len(logs) == 2
    assert client.get("/api/logs?limit=x").status_code == 400
    txs = client.get("/api/transactions").get_json()
    assert txs["totalTxs"] == 2
    assert txs["summary"] == {"resolve": 1, "update": 1}


def test_cycle_failure_reports_error(client, agent, monkeypatch):
    def boom():
        raise RuntimeError("lock poisoned")

    monkeypatch.setattr(agent, "run_strategy_cycle", boom)
    assert client.post("/api/cycle").get_json() == {"success": False, "error": "lock poisoned"}


def test_routes_empty_by_default(client):
    assert client.get("/api/routes").get_json() == []


def test_battle_detail(client):
    data = client.get("/api/battles/1").get_json()
    assert data["battle"]["id"] == "1"
    assert data["analysis"]["battleId"] == 1
    assert data["analysis"]["timeRemaining"] == 86_400 - 3_600
    assert data["analysis"]["recommendation"] == "Creator leading with 3000s in-range time"
    assert client.get("/api/battles/0x1").status_code == 200


@pytest.mark.parametrize("path, code", [("/api/battles/99", 404), ("/api/battles/abc", 400), ("/api/battles/-1", 400)])
def test_battle_detail_errors(client, path, code):
    resp = client.get(path)
    assert resp.status_code == code
    assert "error" in resp.get_json()


def test_probability(client):
    data = client.get("/api/battles/1/probability").get_json()
    assert data["creatorProbability"] + data["opponentProbability"] == pytest.approx(1.0)
    assert data["creatorProbability"] > 0.5
    assert client.get("/api/battles/99/probability").status_code == 404


def test_recommendations_sorted(client):
    recs = client.get("/api/recommendations").get_json()["recommendations"]
    assert [(r["battleId"], r["entryScore"]) for r in recs] == [("3", 70), ("2", 40)]


def test_pool_endpoint(client, arena):
    arena.storage[compute_pool_slot0(POOL_ID)] = encode_slot0(PoolState(2**96, -10, 0, 3000))
    data = client.get(f"/api/pools/{POOL_ID}").get_json()
    assert data["slot0"]["tick"] == -10
    assert data["slot0"]["sqrtPriceX96"] == str(2**96)
    assert data["slot0"]["lpFee"] == 3000
    assert data["liquidity"] == "0"
    assert data["price"] == pytest.approx(1.0)
    assert client.get("/api/pools/0x1234").status_code == 400


def test_player_and_leaderboard(client, arena):
    arena.players[CREATOR.lower()] = (1_300, 3, 0, 3, 0)
    arena.players[OPPONENT.lower()] = (1_100, 1, 2, 3, 0)

    player = client.get(f"/api/players/{CREATOR}").get_json()
    assert player == {
        "address": CREATOR,
        "elo": "1300",
        "wins": "3",
        "losses": "0",
        "totalBattles": "3",
        "totalValueWon": "0",
    }
    assert client.get("/api/players/not-an-address").status_code == 500

    players = client.get("/api/leaderboard").get_json()["players"]
    assert [p["address"] for p in players] == [CREATOR, OPPONENT]
    assert [p["elo"] for p in players] == ["1300", "1100"]


def test_cors_header(client):
    assert client.get("/api/status").headers["Access-Control-Allow-Origin"] == "*"


def test_battles_read_failure_is_500(client, arena):
    arena.fail_status_reads = True
    assert client.get("/api/battles").status_code == 500
    assert client.get("/api/recommendations").status_code == 500


def test_log_and_transaction_shapes(client):
    client.post("/api/cycle")
    logs = client.get("/api/logs?limit=50").get_json()
    settled = next(r for r in logs if r["action"] == "SETTLE_BATTLE" and r["status"] == "success")
    assert set(settled) == {
        "action",
        "reasoning",
        "status",
        "timestamp",
        "battleId",
        "contractType",
        "inputs",
        "outputs",
        "txHash",
        "gasUsed",
    }
    assert settled["battleId"] == "4"
    assert settled["txHash"] == "0x" + "ab" * 32
    assert settled["outputs"]["blockNumber"] == "1234"

    tx = client.get("/api/transactions").get_json()["transactions"][0]
    assert tx["chainId"] == 421614
    assert tx["blockNumber"] == 1234
    assert tx["fromAddress"] == AGENT_ADDRESS


def test_clear_logs(client, agent):
    client.post("/api/cycle")
    data = client.post("/api/logs/clear").get_json()
    assert data["success"] is True
    assert data["cleared"]["transactions"] == 2
    assert data["cleared"]["actions"] > 0
    assert client.get("/api/logs").get_json() == []
    assert client.get("/api/transactions").get_json()["totalTxs"] == 0


ENTRY_BODY = {
    "sourceChain": 8453,
    "sourceToken": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    "amount": "25000000",
    "targetPool": {
        "chainId": 42161,
        "token0": "0x" + "e0" * 20,
        "token1": "0x" + "e1" * 20,
        "tickLower": -600,
        "tickUpper": 600,
    },
    "battleId": "2",
}


def test_plan_routes_fills_last_routes(client, agent):
    agent.cross_chain = CrossChainEntryAgent(
        lifi=StubLiFi([]), bridge=CCTPBridge(session=FakeSession()), journal=agent.context.actions
    )
    resp = client.post("/api/routes", json=ENTRY_BODY)
    assert resp.status_code == 200
    data = resp.get_json()
    assert [r["method"] for r in data["routes"]] == ["cctp"]
    assert data["routes"][0]["estimatedTime"] == "15-20 minutes"
    assert data["plan"]["transactions"][-1]["action"] == "joinBattle"
    assert data["plan"]["estimatedTotalGas"] == "~1.05M gas"
    assert data["plan"]["intent"]["userAddress"] == AGENT_ADDRESS

    assert client.get("/api/routes").get_json() == data["routes"]


@pytest.mark.parametrize(
    "body",
    [None, {"sourceChain": 8453}, dict(ENTRY_BODY, amount="lots"), dict(ENTRY_BODY, sourceChain=999)],
)
def test_plan_routes_rejects_bad_intent(client, agent, body):
    agent.cross_chain = CrossChainEntryAgent(lifi=StubLiFi([]), bridge=CCTPBridge(session=FakeSession()))
    resp = client.post("/api/routes", json=body) if body is not None else client.post("/api/routes")
    assert resp.status_code == 400
    assert "error" in resp.get_json()
    assert client.get("/api/routes").get_json() == []
