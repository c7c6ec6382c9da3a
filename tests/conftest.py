"""Shared fakes: an in-memory BattleArena/PoolManager behind a web3-shaped object."""

import time
from types import SimpleNamespace

import pytest
import requests

from battle_agent.journal import AgentContext

NOW = 1_700_000_000

ARENA = "0x" + "11" * 20
LEADERBOARD = "0x" + "22" * 20
POOL_MANAGER = "0x" + "33" * 20
AGENT_ADDRESS = "0x" + "aa" * 20
CREATOR = "0x" + "c1" * 20
OPPONENT = "0x" + "0f" * 20
ZERO = "0x" + "00" * 20
TX_HASH = bytes.fromhex("ab" * 32)


def make_battle(**overrides) -> tuple:
    """A getBattle() result tuple in ABI component order."""
    fields = dict(
        creator=CREATOR,
        opponent=OPPONENT,
        winner=ZERO,
        creator_dex=0,
        opponent_dex=1,
        creator_token_id=7,
        opponent_token_id=8,
        creator_value_usd=1_000 * 10**8,
        opponent_value_usd=1_200 * 10**8,
        battle_type=0,
        status=1,
        start_time=NOW - 3_600,
        duration=86_400,
        token0="0x" + "e0" * 20,
        token1="0x" + "e1" * 20,
        creator_in_range_time=3_000,
        opponent_in_range_time=1_000,
        last_update_time=NOW - 600,
    )
    fields.update(overrides)
    return tuple(fields.values())


class FakeCall:
    def __init__(self, name, handler, args):
        self.name = name
        self.handler = handler
        self.args = args

    def call(self, tx=None):
        return self.handler(*self.args)

    def build_transaction(self, params):
        return dict(params, to=ARENA, data=self.name, gas=200_000, value=0)


class FakeFunctions:
    def __init__(self, handlers):
        self._handlers = handlers

    def __getattr__(self, name):
        try:
            handler = self._handlers[name]
        except KeyError:
            raise AttributeError(name) from None
        return lambda *args: FakeCall(name, handler, args)


class FakeArena:
    """BattleArena + Leaderboard + PoolManager state."""

    def __init__(self):
        self.battles: dict[int, tuple] = {}
        self.by_status: dict[int, list[int]] = {0: [], 1: [], 2: [], 3: []}
        self.expired: set[int] = set()
        self.reverts: set[int] = set()
        self.resolved: list[int] = []
        self.updated: list[int] = []
        self.players: dict[str, tuple] = {}
        self.storage: dict[bytes, int] = {}
        self.fail_status_reads = False

    def add(self, battle_id: int, **overrides):
        battle = make_battle(**overrides)
        self.battles[battle_id] = battle
        self.by_status[battle[10]].append(battle_id)
        return battle

    # BattleArena
    def getBattlesByStatus(self, status):
        if self.fail_status_reads:
            raise ConnectionError("rpc down")
        return list(self.by_status.get(status, []))

    def getBattleCount(self):
        return len(self.battles)

    def getBattle(self, battle_id):
        if battle_id not in self.battles:
            raise ValueError(f"execution reverted: battle {battle_id} does not exist")
        return self.battles[battle_id]

    def isBattleExpired(self, battle_id):
        return battle_id in self.expired

    def resolveBattle(self, battle_id):
        if battle_id in self.reverts:
            raise ValueError("execution reverted: battle not expired")
        self.resolved.append(battle_id)

    def updateBattleStatus(self, battle_id):
        if battle_id in self.reverts:
            raise ValueError("execution reverted")
        self.updated.append(battle_id)

    # Leaderboard
    def getPlayerStats(self, address):
        return self.players.get(address.lower(), (1000, 0, 0, 0, 0))

    # PoolManager
    def extsload(self, slot):
        return self.storage.get(bytes(slot), 0).to_bytes(32, "big")

    def handlers(self) -> dict:
        names = (
            "getBattlesByStatus",
            "getBattleCount",
            "getBattle",
            "isBattleExpired",
            "resolveBattle",
            "updateBattleStatus",
            "getPlayerStats",
            "extsload",
        )
        return {name: getattr(self, name) for name in names}


class FakeEth:
    def __init__(self, arena: FakeArena):
        self.arena = arena
        self.gas_price = 100_000_000
        self.chain_id = 421614
        self.balance = 5 * 10**17
        self.sent: list[bytes] = []
        self.receipt_status = 1
        self.balance_error = None

    def contract(self, address, abi):
        return SimpleNamespace(address=address, functions=FakeFunctions(self.arena.handlers()))

    def get_balance(self, address):
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance

    def get_transaction_count(self, address):
        return len(self.sent)

    def send_raw_transaction(self, raw):
        self.sent.append(raw)
        return TX_HASH

    def wait_for_transaction_receipt(self, tx_hash):
        return {"status": self.receipt_status, "gasUsed": 84_000, "blockNumber": 1234}


class FakeAccount:
    address = AGENT_ADDRESS

    def sign_transaction(self, tx):
        return SimpleNamespace(raw_transaction=b"signed:" + tx["data"].encode())


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self.payload is None:
            raise ValueError("no json")
        return self.payload


class FakeSession:
    """requests.Session stand-in that records calls and replays one response."""

    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def _respond(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)


@pytest.fixture
def frozen_time(monkeypatch):
    monkeypatch.setattr(time, "time", lambda: float(NOW))
    return NOW


@pytest.fixture
def arena():
    return FakeArena()


@pytest.fixture
def fake_w3(arena):
    return SimpleNamespace(eth=FakeEth(arena))


@pytest.fixture
def settings(tmp_path):
    return SimpleNamespace(
        CHAIN_NAME="Arbitrum Sepolia",
        CHAIN_ID=421614,
        RPC_URL="http://localhost:8545",
        HTTP_TIMEOUT=5,
        PRIVATE_KEY="",
        BATTLE_ARENA_ADDRESS=ARENA,
        LEADERBOARD_ADDRESS=LEADERBOARD,
        POOL_MANAGER=POOL_MANAGER,
        POOLS_MAPPING_SLOT=6,
        LIQUIDITY_SLOT_OFFSET=3,
        AUTO_SETTLE=True,
        AUTO_UPDATE_STATUS=True,
        POLL_INTERVAL=0.01,
        LOG_DIR=tmp_path,
    )


class DummyPlanner:
    """Stands in for CrossChainEntryAgent where no routing is exercised."""

    def analyze_intent(self, intent):
        return {"is_valid": True, "issues": [], "recommendations": []}

    def get_route_options(self, intent):
        return []


@pytest.fixture
def agent(fake_w3, settings, tmp_path):
    from battle_agent.agent import BattleAgent

    return BattleAgent(
        w3=fake_w3,
        settings=settings,
        context=AgentContext.with_log_dir(tmp_path),
        account=FakeAccount(),
        cross_chain=DummyPlanner(),
    )


class StubLiFi:
    """LiFiClient stand-in returning canned routes."""

    def __init__(self, routes=None):
        self.routes = routes or []
        self.requests = []

    def get_routes(self, *args):
        self.requests.append(args)
        return self.routes
