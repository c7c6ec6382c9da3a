"""
Agent API: Flask JSON surface over a running BattleAgent.

Read endpoints expose agent status, arena battles, the action journal, last
decisions/routes and transaction evidence. POST /api/cycle triggers a manual
strategy cycle, POST /api/routes plans a cross-chain entry and POST
/api/logs/clear empties the journal. Keys are camelCase and on-chain uints
are decimal strings. The strategy loop itself runs in a background thread.
"""

import logging
import threading
import time

from flask import Flask, jsonify, redirect, request

from battle_agent import config
from battle_agent.arena_manager import ArenaReadError
from battle_agent.cross_chain import BattleEntryIntent, TargetPool
from battle_agent.models import to_jsonable
from battle_agent.pool_analyzer import compute_pool_slot0

logger = logging.getLogger(__name__)

LEADERBOARD_SCAN_LIMIT = 100


def _json(data, status: int = 200):
    return jsonify(to_jsonable(data)), status


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _parse_battle_id(raw: str) -> int:
    battle_id = int(raw, 0) if raw.lower().startswith("0x") else int(raw)
    if battle_id < 0:
        raise ValueError(f"negative battle id: {raw}")
    return battle_id


def _parse_intent(payload: dict, default_user: str) -> BattleEntryIntent:
    """BattleEntryIntent from a camelCase JSON body; raises KeyError/TypeError/ValueError."""
    pool = payload["targetPool"]
    battle_id = payload.get("battleId")
    duration = payload.get("duration")
    return BattleEntryIntent(
        user_address=payload.get("userAddress") or default_user,
        source_chain=int(payload["sourceChain"]),
        source_token=str(payload["sourceToken"]),
        amount=int(payload["amount"]),
        target_pool=TargetPool(
            chain_id=int(pool["chainId"]),
            token0=str(pool["token0"]),
            token1=str(pool["token1"]),
            tick_lower=int(pool["tickLower"]),
            tick_upper=int(pool["tickUpper"]),
        ),
        battle_id=int(battle_id) if battle_id is not None else None,
        duration=int(duration) if duration is not None else None,
    )


def _player_json(stats: dict) -> dict:
    # Leaderboard values are uint256 on-chain
    return {k: v if k == "address" else str(v) for k, v in stats.items()}


def create_app(agent) -> Flask:
    app = Flask(__name__)

    @app.after_request
    def allow_cors(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    # ------------------------------------------------------------------
    # Agent state
    # ------------------------------------------------------------------

    @app.route("/health")
    def health():
        if agent.last_monitor_result is not None:
            return jsonify({"ok": True, "status": "ok", "cycleCount": agent.cycle_count}), 200
        return jsonify({"ok": False, "status": "initializing", "cycleCount": agent.cycle_count}), 503

    @app.route("/api/status")
    def api_status():
        try:
            balance = agent.get_balance()
        except Exception as e:
            logger.warning("Balance read failed: %s", e)
            balance = None
        now = time.time()
        return _json(
            {
                "address": agent.address,
                "balance": balance,
                "network": agent.config.CHAIN_NAME,
                "chainId": agent.config.CHAIN_ID,
                "battleArena": agent.config.BATTLE_ARENA_ADDRESS,
                "cycleCount": agent.cycle_count,
                "isRunning": agent.is_running,
                "startedAt": agent.started_at,
                "uptime": round(now - agent.started_at, 3),
            }
        )

    @app.route("/api/battles")
    def api_battles():
        try:
            active = agent.get_active_battles(strict=True)
            pending = agent.get_pending_battles(strict=True)
        except ArenaReadError as e:
            logger.error("Failed to list battles: %s", e)
            return _error("Failed to read battles", 500)

        active_details = []
        for battle_id in active:
            battle = agent.get_battle(battle_id)
            if battle is not None:
                details = to_jsonable(battle)
                details["timeRemaining"] = agent.get_time_remaining(battle)
                active_details.append(details)

        pending_details = [b for b in (agent.get_battle(i) for i in pending) if b is not None]
        monitor = agent.last_monitor_result
        return _json(
            {
                "active": {"count": len(active), "battles": active_details},
                "pending": {"count": len(pending), "battles": pending_details},
                "expired": {"count": len(monitor.expired_battles) if monitor else 0},
            }
        )

    @app.route("/api/vaults")
    def api_vaults():
        return redirect("/api/battles")

    @app.route("/api/logs")
    def api_logs():
        try:
            limit = int(request.args.get("limit", 50))
        except ValueError:
            return _error("limit must be an integer", 400)
        return _json(agent.context.actions.recent(limit))

    @app.route("/api/decisions")
    def api_decisions():
        return _json(agent.last_decisions)

    @app.route("/api/routes")
    def api_routes():
        return _json(agent.last_routes)

    @app.route("/api/routes", methods=["POST"])
    def api_plan_routes():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return _error("JSON body required", 400)
        try:
            intent = _parse_intent(payload, agent.address)
        except (KeyError, TypeError, ValueError) as e:
            return _error(f"Invalid intent: {e}", 400)

        routes = agent.get_cross_chain_routes(intent)
        if routes is None:
            issues = agent.cross_chain.analyze_intent(intent)["issues"]
            return _json({"error": "Invalid intent", "issues": issues}, 400)
        plan = agent.plan_cross_chain_entry(intent, routes)
        return _json({"routes": routes, "plan": plan})

    @app.route("/api/logs/clear", methods=["POST"])
    def api_clear_logs():
        return _json({"success": True, "cleared": agent.context.clear()})

    @app.route("/api/transactions")
    def api_transactions():
        return _json(agent.context.transactions.export())

    @app.route("/api/cycle", methods=["POST"])
    def api_cycle():
        try:
            decisions = agent.run_strategy_cycle()
        except Exception as e:
            logger.error("Manual cycle failed: %s", e)
            return _json({"success": False, "error": str(e)})
        return _json({"success": True, "cycleCount": agent.cycle_count, "decisions": decisions})

    # ------------------------------------------------------------------
    # Advisory endpoints
    # ------------------------------------------------------------------

    @app.route("/api/battles/<raw_id>")
    def api_battle_detail(raw_id):
        try:
            battle_id = _parse_battle_id(raw_id)
        except ValueError:
            return _error("Invalid battle ID", 400)
        battle = agent.get_battle(battle_id)
        if battle is None:
            return _error("Battle not found", 404)
        analysis = agent.analyzer.analyze_battle(battle_id)
        return _json({"battle": battle, "analysis": analysis})

    @app.route("/api/battles/<raw_id>/probability")
    def api_battle_probability(raw_id):
        try:
            battle_id = _parse_battle_id(raw_id)
        except ValueError:
            return _error("Invalid battle ID", 400)
        battle = agent.get_battle(battle_id)
        if battle is None:
            return _error("Battle not found", 404)
        return _json(agent.analyzer.calculate_win_probability(battle))

    @app.route("/api/recommendations")
    def api_recommendations():
        try:
            recommendations = []
            for battle_id in agent.get_pending_battles(strict=True):
                analysis = agent.analyzer.analyze_battle(battle_id)
                if analysis is None:
                    continue
                recommendations.append(
                    {
                        "battleId": str(battle_id),
                        "battle": agent.get_battle(battle_id),
                        "analysis": analysis,
                        "entryScore": agent.analyzer.score_battle_for_entry(analysis),
                    }
                )
        except Exception as e:
            logger.error("Failed to compute recommendations: %s", e)
            return _error("Failed to compute recommendations", 500)
        recommendations.sort(key=lambda r: r["entryScore"], reverse=True)
        return _json({"recommendations": recommendations})

    @app.route("/api/pools/<pool_id>")
    def api_pool(pool_id):
        try:
            compute_pool_slot0(pool_id)
        except ValueError:
            return _error("Invalid pool ID", 400)
        state = agent.analyzer.get_pool_state(pool_id)
        if state is None:
            return _error("Failed to read pool state", 500)
        liquidity = agent.analyzer.get_pool_liquidity(pool_id)
        return _json(
            {
                "poolId": pool_id,
                "slot0": state,
                "price": agent.analyzer.sqrt_price_to_price(state.sqrt_price_x96),
                "liquidity": None if liquidity is None else str(liquidity),
                "tokens": {"weth": config.WETH_ADDRESS, "usdc": config.USDC_ADDRESS},
            }
        )

    @app.route("/api/players/<address>")
    def api_player(address):
        try:
            stats = agent.arena.get_player_stats(address)
        except Exception as e:
            logger.error("Failed to read player stats for %s: %s", address, e)
            return _error("Failed to read player stats", 500)
        return _json(_player_json(stats))

    @app.route("/api/leaderboard")
    def api_leaderboard():
        try:
            limit = min(agent.arena.get_battle_count(), LEADERBOARD_SCAN_LIMIT)
            players = []
            for battle_id in range(limit):
                battle = agent.get_battle(battle_id)
                if battle is None:
                    continue
                for addr in (battle.creator, battle.opponent):
                    if int(addr, 16) != 0 and addr not in players:
                        players.append(addr)

            stats = []
            for addr in players:
                try:
                    stats.append(agent.arena.get_player_stats(addr))
                except Exception as e:
                    logger.debug("No leaderboard stats for %s: %s", addr, e)
                    stats.append(
                        {
                            "address": addr,
                            "elo": 0,
                            "wins": 0,
                            "losses": 0,
                            "totalBattles": 0,
                            "totalValueWon": 0,
                        }
                    )
        except Exception as e:
            logger.error("Failed to build leaderboard: %s", e)
            return _error("Failed to build leaderboard", 500)
        stats.sort(key=lambda s: s["elo"], reverse=True)
        return _json({"players": [_player_json(s) for s in stats]})

    return app


def run_server(agent, host: str | None = None, port: int | None = None, monitor: bool = True):
    """Serve the API; optionally run the strategy loop in a background thread."""
    if monitor:
        t = threading.Thread(target=agent.start_monitoring, daemon=True)
        t.start()
    host = host or config.SERVER_HOST
    port = port or config.SERVER_PORT
    app = create_app(agent)
    logger.info("API server running on http://localhost:%d", port)
    try:
        app.run(host=host, port=port, debug=False)
    finally:
        if monitor and agent.is_running:
            agent.stop_monitoring()
