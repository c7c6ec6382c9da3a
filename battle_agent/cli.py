"""
battle-agent command line.

    battle-agent status [-v]
    battle-agent analyze [BATTLE_ID]
    battle-agent settle [BATTLE_ID] [--force]
    battle-agent monitor
    battle-agent routes --source-chain 8453 --token 0x... --amount 100000000 --user 0x...
    battle-agent serve [--host H] [--port P] [--no-monitor]
"""

import argparse
import logging
import sys

from battle_agent import config
from battle_agent.agent import BattleAgent, setup_logging
from battle_agent.arena_manager import ArenaReadError
from battle_agent.cross_chain import BattleEntryIntent, TargetPool, format_plan
from battle_agent.models import BattleAnalysis, BattleStatus, battle_type_name, status_name

logger = logging.getLogger(__name__)

# Full-range ticks for tick spacing 60
FULL_RANGE_TICK_LOWER = -887220
FULL_RANGE_TICK_UPPER = 887220


def _make_agent() -> BattleAgent:
    config.validate_config()
    return BattleAgent(config.PRIVATE_KEY)


def format_battle_analysis(analysis: BattleAnalysis) -> list[str]:
    lines = [
        f"  Battle #{analysis.battle_id} [{battle_type_name(analysis.battle_type)}] "
        f"{status_name(analysis.status)}",
        f"    DEX:            {analysis.creator_dex} vs {analysis.opponent_dex}",
        f"    Expired:        {'yes' if analysis.is_expired else 'no'}",
        f"    Time Remaining: {analysis.time_remaining}s",
    ]
    if analysis.creator_score or analysis.opponent_score:
        lines.append(
            f"    Scores:         creator {analysis.creator_score} / opponent {analysis.opponent_score}"
        )
    if analysis.current_leader:
        lines.append(f"    Leader:         {analysis.current_leader}")
    lines.append(f"    >> {analysis.recommendation}")
    return lines


def entry_verdict(score: int) -> str:
    if score > config.ENTRY_SCORE_STRONG:
        return ">> Worth considering for entry"
    if score > config.ENTRY_SCORE_MODERATE:
        return ">> Moderate opportunity"
    return ">> Not recommended for entry"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_status(args) -> int:
    agent = _make_agent()
    agent.print_status(verbose=args.verbose, strict=True)
    return 0


def cmd_analyze(args) -> int:
    agent = _make_agent()
    analyzer = agent.analyzer
    print("=" * 70)
    print("  BATTLE ANALYZER - Uniswap V4 Pool Analysis")
    print("=" * 70)

    if args.battle_id is not None:
        print(f"Analyzing battle #{args.battle_id}...")
        analysis = analyzer.analyze_battle(args.battle_id)
        if analysis is None:
            print("  Battle not found or analysis failed")
            return 1
        print("\n".join(format_battle_analysis(analysis)))
        score = analyzer.score_battle_for_entry(analysis)
        print(f"\n  Entry Score: {score}/100")
        print(f"  {entry_verdict(score)}")
        return 0

    print("Analyzing all active battles...")
    active = agent.get_active_battles(strict=True)
    pending = agent.get_pending_battles(strict=True)
    if not active and not pending:
        print("  No active battles found")
        return 0

    for battle_id in active:
        analysis = analyzer.analyze_battle(battle_id)
        if analysis is not None:
            print("\n".join(format_battle_analysis(analysis)))

    if pending:
        print("\nJoinable Battles:")
        for battle_id in pending:
            analysis = analyzer.analyze_battle(battle_id)
            if analysis is None:
                continue
            score = analyzer.score_battle_for_entry(analysis)
            print(f"  #{battle_id}: Entry Score {score}/100 {entry_verdict(score)}")
    return 0


def cmd_settle(args) -> int:
    agent = _make_agent()

    if args.battle_id is None:
        logger.info("Checking for battles ready to settle...")
        ready = agent.get_battles_ready_to_resolve(strict=True)
        logger.info("Found %d battles ready to settle", len(ready))
        failed = [battle_id for battle_id in ready if agent.settle_battle(battle_id) is None]
        for line in agent.context.actions.summary_lines():
            print(line)
        if failed:
            logger.error("Failed to settle battles: %s", ", ".join(map(str, failed)))
            return 1
        return 0

    battle = agent.get_battle(args.battle_id)
    if battle is None:
        logger.error("Battle %s not found", args.battle_id)
        return 1

    ready = battle.status == BattleStatus.EXPIRED or (
        battle.status == BattleStatus.ACTIVE and agent.arena.is_battle_expired(args.battle_id)
    )
    if not ready:
        logger.warning(
            'Battle %s status is "%s", not ready to resolve',
            args.battle_id,
            status_name(battle.status),
        )
        if not args.force:
            logger.info("Use --force to attempt settlement anyway")
            return 1

    tx_hash = agent.settle_battle(args.battle_id)
    if tx_hash is None:
        logger.error("Failed to settle battle")
        return 1
    print(f"Battle {args.battle_id} settled successfully!")
    print(f"Transaction: {config.explorer_tx_url(tx_hash)}")
    return 0


def cmd_monitor(args) -> int:
    agent = _make_agent()
    agent.print_status()
    agent.start_monitoring()
    return 0


def cmd_routes(args) -> int:
    agent = _make_agent()
    intent = BattleEntryIntent(
        user_address=args.user or agent.address,
        source_chain=args.source_chain,
        source_token=args.token,
        amount=args.amount,
        target_pool=TargetPool(
            chain_id=args.target_chain,
            token0=args.token0,
            token1=args.token1,
            tick_lower=args.tick_lower,
            tick_upper=args.tick_upper,
        ),
        battle_id=args.battle_id,
        duration=args.duration,
    )

    routes = agent.get_cross_chain_routes(intent)
    if routes is None:
        return 1
    if not routes:
        print("  No routes found")
        return 1
    for i, route in enumerate(routes, 1):
        tag = " (RECOMMENDED)" if route.recommended else ""
        print(f"  {i}. {route.method}{tag} - {route.estimated_time} - {route.fees} -> {route.estimated_output}")

    print("\n".join(format_plan(agent.plan_cross_chain_entry(intent, routes))))
    return 0


def cmd_serve(args) -> int:
    from battle_agent.server import run_server

    agent = _make_agent()
    run_server(agent, host=args.host, port=args.port, monitor=not args.no_monitor)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="battle-agent", description="Autonomous keeper for BattleArena LP battles"
    )
    parser.add_argument("--log-level", default=None, help="console log level (default: LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("status", help="print agent and arena status")
    p.add_argument("-v", "--verbose", action="store_true", help="per-battle details")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("analyze", help="analyze one battle or all active battles")
    p.add_argument("battle_id", nargs="?", type=int)
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("settle", help="resolve one battle or every expired battle")
    p.add_argument("battle_id", nargs="?", type=int)
    p.add_argument("--force", action="store_true", help="settle even if not reported expired")
    p.set_defaults(func=cmd_settle)

    p = sub.add_parser("monitor", help="run the strategy loop (default)")
    p.set_defaults(func=cmd_monitor)

    p = sub.add_parser("routes", help="plan a cross-chain battle entry")
    p.add_argument("--source-chain", type=int, required=True)
    p.add_argument("--token", required=True, help="source token address")
    p.add_argument("--amount", type=int, required=True, help="raw token amount")
    p.add_argument("--user", default=None, help="wallet address (default: agent wallet)")
    p.add_argument("--target-chain", type=int, default=config.CHAIN_ID)
    p.add_argument("--token0", default=config.WETH_ADDRESS)
    p.add_argument("--token1", default=config.USDC_ADDRESS)
    p.add_argument("--tick-lower", type=int, default=FULL_RANGE_TICK_LOWER)
    p.add_argument("--tick-upper", type=int, default=FULL_RANGE_TICK_UPPER)
    p.add_argument("--battle-id", type=int, default=None, help="join this battle instead of creating one")
    p.add_argument("--duration", type=int, default=None, help="new battle duration in seconds")
    p.set_defaults(func=cmd_routes)

    p = sub.add_parser("serve", help="serve the JSON API (and run the loop)")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--no-monitor", action="store_true", help="API only, no background loop")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level.upper() if args.log_level else None)

    func = getattr(args, "func", cmd_monitor)
    try:
        return func(args)
    except (ValueError, ConnectionError, ArenaReadError) as e:
        logger.error("%s failed: %s", args.command or "monitor", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
