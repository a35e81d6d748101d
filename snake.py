#!/usr/bin/env python3
"""
Snake Rodeo - command line entry point

Play the Trifle snake rodeo automatically with a configurable strategy.

Usage:
    # Run the daemon in the foreground (Ctrl+C to stop)
    snake start --strategy aggressive

    # Run it in the background, then watch it
    snake start --detach
    snake status
    snake logs -f

    # One-shot helpers
    snake state
    snake analyze
    snake vote ne A 2

    # Try a strategy offline against the simulated backend
    snake simulate --rounds 200 --strategy underdog
"""

import argparse
import json
import logging
import signal
import sys
import time
from datetime import datetime

import requests

from config import config
import settings as user_settings
from engine.autoplay import AutoplayDaemon
from engine.client import TrifleClient, GameServerError
from engine.game_state import parse_game_state
from engine.notifications import TelegramNotifier, build_notifier, format_status
from engine import process
from engine.simulator import run_simulation
from persistence import AgentStateRepository, StatsRepository, init_db
from strategies import get_strategy, list_strategies_with_info, resolve_strategy_name

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger('snake')


def setup_logging(settings: dict, verbose: bool = False, to_file: bool = True):
    """Console logging always; daemon.log too when log_to_file is on"""
    handlers = [logging.StreamHandler()]
    if to_file and settings.get('log_to_file', True):
        config.ensure_dirs()
        handlers.append(logging.FileHandler(config.LOG_FILE))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # urllib3 is chatty at DEBUG
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def build_client(settings: dict) -> TrifleClient:
    return TrifleClient(
        user_settings.get_backend_url(settings),
        auth_file=config.AUTH_FILE,
        token=config.AUTH_TOKEN_OVERRIDE or None,
        timeout=config.REQUEST_TIMEOUT,
        token_cache_seconds=config.TOKEN_CACHE_SECONDS,
        origin=config.ORIGIN,
        rate_limit_backoff=config.RATE_LIMIT_BACKOFF,
    )


def build_strategy(settings: dict, name: str = None):
    name = resolve_strategy_name(name or settings.get('strategy'))
    return get_strategy(name, user_settings.get_strategy_options(name, settings))


def agent_store() -> AgentStateRepository:
    return AgentStateRepository(config.STATE_FILE)


# =============================================================================
# Daemon commands
# =============================================================================

def run_daemon(settings: dict) -> int:
    """Run the decision loop in this process until SIGTERM/SIGINT"""
    try:
        process.acquire_lock()
    except process.DaemonAlreadyRunning as e:
        print(str(e))
        return 1

    stats_repo = None
    try:
        init_db()
        stats_repo = StatsRepository()
    except Exception as e:
        logger.warning(f"Vote ledger unavailable, continuing without it: {e}")

    daemon = AutoplayDaemon(
        build_client(settings),
        build_strategy(settings),
        agent_store(),
        settings=settings,
        notifier=build_notifier(settings, config.TELEGRAM_BOT_TOKEN, config.TELEGRAM_API_URL),
        stats_repo=stats_repo,
        is_paused=process.is_paused,
    )

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        daemon.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    try:
        daemon.run()
    finally:
        daemon.client.close()
        process.release_lock()
    return 0


def cmd_start(args, settings: dict) -> int:
    if args.strategy:
        name = resolve_strategy_name(args.strategy)
        user_settings.set_setting('strategy', name)
        settings['strategy'] = name

    pid = process.is_daemon_running()
    if pid:
        print(f"Daemon already running (PID: {pid})")
        print('Use "snake stop" to stop it first.')
        return 1

    if args.detach:
        result = process.start_daemon_background()
        print(result['message'])
        return 0 if result['success'] else 1

    print("Starting in foreground (Ctrl+C to stop)...")
    print("Use --detach to run in background.")
    setup_logging(settings, args.verbose)
    return run_daemon(settings)


def cmd_daemon(args, settings: dict) -> int:
    setup_logging(settings, args.verbose)
    return run_daemon(settings)


def cmd_stop(args, settings: dict) -> int:
    result = process.stop_daemon()
    print(result['message'])
    return 0 if result['success'] else 1


def cmd_status(args, settings: dict) -> int:
    status = process.get_daemon_status(settings, agent_store())
    if args.json:
        print(json.dumps(status, indent=2))
        return 0

    print(format_status(status))
    running = f"Yes (PID: {status['pid']})" if status['running'] else 'No'
    print(f"   Running: {running}")
    if status['last_error']:
        print(f"   Last error: {status['last_error']}")
    if status['running'] and status['started_at']:
        uptime = int(time.time() - status['started_at'])
        print(f"   Uptime: {uptime // 3600}h {(uptime % 3600) // 60}m")
    return 0


def cmd_logs(args, settings: dict) -> int:
    print(f"Showing last {args.lines} log lines{' (following)' if args.follow else ''}...")
    print('---')
    process.tail_logs(args.lines, args.follow)
    return 0


def cmd_pause(args, settings: dict) -> int:
    print(process.pause_daemon()['message'])
    return 0


def cmd_resume(args, settings: dict) -> int:
    print(process.resume_daemon()['message'])
    return 0


# =============================================================================
# Configuration commands
# =============================================================================

def cmd_config(args, settings: dict) -> int:
    if not args.key:
        print("=== Snake Configuration ===")
        print(json.dumps(settings, indent=2))
        print()
        print("Usage: snake config <key> [value]")
        print("Example: snake config strategy_options.aggressive.bid_multiplier 3")
        return 0

    if args.value is None:
        print(f"{args.key}: {json.dumps(user_settings.get_setting(args.key))}")
        return 0

    if args.key == 'strategy':
        try:
            args.value = resolve_strategy_name(args.value)
        except ValueError as e:
            print(str(e))
            return 1

    if not user_settings.set_setting(args.key, args.value):
        print(f"Failed to save {args.key}")
        return 1
    print(f"Set {args.key} = {args.value}")
    return 0


def cmd_strategies(args, settings: dict) -> int:
    print("=== Available Strategies ===")
    print()
    for info in list_strategies_with_info():
        aliases = f" (aliases: {', '.join(info['aliases'])})" if info['aliases'] else ''
        marker = ' *' if info['name'] == settings.get('strategy') else ''
        print(f"  {info['name']}{aliases}{marker}")
        print(f"    {info['description']}")
        print()
    print("Use: snake config strategy <name>")
    return 0


def cmd_server(args, settings: dict) -> int:
    if args.name:
        user_settings.set_setting('server', args.name)
        print(f"Server set to: {args.name} ({config.SERVERS[args.name]})")
        return 0

    print("=== Server Settings ===")
    print(f"Current: {settings.get('server')} ({user_settings.get_backend_url(settings)})")
    print()
    print(f"Available: {', '.join(config.SERVERS)}")
    print("Usage: snake server <live|staging>")
    return 0


def cmd_telegram(args, settings: dict) -> int:
    chat_id = args.chat_id
    if chat_id in ('off', 'disable'):
        user_settings.set_setting('telegram_chat_id', None)
        print("Telegram logging disabled.")
        return 0

    if chat_id:
        # Stored as a string so negative group ids survive
        settings['telegram_chat_id'] = chat_id
        user_settings.save_settings(settings)
        print(f"Telegram chat ID set: {chat_id}")
        notifier = TelegramNotifier(config.TELEGRAM_BOT_TOKEN, chat_id, api_url=config.TELEGRAM_API_URL)
        if notifier.send("🐍 Snake rodeo Telegram logging enabled!"):
            print("Test message sent successfully.")
        else:
            print("Warning: Could not send test message. Check TELEGRAM_BOT_TOKEN.")
        return 0

    print("=== Telegram Settings ===")
    print(f"Chat ID: {settings.get('telegram_chat_id') or 'Not configured'}")
    print(f"Log to Telegram: {settings.get('log_to_telegram')}")
    print(f"Bot token: {'set' if config.TELEGRAM_BOT_TOKEN else 'missing (TELEGRAM_BOT_TOKEN)'}")
    print()
    print("Usage: snake telegram <chat_id>")
    print("       snake telegram off")
    return 0


# =============================================================================
# Game commands
# =============================================================================

def _fetch_parsed(client):
    raw = client.get_game_state()
    if raw.get('error'):
        print(f"Error: {raw.get('message') or raw['error']}")
        return None, True
    return parse_game_state(raw, config.EXTENSION_WINDOW_SECONDS), False


def cmd_state(args, settings: dict) -> int:
    client = build_client(settings)
    parsed, failed = _fetch_parsed(client)
    if failed:
        return 1
    if parsed is None:
        print("No active game.")
        return 0

    print("=== Snake Game State ===")
    print(f"Active: {parsed.active}")
    print(f"Round: {parsed.round}")
    print(f"Prize Pool: {parsed.prize_pool}")
    print(f"Min Bid: {parsed.min_bid}")
    print(f"Countdown: {parsed.countdown}s (extensions: {parsed.extensions})")
    print()
    print(f"Snake Head: ({parsed.head.q}, {parsed.head.r})")
    print(f"Snake Length: {parsed.snake_length}")
    print(f"Current Direction: {parsed.current_direction}")
    print()
    print("Teams:")
    for team in parsed.teams:
        dist = team.closest_fruit.distance if team.closest_fruit else 'N/A'
        print(f"  {team.emoji} {team.name} ({team.id}): {team.score} fruits, pool: {team.pool}, dist: {dist}")
    print()
    print(f"Valid Directions: {', '.join(parsed.valid_directions)}")
    print(f"Your Balance: {client.get_balance()} balls")
    return 0


def cmd_vote(args, settings: dict) -> int:
    client = build_client(settings)
    try:
        result = client.submit_vote(args.direction.lower(), args.team.upper(), args.amount)
    except GameServerError as e:
        print(f"Vote failed: {e}")
        return 1
    print(f"Vote submitted: {result}")
    return 0


def cmd_analyze(args, settings: dict) -> int:
    strategy = build_strategy(settings, args.strategy)
    client = build_client(settings)
    parsed, failed = _fetch_parsed(client)
    if failed:
        return 1
    if parsed is None or not parsed.active:
        print("No active game.")
        return 0

    balance = client.get_balance()
    agent = agent_store().load()

    print("=== Strategic Analysis ===")
    print(f"Strategy: {strategy.name}")
    print(f"Balance: {balance}")
    print()

    decision = strategy.compute_vote(parsed, balance, agent)
    if decision is None or decision.skip:
        print("Recommendation: Skip this round")
        print(f"Reason: {decision.reason if decision else 'not playable'}")
        return 0

    print("Recommendation:")
    print(f"  Team: {decision.team.emoji} {decision.team.name} ({decision.team.id})")
    print(f"  Direction: {decision.direction}")
    print(f"  Amount: {decision.amount}")
    print(f"  Reason: {decision.reason}")
    return 0


def cmd_balance(args, settings: dict) -> int:
    print(f"Balance: {build_client(settings).get_balance()} balls")
    return 0


def cmd_rodeos(args, settings: dict) -> int:
    rodeos = build_client(settings).get_rodeos()
    print("=== Rodeo Configurations ===")
    for i, rodeo in enumerate(rodeos):
        print()
        print(f"[{i}] {rodeo.get('name') or f'Rodeo {i}'}")
        print(f"  Teams: {rodeo.get('numberOfTeams')}")
        print(f"  Grid Radius: {rodeo.get('gridRadius')}")
        print(f"  Fruits to Win: {rodeo.get('fruitsToWin')}")
    return 0


def cmd_history(args, settings: dict) -> int:
    init_db()
    repo = StatsRepository()
    stats = repo.get_overall_stats()

    print("=== Ledger ===")
    print(f"Games: {stats['total_games']} ({stats['total_wins']} wins, {stats['win_rate']:.1f}%)")
    print(f"Votes: {stats['total_votes']} ({stats['counter_votes']} counters), spent {stats['total_spent']:.1f}")
    print()
    print("Recent games:")
    for game in repo.get_recent_games(args.limit):
        ended = game.ended_at.strftime('%Y-%m-%d %H:%M') if game.ended_at else '?'
        result = 'WIN ' if game.won else 'loss'
        print(f"  {ended}  {result}  winner={game.winner_team} ours={game.our_team} "
              f"votes={game.votes_placed} spent={game.amount_spent:.1f} [{game.strategy}]")
    return 0


def cmd_serve(args, settings: dict) -> int:
    from app import create_app

    setup_logging(settings, args.verbose, to_file=False)
    app = create_app()
    logger.info(f"📊 Status app on http://{config.HOST}:{args.port}")
    app.run(host=config.HOST, port=args.port)
    return 0


def cmd_simulate(args, settings: dict) -> int:
    strategy = build_strategy(settings, args.strategy)
    if not args.verbose:
        logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, force=True)
    else:
        setup_logging(settings, verbose=True, to_file=False)

    started = datetime.now()
    result = run_simulation(strategy, rounds=args.rounds, balance=args.balance, seed=args.seed,
                            settings=settings)
    elapsed = (datetime.now() - started).total_seconds()

    print(f"=== Simulation: {result['strategy']} ===")
    print(f"Rounds: {result['rounds']} ({elapsed:.1f}s)")
    print(f"Games: {result['games_played']} played, {result['wins']} won")
    print(f"Votes: {result['votes_placed']}")
    print(f"Balance: {result['starting_balance']:.1f} -> {result['final_balance']:.1f}")
    return 0


# =============================================================================
# Argument parsing
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='snake', description='🐍 Snake rodeo autoplay daemon')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command')

    p = sub.add_parser('start', help='Start the autoplay daemon')
    p.add_argument('--detach', '-d', action='store_true', help='Run in the background')
    p.add_argument('--strategy', '-s', help='Strategy name or alias (saved to settings)')
    p.set_defaults(func=cmd_start)

    p = sub.add_parser('daemon', help='Run the daemon loop (used by start --detach)')
    p.set_defaults(func=cmd_daemon)

    sub.add_parser('stop', help='Stop the running daemon').set_defaults(func=cmd_stop)

    p = sub.add_parser('status', help='Show daemon status and stats')
    p.add_argument('--json', action='store_true', help='Print as JSON')
    p.set_defaults(func=cmd_status)

    p = sub.add_parser('logs', aliases=['attach'], help='Show daemon logs')
    p.add_argument('lines', nargs='?', type=int, default=50, help='Number of lines (default: 50)')
    p.add_argument('--follow', '-f', action='store_true', help='Keep following the log')
    p.set_defaults(func=cmd_logs)

    sub.add_parser('pause', help='Pause voting (daemon keeps running)').set_defaults(func=cmd_pause)
    sub.add_parser('resume', help='Resume voting').set_defaults(func=cmd_resume)

    p = sub.add_parser('config', help='Get/set configuration values')
    p.add_argument('key', nargs='?', help='Setting key (dots for nested keys)')
    p.add_argument('value', nargs='?', help='New value')
    p.set_defaults(func=cmd_config)

    p = sub.add_parser('strategies', aliases=['list-strategies'], help='List available strategies')
    p.set_defaults(func=cmd_strategies)

    p = sub.add_parser('server', help='Show or switch the game server')
    p.add_argument('name', nargs='?', choices=sorted(config.SERVERS))
    p.set_defaults(func=cmd_server)

    p = sub.add_parser('telegram', help='Configure Telegram logging')
    p.add_argument('chat_id', nargs='?', help="Chat id, or 'off'")
    p.set_defaults(func=cmd_telegram)

    sub.add_parser('state', help='Show the current game state').set_defaults(func=cmd_state)

    p = sub.add_parser('vote', help='Submit a vote manually')
    p.add_argument('direction', choices=['n', 'ne', 'se', 's', 'sw', 'nw'])
    p.add_argument('team', help='Team id')
    p.add_argument('amount', nargs='?', type=int, default=1)
    p.set_defaults(func=cmd_vote)

    p = sub.add_parser('analyze', aliases=['strategy'], help='Recommend a vote without submitting')
    p.add_argument('--strategy', '-s', help='Strategy to ask (default: configured)')
    p.set_defaults(func=cmd_analyze)

    sub.add_parser('balance', help='Check ball balance').set_defaults(func=cmd_balance)
    sub.add_parser('rodeos', help='Show rodeo configurations').set_defaults(func=cmd_rodeos)

    p = sub.add_parser('history', help='Show the vote/game ledger')
    p.add_argument('--limit', type=int, default=10)
    p.set_defaults(func=cmd_history)

    p = sub.add_parser('serve', help='Run the status web app')
    p.add_argument('--port', type=int, default=config.PORT)
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser('simulate', help='Play a strategy against the simulated backend')
    p.add_argument('--rounds', type=int, default=100)
    p.add_argument('--strategy', '-s', help='Strategy name or alias (default: configured)')
    p.add_argument('--balance', type=float, default=100.0)
    p.add_argument('--seed', type=int, default=None)
    p.set_defaults(func=cmd_simulate)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 0

    settings = user_settings.load_settings()
    try:
        return args.func(args, settings)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    except (GameServerError, requests.RequestException) as e:
        print(f"Backend error: {e}")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())
