import argparse
import asyncio
import logging
import signal

from engine.exceptions import PersistenceUnavailable
from engine.models import TableConfig
from practice.bots import parse_house_specs

from .config import EloConfig, GlickoConfig, MatchConfig, StopConfig
from .orchestrator import DuelRunner, run_round_robin
from .server import ArenaServer
from .stop import StopToken
from .store import JsonlStore, MatchStore, MemoryStore

logging.basicConfig(level=logging.INFO)
LOGGER = logging.getLogger("duel_runner")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Heads-up mirrored duel runner")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--mode", choices=("duel", "matrix"), default="duel")
    parser.add_argument("--bots", type=int, default=2, help="Number of websocket bots to wait for")
    parser.add_argument(
        "--house",
        action="append",
        default=[],
        metavar="NAME=STYLE",
        help="Add a built-in bot (styles: house, station); repeatable",
    )
    parser.add_argument("--sb", type=int, default=50)
    parser.add_argument("--bb", type=int, default=100)
    parser.add_argument("--starting-stack", type=int, default=10_000)
    parser.add_argument("--pairs", type=int, default=5, help="Mirrored pairs per duel")
    parser.add_argument("--seed", type=int, default=None, help="Base seed (random when omitted)")
    parser.add_argument(
        "--move-time",
        type=int,
        default=15_000,
        help="Decision time limit in milliseconds (0 disables the limit)",
    )
    parser.add_argument("--max-actions-per-street", type=int, default=20)
    parser.add_argument("--probe-prob", type=float, default=0.0, help="Check/min-raise swap probability")
    parser.add_argument("--elo-start", type=float, default=1500.0)
    parser.add_argument("--elo-k", type=float, default=24.0)
    parser.add_argument("--elo-per-hand", action="store_true")
    parser.add_argument("--elo-weight-by-pot", action="store_true")
    parser.add_argument("--elo-margin", action="store_true", help="Scale K by the chip margin")
    parser.add_argument("--glicko-tau", type=float, default=0.5)
    parser.add_argument("--max-seconds", type=float, default=0.0, help="Wall-clock limit (0 = none)")
    parser.add_argument("--stop-file", default=None, help="Stop once this file exists")
    parser.add_argument(
        "--stop-immediate",
        action="store_true",
        help="Abort the hand in flight on stop instead of finishing the pair",
    )
    parser.add_argument("--log-dir", default=None, help="Write JSONL match logs here")
    parser.add_argument("--no-judge", action="store_true", help="Skip the post-match equity judge")
    return parser


def config_from_args(args: argparse.Namespace) -> MatchConfig:
    return MatchConfig(
        table=TableConfig(
            starting_stack=args.starting_stack,
            sb=args.sb,
            bb=args.bb,
            move_time_ms=args.move_time,
            max_actions_per_street=args.max_actions_per_street,
        ),
        pairs=args.pairs,
        seed=args.seed,
        probe_probability=args.probe_prob,
        elo=EloConfig(
            start=args.elo_start,
            k=args.elo_k,
            per_hand=args.elo_per_hand,
            weight_by_pot=args.elo_weight_by_pot,
            use_margin=args.elo_margin,
        ),
        glicko=GlickoConfig(tau=args.glicko_tau),
        stop=StopConfig(
            max_seconds=args.max_seconds,
            stop_file=args.stop_file,
            immediate=args.stop_immediate,
        ),
        run_judge=not args.no_judge,
    )


async def run(args: argparse.Namespace) -> None:
    config = config_from_args(args)
    token = StopToken(config.stop)
    asyncio.get_running_loop().add_signal_handler(signal.SIGINT, token.request)

    store: MatchStore = MemoryStore()
    if args.log_dir:
        try:
            store = JsonlStore(args.log_dir)
        except PersistenceUnavailable as exc:
            LOGGER.warning("Falling back to in-memory logs: %s", exc)
    house = parse_house_specs(args.house, args.seed)

    if args.bots > 0:
        server = ArenaServer(config, args.mode, args.bots, house, store, token)
        results = await server.start(host=args.host, port=args.port)
    elif args.mode == "matrix":
        results = await run_round_robin(house, config, store, token)
    else:
        if len(house) < 2:
            raise SystemExit("A local duel needs two --house bots when --bots is 0")
        (name_a, bot_a), (name_b, bot_b) = list(house.items())[:2]
        results = [await DuelRunner(bot_a, bot_b, config, store, token, name_a, name_b).run_match()]

    for result in results:
        LOGGER.info(
            "%s vs %s: %s, banks %s, pair win CI [%.3f, %.3f], margin CI [%.4f, %.4f]",
            result.names["A"],
            result.names["B"],
            result.status.value,
            result.banks,
            result.win_ci[0],
            result.win_ci[1],
            result.margin_ci[0],
            result.margin_ci[1],
        )


def main() -> None:
    args = build_parser().parse_args()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
