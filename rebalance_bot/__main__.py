"""
Command-line entry point.

    python -m rebalance_bot [--dry-run] [--log-level DEBUG] [--health-port 8080]

Settings come from the environment; flags override them.
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from .bot import run_bot
from .config import Config, load_config_from_env


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rebalance-bot",
        description="Detect and execute YES/NO rebalancing arbitrage on Polymarket.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Sign and submit nothing; orders are logged with synthetic ids",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override LOG_LEVEL",
    )
    parser.add_argument(
        "--health-port",
        type=int,
        help="Override HEALTH_PORT (0 disables the health server)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    config = load_config_from_env()
    if args.dry_run:
        config.dry_run = True
    if args.log_level:
        config.log_level = args.log_level
    if args.health_port is not None:
        config.monitor.health_port = args.health_port
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = build_config(parse_args(argv))

    errors = config.validate()
    if errors:
        print("Refusing to start, configuration is invalid:", file=sys.stderr)
        print("\n".join(f"  - {error}" for error in errors), file=sys.stderr)
        return 1

    try:
        asyncio.run(run_bot(config))
    except KeyboardInterrupt:
        print("\nInterrupted")
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
