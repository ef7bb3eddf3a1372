#!/usr/bin/env python3
"""
TWAP sell bot - spreads a weekday-specific daily cap across time buckets.

Usage:
    # Monitor mode (log the level each tick would place)
    python bots/run_sell_twap.py configs/sell_twap.yml --monitor-only

    # Live mode
    python bots/run_sell_twap.py configs/sell_twap.yml
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import yaml

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))


def load_config(config_file: str) -> dict:
    with open(config_file, "r") as handle:
        return yaml.safe_load(handle) or {}


def run_sell_twap_from_file(config_file: str, *, monitor_only: bool = False) -> None:
    import asyncio

    from engine.twap_runner import run_sell_twap, run_sell_twap_async

    config = load_config(config_file)
    if monitor_only:
        config["mode"] = "monitor"
    if config.get("use_asyncio", False):
        asyncio.run(run_sell_twap_async(config))
    else:
        run_sell_twap(config)


def main() -> None:
    """Main entry point."""
    from utils.logging_config import LogContext, setup_logging

    parser = argparse.ArgumentParser(description="TWAP sell bot")
    parser.add_argument("config", help="Path to configuration file (YAML)")
    parser.add_argument(
        "--monitor-only",
        action="store_true",
        help="Monitor mode only (log levels, place nothing)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    args = parser.parse_args()

    setup_logging(level=args.log_level)

    with LogContext(strategy="sell_twap"):
        run_sell_twap_from_file(args.config, monitor_only=args.monitor_only)


if __name__ == "__main__":
    main()
