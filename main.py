"""
Worklog Agent - Main Entry Point

Tracks development activity across git repositories and publishes work
sessions to ActivityWatch.

Requires aw-watcher-window to be running in the default "activitywatch"
mode. Use --test to simulate activity without it.

Usage:
    python main.py --config ~/.config/awagent/config.json
    python main.py --mode filesystem --verbose
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from worklog.brain import Agent
from worklog.perception.window import WindowProbeError
from worklog.system.config import COLLECTION_MODES, AgentConfig, ConfigError, load_config

logger = logging.getLogger("worklog")

EXIT_CONFIG_ERROR = 2


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Configure root logging: stdout plus an optional log file."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="awagent",
        description="ActivityWatch git session tracker",
    )
    parser.add_argument("--config", help="path to config file")
    parser.add_argument("--aw-url", help="override ActivityWatch server URL")
    parser.add_argument("--machine", help="override machine identifier reported to ActivityWatch")
    parser.add_argument("--mode", choices=COLLECTION_MODES, help="override activity collection mode")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable verbose logging")
    parser.add_argument(
        "--test",
        action="store_true",
        help="run in test mode (simulate activity without aw-watcher-window)",
    )
    parser.add_argument("--log-file", default=None, help="also write logs to this file")
    return parser


def apply_overrides(config: AgentConfig, args: argparse.Namespace) -> AgentConfig:
    """Apply command-line overrides on top of the loaded configuration."""
    if args.aw_url:
        config.activitywatch.base_url = args.aw_url
    if args.machine:
        config.activitywatch.machine = args.machine
    if args.mode:
        config.session.mode = args.mode
    return config


async def main(config: AgentConfig, test_mode: bool = False) -> None:
    """Run the agent until SIGINT/SIGTERM."""
    agent = Agent(config, test_mode=test_mode)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, agent.request_stop)
        except (NotImplementedError, RuntimeError):
            # Windows doesn't support add_signal_handler; KeyboardInterrupt cancels run()
            pass

    await agent.run()


def cli(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.log_file)

    try:
        config = apply_overrides(load_config(args.config), args)
        config.normalize()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    logger.info(f"Starting ActivityWatch agent (verbose={args.verbose}, test={args.test})...")
    logger.info(
        f"Configuration: server={config.activitywatch.base_url} "
        f"machine={config.activitywatch.machine} mode={config.session.mode}"
    )
    logger.info(
        f"Git scan roots: {config.git.roots} "
        f"(maxDepth={config.git.max_depth}, rescan={config.git.rescan_interval_min}m)"
    )
    if args.test:
        logger.info("TEST MODE: Simulating IDE activity without aw-watcher-window")

    try:
        asyncio.run(main(config, test_mode=args.test))
    except KeyboardInterrupt:
        logger.info("Application terminated by user")
    except (ConfigError, WindowProbeError) as e:
        logger.error(f"Startup failed: {e}")
        return EXIT_CONFIG_ERROR
    return 0


if __name__ == "__main__":
    sys.exit(cli())
