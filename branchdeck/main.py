"""CLI entry point for branchdeck."""

import asyncio
import signal
import sys
from pathlib import Path

import structlog

from branchdeck.app import build_engine, configure_logging
from branchdeck.core.config import BranchDeckConfig, load_config_file
from branchdeck.exceptions import ConfigError
from branchdeck.host.terminal import TerminalHost

logger = structlog.get_logger()

_DEFAULT_CONFIG_PATH = Path("~/.config/branchdeck/config.yaml")
_USAGE = "usage: branchdeck [PATH]"


async def _run_terminal(config: BranchDeckConfig) -> None:
    host = TerminalHost(sys.stdin.fileno(), sys.stdout.fileno())
    engine = build_engine(host, config)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGHUP):
        loop.add_signal_handler(sig, stop_event.set)

    await host.start()
    closed = asyncio.create_task(host.wait_closed())
    stopped = asyncio.create_task(stop_event.wait())
    try:
        await engine.startup()
        await asyncio.wait({closed, stopped}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        logger.info("terminal_shutting_down", signalled=stop_event.is_set())
        closed.cancel()
        stopped.cancel()
        await engine.shutdown()
        await host.stop()


def _is_interactive() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def _overrides(argv: list[str]) -> dict:
    if len(argv) > 1:
        print(_USAGE, file=sys.stderr)
        sys.exit(2)
    if argv:
        return {"working_directory": Path(argv[0])}
    return {}


async def main(argv: list[str] | None = None) -> None:
    overrides = _overrides(sys.argv[1:] if argv is None else argv)
    try:
        config = load_config_file(_DEFAULT_CONFIG_PATH.expanduser(), **overrides)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print(
            f"Check BRANCHDECK_* variables, the .env file or {_DEFAULT_CONFIG_PATH}.",
            file=sys.stderr,
        )
        sys.exit(1)

    if not _is_interactive():
        print("branchdeck needs an interactive terminal.", file=sys.stderr)
        sys.exit(1)

    configure_logging(config, console=False)
    await _run_terminal(config)


def run() -> None:
    asyncio.run(main())
