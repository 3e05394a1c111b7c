"""Bootstrap: wires all components together."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from branchdeck.core.config import BranchDeckConfig
from branchdeck.core.engine import Engine
from branchdeck.core.events import EventBus
from branchdeck.git.repository import BranchRepository
from branchdeck.git.runner import CommandRunner

if TYPE_CHECKING:
    from branchdeck.host.base import HostBridge

logger = structlog.get_logger()

_LOG_FILE_NAME = "branchdeck.log"


def configure_logging(
    config: BranchDeckConfig,
    *,
    console: bool = True,
    log_dir: Path | None = None,
) -> None:
    """Set up structlog with optional console output and a rotating JSON file.

    The terminal host owns the screen, so it runs with ``console=False`` and
    relies on the file handler.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    root_logger = logging.getLogger()
    root_logger.setLevel(config.log_level)
    root_logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.dev.ConsoleRenderer(),
            )
        )
        root_logger.addHandler(console_handler)

    log_dir = log_dir or config.log_dir
    if log_dir is not None:
        log_dir = log_dir.expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / _LOG_FILE_NAME,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
        )
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
            )
        )
        root_logger.addHandler(file_handler)

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_engine(
    host: HostBridge,
    config: BranchDeckConfig | None = None,
    *,
    event_bus: EventBus | None = None,
) -> Engine:
    if config is None:
        config = BranchDeckConfig()

    repository = BranchRepository(timeout=config.git_timeout_seconds)
    runner = CommandRunner(repository)
    engine = Engine(
        config=config,
        host=host,
        repository=repository,
        runner=runner,
        event_bus=event_bus or EventBus(),
    )
    logger.debug(
        "engine_built",
        open_log_in_floating=config.open_log_in_floating,
        log_args=config.log_args,
        git_timeout_seconds=config.git_timeout_seconds,
    )
    return engine
