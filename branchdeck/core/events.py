"""Input events for the controller and a lightweight hook bus."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field

from branchdeck.git.models import CommandResult, Operation

logger = structlog.get_logger()

# Event name constants
ENGINE_STARTED = "engine.started"
ENGINE_STOPPED = "engine.stopped"
OPERATION_DISPATCHED = "operation.dispatched"
OPERATION_COMPLETED = "operation.completed"
OPERATION_DISCARDED = "operation.discarded"
CONTEXT_CHANGED = "context.changed"


class Key(StrEnum):
    CHAR = "char"
    BACKSPACE = "backspace"
    UP = "up"
    DOWN = "down"
    TAB = "tab"
    ENTER = "enter"
    ESCAPE = "escape"
    CREATE = "ctrl+c"
    REFRESH = "ctrl+r"
    DELETE = "ctrl+d"
    FORCE_DELETE = "ctrl+x"
    OPEN_LOG = "ctrl+l"
    PREVIOUS = "ctrl+p"
    FETCH = "ctrl+f"


class KeyPressed(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["key"] = "key"
    key: Key
    char: str = ""

    @classmethod
    def character(cls, char: str) -> KeyPressed:
        return cls(key=Key.CHAR, char=char)


class WorkingDirectoryChanged(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["cwd"] = "cwd"
    path: Path


class CommandCompleted(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["completed"] = "completed"
    operation: Operation
    result: CommandResult


InputEvent = KeyPressed | WorkingDirectoryChanged | CommandCompleted


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_name, []).append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: Event) -> None:
        for handler in self._handlers.get(event.name, []):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "event_handler_error",
                    event_name=event.name,
                    handler_name=getattr(handler, "__name__", repr(handler)),
                )
