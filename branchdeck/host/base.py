"""Abstract host protocol: the surface that draws state and opens panes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from branchdeck.core.events import KeyPressed
    from branchdeck.core.state import SelectionState
    from branchdeck.git.models import LogCommand


class HostBridge(ABC):
    def __init__(self) -> None:
        self._key_handler: Callable[[KeyPressed], Coroutine[Any, Any, None]] | None = None
        self._pipe_handler: (
            Callable[[str, str | None], Coroutine[Any, Any, bool]] | None
        ) = None

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def render(self, state: SelectionState) -> None: ...

    @abstractmethod
    async def open_log(self, command: LogCommand) -> None:
        """Open a pane (floating or docked per ``command.floating``) running *command*."""

    @abstractmethod
    async def close(self) -> None:
        """Dismiss the branch picker."""

    def set_key_handler(
        self, handler: Callable[[KeyPressed], Coroutine[Any, Any, None]]
    ) -> None:
        self._key_handler = handler

    def set_pipe_handler(
        self, handler: Callable[[str, str | None], Coroutine[Any, Any, bool]]
    ) -> None:
        self._pipe_handler = handler

    async def deliver_key(self, event: KeyPressed) -> None:
        if self._key_handler is not None:
            await self._key_handler(event)

    async def deliver_pipe(self, name: str, payload: str | None) -> bool:
        if self._pipe_handler is None:
            return False
        return await self._pipe_handler(name, payload)
