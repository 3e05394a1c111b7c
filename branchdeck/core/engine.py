"""Central orchestrator: feeds events through the controller and runs commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from branchdeck.core.context import RepositoryContext
from branchdeck.core.controller import transition
from branchdeck.core.events import (
    CONTEXT_CHANGED,
    ENGINE_STARTED,
    ENGINE_STOPPED,
    OPERATION_COMPLETED,
    OPERATION_DISCARDED,
    OPERATION_DISPATCHED,
    CommandCompleted,
    Event,
    EventBus,
    InputEvent,
    KeyPressed,
    WorkingDirectoryChanged,
)
from branchdeck.core.state import SelectionState
from branchdeck.git.models import Close, OpenLog, Operation, describe
from branchdeck.git.repository import BranchRepository
from branchdeck.git.runner import CommandRunner

if TYPE_CHECKING:
    from branchdeck.core.config import BranchDeckConfig
    from branchdeck.host.base import HostBridge

logger = structlog.get_logger()

CWD_PIPE = "cwd"


class Engine:
    def __init__(
        self,
        config: BranchDeckConfig,
        host: HostBridge,
        repository: BranchRepository | None = None,
        runner: CommandRunner | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config
        self.host = host
        self.repository = repository or BranchRepository(timeout=config.git_timeout_seconds)
        self.runner = runner or CommandRunner(self.repository)
        self.event_bus = event_bus or EventBus()
        self._state = SelectionState()
        self._context: RepositoryContext | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def context(self) -> RepositoryContext | None:
        return self._context

    async def startup(self) -> None:
        self.host.set_key_handler(self.handle_key)
        self.host.set_pipe_handler(self.handle_pipe)
        directory = self.config.working_directory or Path.cwd()
        await self.event_bus.emit(
            Event(name=ENGINE_STARTED, data={"working_directory": str(directory)})
        )
        logger.info("engine_started", working_directory=str(directory))
        await self.change_working_directory(directory)

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        await self.event_bus.emit(Event(name=ENGINE_STOPPED))
        logger.info("engine_stopped", cancelled=len(tasks))

    async def handle_key(self, event: KeyPressed) -> None:
        await self._step(event)

    async def handle_pipe(self, name: str, payload: str | None) -> bool:
        """Handle a host pipe message; only ``cwd`` is understood."""
        if name != CWD_PIPE or not payload:
            logger.debug("pipe_ignored", name=name)
            return False
        await self.change_working_directory(Path(payload))
        return True

    async def change_working_directory(self, path: Path) -> None:
        """Swap in a fresh context and reload as if newly opened."""
        context = RepositoryContext.for_path(path)
        previous = self._context
        self._context = context
        logger.info(
            "working_directory_changed",
            path=str(context.working_directory),
            generation=context.generation,
        )
        await self.event_bus.emit(
            Event(
                name=CONTEXT_CHANGED,
                data={
                    "path": str(context.working_directory),
                    "previous": str(previous.working_directory) if previous else None,
                },
            )
        )
        await self._step(WorkingDirectoryChanged(path=context.working_directory))

    async def wait_idle(self) -> None:
        """Wait until no dispatched operation (or its follow-ups) is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _step(self, event: InputEvent) -> None:
        context = self._require_context()
        self._state, operations = transition(self._state, event)
        await self.host.render(self._state)
        for operation in operations:
            await self._dispatch(operation, context)

    async def _dispatch(self, operation: Operation, context: RepositoryContext) -> None:
        label = describe(operation)
        await self.event_bus.emit(
            Event(name=OPERATION_DISPATCHED, data={"operation": label})
        )
        match operation:
            case OpenLog(branch=branch):
                command = self.repository.log_command(context, branch, self.config)
                logger.info("log_pane_requested", branch=branch.name, floating=command.floating)
                await self.host.open_log(command)
            case Close():
                logger.info("close_requested")
                await self.host.close()
            case _:
                logger.debug("operation_dispatched", operation=label)
                task = asyncio.create_task(self._execute(operation, context))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _execute(self, operation: Operation, context: RepositoryContext) -> None:
        label = describe(operation)
        result = await self.runner.run(operation, context)
        if self._is_stale(context):
            await self._discard(label, context)
            return

        await self.event_bus.emit(
            Event(
                name=OPERATION_COMPLETED,
                data={"operation": label, "success": result.success, "kind": result.kind},
            )
        )
        # Hooks may suspend, and the directory can change while they do.
        if self._is_stale(context):
            await self._discard(label, context)
            return
        try:
            await self._step(CommandCompleted(operation=operation, result=result))
        except Exception:
            logger.exception("result_handling_failed", operation=label)

    def _is_stale(self, context: RepositoryContext) -> bool:
        return self._context is None or context.is_stale(self._context)

    async def _discard(self, label: str, context: RepositoryContext) -> None:
        logger.info(
            "operation_result_discarded",
            operation=label,
            reason="context_changed",
            generation=context.generation,
        )
        await self.event_bus.emit(Event(name=OPERATION_DISCARDED, data={"operation": label}))

    def _require_context(self) -> RepositoryContext:
        if self._context is None:
            raise RuntimeError("Engine.startup() must run before events are handled")
        return self._context
