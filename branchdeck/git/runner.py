"""Command runner: executes operations and converts every outcome to a result."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from branchdeck.exceptions import BranchDeckError, ErrorKind
from branchdeck.git.models import (
    HOST_OPERATIONS,
    CommandResult,
    CreateBranch,
    DeleteBranch,
    FetchBranch,
    ForceDeleteBranch,
    ListBranches,
    Operation,
    SwitchBranch,
    SwitchPrevious,
    describe,
    lock_key,
)

if TYPE_CHECKING:
    from branchdeck.core.context import RepositoryContext
    from branchdeck.git.repository import BranchRepository

logger = structlog.get_logger()


class _BranchLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class CommandRunner:
    """Runs operations against a repository, one at a time per branch name."""

    def __init__(self, repository: BranchRepository) -> None:
        self._repository = repository
        self._locks: dict[str, _BranchLock] = {}

    async def run(self, operation: Operation, context: RepositoryContext) -> CommandResult:
        """Execute *operation*; never raises for backend failures."""
        if isinstance(operation, HOST_OPERATIONS):
            return CommandResult.failure(
                ErrorKind.UNSUPPORTED_OPERATION,
                f"{describe(operation)} is handled by the host",
            )

        key = lock_key(operation)
        if key is None:
            return await self._execute(operation, context)

        entry = self._locks.setdefault(key, _BranchLock())
        entry.users += 1
        try:
            if entry.lock.locked():
                logger.debug("operation_waiting", operation=describe(operation), branch=key)
            async with entry.lock:
                return await self._execute(operation, context)
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._locks.pop(key, None)

    async def _execute(self, operation: Operation, context: RepositoryContext) -> CommandResult:
        label = describe(operation)
        try:
            branches = await self._perform(operation, context)
        except BranchDeckError as e:
            logger.info(
                "operation_failed",
                operation=label,
                kind=e.kind.value,
                error=str(e),
            )
            return CommandResult.failure(e.kind, str(e))
        except Exception as e:
            logger.exception("operation_crashed", operation=label)
            return CommandResult.failure(ErrorKind.BACKEND_EXECUTION_FAILED, str(e) or label)

        logger.debug("operation_succeeded", operation=label)
        return CommandResult.ok(branches)

    async def _perform(self, operation: Operation, context: RepositoryContext) -> tuple:
        repository = self._repository
        match operation:
            case ListBranches(mode=mode):
                return await repository.list(context, mode)
            case SwitchBranch(branch=branch):
                await repository.switch(context, branch)
            case CreateBranch(name=name):
                await repository.create(context, name)
            case DeleteBranch(branch=branch):
                await repository.delete(context, branch, force=False)
            case ForceDeleteBranch(branch=branch):
                await repository.delete(context, branch, force=True)
            case SwitchPrevious():
                await repository.switch_previous(context)
            case FetchBranch(branch=branch):
                await repository.fetch(context, branch)
            case _:
                raise TypeError(f"unsupported operation: {operation!r}")
        return ()
