"""Shared fixtures, mock host and in-memory repository for testing."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from branchdeck.core.config import BranchDeckConfig
from branchdeck.core.engine import Engine
from branchdeck.core.events import EventBus
from branchdeck.exceptions import (
    BranchAlreadyExistsError,
    BranchNotFoundError,
    ConflictError,
    InvalidBranchNameError,
    NotARepositoryError,
    NotFullyMergedError,
    UnsupportedOperationError,
)
from branchdeck.git.models import Branch, BranchKind, LogCommand
from branchdeck.git.repository import BranchRepository, is_valid_branch_name
from branchdeck.git.runner import CommandRunner
from branchdeck.host.base import HostBridge


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Prevent .env file and shell env from leaking into tests."""
    monkeypatch.setitem(BranchDeckConfig.model_config, "env_file", None)
    for key in list(os.environ):
        if key.startswith("BRANCHDECK_"):
            monkeypatch.delenv(key, raising=False)


class MockHost(HostBridge):
    """In-memory host for testing."""

    def __init__(self) -> None:
        super().__init__()
        self.renders: list = []
        self.log_commands: list[LogCommand] = []
        self.closed = False
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def render(self, state) -> None:
        self.renders.append(state)

    async def open_log(self, command: LogCommand) -> None:
        self.log_commands.append(command)

    async def close(self) -> None:
        self.closed = True


class FakeRepository:
    """Git-like in-memory branch store with optional per-operation gates.

    ``gates[op]`` holds an asyncio.Event the operation waits on before it
    takes effect, letting tests control completion order.
    """

    def __init__(
        self,
        local: tuple[str, ...] = ("main",),
        remote: tuple[str, ...] = (),
        *,
        current: str = "main",
        unmerged: tuple[str, ...] = (),
        dirty: bool = False,
    ) -> None:
        self.local = list(local)
        self.remote = list(remote)
        self.current = current
        self.previous: str | None = None
        self.unmerged = set(unmerged)
        self.dirty = dirty
        self.upstreams: dict[str, str] = {}
        self.not_repositories: set[Path] = set()
        self.calls: list[tuple] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.active: dict[str, int] = {}
        self.max_active: dict[str, int] = {}
        self._log = BranchRepository()

    async def _enter(self, op: str, *details) -> None:
        self.calls.append((op, *details))
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()

    def _check_repo(self, context) -> None:
        if context.working_directory in self.not_repositories:
            raise NotARepositoryError(f"Not a git repository: {context.working_directory}")

    async def list(self, context, mode):
        await self._enter("list", mode)
        self._check_repo(context)
        if mode is BranchKind.LOCAL:
            return tuple(
                Branch(
                    name=name,
                    is_current=name == self.current,
                    upstream=self.upstreams.get(name),
                )
                for name in self.local
            )
        return tuple(
            Branch(name=name, kind=BranchKind.REMOTE, remote_name=name.split("/", 1)[0])
            for name in self.remote
        )

    async def switch(self, context, branch):
        key = branch.local_name
        self.active[key] = self.active.get(key, 0) + 1
        self.max_active[key] = max(self.max_active.get(key, 0), self.active[key])
        try:
            await self._enter("switch", branch.name)
        finally:
            self.active[key] -= 1
        self._check_repo(context)
        if self.dirty:
            raise ConflictError("Your local changes would be overwritten by checkout")
        if branch.kind is BranchKind.REMOTE:
            if branch.name not in self.remote:
                raise BranchNotFoundError(f"'{branch.name}' is not a commit")
            if branch.local_name in self.local:
                raise BranchAlreadyExistsError(
                    f"a branch named '{branch.local_name}' already exists"
                )
            self.local.append(branch.local_name)
            self.upstreams[branch.local_name] = branch.name
            self._move_head(branch.local_name)
            return
        if branch.name not in self.local:
            raise BranchNotFoundError(f"invalid reference: {branch.name}")
        self._move_head(branch.name)

    async def switch_previous(self, context):
        await self._enter("switch_previous")
        if self.previous is None:
            raise BranchNotFoundError("invalid reference: @{-1}")
        self._move_head(self.previous)

    async def create(self, context, name):
        await self._enter("create", name)
        if not is_valid_branch_name(name):
            raise InvalidBranchNameError(f"Invalid branch name: {name!r}")
        if name in self.local:
            raise BranchAlreadyExistsError(f"a branch named '{name}' already exists")
        self.local.append(name)
        self._move_head(name)

    async def delete(self, context, branch, *, force=False):
        if branch.kind is BranchKind.REMOTE:
            raise UnsupportedOperationError(f"Cannot delete remote branch {branch.name}")
        if branch.name == self.current:
            raise ConflictError(f"Cannot delete the checked-out branch {branch.name}")
        key = branch.name
        self.active[key] = self.active.get(key, 0) + 1
        self.max_active[key] = max(self.max_active.get(key, 0), self.active[key])
        try:
            await self._enter("force_delete" if force else "delete", branch.name)
        finally:
            self.active[key] -= 1
        if branch.name not in self.local:
            raise BranchNotFoundError(f"branch '{branch.name}' not found")
        if not force and branch.name in self.unmerged:
            raise NotFullyMergedError(f"the branch '{branch.name}' is not fully merged")
        self.local.remove(branch.name)

    async def fetch(self, context, branch):
        await self._enter("fetch", branch.name)
        if not branch.upstream:
            raise UnsupportedOperationError(
                f"Local branch {branch.name} does not track any remote branch"
            )

    def log_command(self, context, branch, config):
        return self._log.log_command(context, branch, config)

    def _move_head(self, name: str) -> None:
        if name != self.current:
            self.previous = self.current
            self.current = name


@pytest.fixture
def config(tmp_path):
    return BranchDeckConfig(working_directory=tmp_path)


@pytest.fixture
def mock_host():
    return MockHost()


@pytest.fixture
def fake_repository():
    return FakeRepository(
        local=("main", "feature/x", "feature/y", "old-feature"),
        remote=("origin/main", "origin/dev"),
        unmerged=("old-feature",),
    )


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def engine(config, mock_host, fake_repository, event_bus):
    return Engine(
        config=config,
        host=mock_host,
        repository=fake_repository,
        runner=CommandRunner(fake_repository),
        event_bus=event_bus,
    )
