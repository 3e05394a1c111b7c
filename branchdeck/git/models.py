"""Data models for branches, operations and their results."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from branchdeck.exceptions import ErrorKind


class BranchKind(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"

    def toggled(self) -> BranchKind:
        return BranchKind.REMOTE if self is BranchKind.LOCAL else BranchKind.LOCAL


class Branch(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: BranchKind = BranchKind.LOCAL
    is_current: bool = False
    remote_name: str | None = None
    commit_sha: str = ""
    commit_message: str = ""
    upstream: str | None = None
    upstream_track: str | None = None

    @property
    def local_name(self) -> str:
        """Name of the local branch this one maps to (remote prefix stripped)."""
        if self.kind is BranchKind.REMOTE and self.remote_name:
            prefix = f"{self.remote_name}/"
            if self.name.startswith(prefix):
                return self.name[len(prefix) :]
        return self.name


class ListBranches(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["list"] = "list"
    mode: BranchKind


class SwitchBranch(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["switch"] = "switch"
    branch: Branch


class CreateBranch(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["create"] = "create"
    name: str


class DeleteBranch(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["delete"] = "delete"
    branch: Branch


class ForceDeleteBranch(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["force_delete"] = "force_delete"
    branch: Branch


class OpenLog(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["open_log"] = "open_log"
    branch: Branch


class SwitchPrevious(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["switch_previous"] = "switch_previous"


class FetchBranch(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["fetch"] = "fetch"
    branch: Branch


class Close(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["close"] = "close"


Operation = Annotated[
    ListBranches
    | SwitchBranch
    | CreateBranch
    | DeleteBranch
    | ForceDeleteBranch
    | OpenLog
    | SwitchPrevious
    | FetchBranch
    | Close,
    Field(discriminator="op"),
]

# Handled by the host rather than the command runner.
HOST_OPERATIONS = (OpenLog, Close)

_PREVIOUS_BRANCH_KEY = "@{-1}"


def lock_key(operation: Operation) -> str | None:
    """Branch name an operation must be serialized on, or None if unlocked."""
    match operation:
        case SwitchBranch(branch=branch) | FetchBranch(branch=branch):
            return branch.local_name
        case DeleteBranch(branch=branch) | ForceDeleteBranch(branch=branch):
            return branch.name
        case CreateBranch(name=name):
            return name
        case SwitchPrevious():
            return _PREVIOUS_BRANCH_KEY
        case _:
            return None


def describe(operation: Operation) -> str:
    """Short human-readable label used in logs and status text."""
    match operation:
        case ListBranches(mode=mode):
            return f"list {mode.value} branches"
        case CreateBranch(name=name):
            return f"create {name}"
        case SwitchPrevious():
            return "switch to previous branch"
        case Close():
            return "close"
        case _:
            return f"{operation.op.replace('_', ' ')} {operation.branch.name}"


class CommandResult(BaseModel):
    """Outcome of one operation; consumed once by the input controller."""

    model_config = ConfigDict(frozen=True)

    success: bool
    kind: ErrorKind | None = None
    message: str = ""
    branches: tuple[Branch, ...] = ()

    @classmethod
    def ok(cls, branches: tuple[Branch, ...] = ()) -> CommandResult:
        return cls(success=True, branches=branches)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> CommandResult:
        return cls(success=False, kind=kind, message=message)


class LogCommand(BaseModel):
    """A log invocation for the host to run in a pane."""

    model_config = ConfigDict(frozen=True)

    argv: tuple[str, ...]
    cwd: Path
    floating: bool = False
