"""Async wrapper for git branch operations."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from branchdeck.exceptions import (
    BackendExecutionError,
    ConflictError,
    ErrorKind,
    InvalidBranchNameError,
    NotARepositoryError,
    UnsupportedOperationError,
    error_for_kind,
)
from branchdeck.git.models import Branch, BranchKind, LogCommand

if TYPE_CHECKING:
    from branchdeck.core.config import BranchDeckConfig
    from branchdeck.core.context import RepositoryContext

logger = structlog.get_logger()

_DEFAULT_TIMEOUT = 30
_FIELD_DELIMITER = "\x00"

_LOCAL_FORMAT = "%00".join(
    (
        "%(HEAD)",
        "%(refname:short)",
        "%(objectname:short)",
        "%(upstream:short)",
        "%(upstream:track,nobracket)",
        "%(contents:subject)",
    )
)
_REMOTE_FORMAT = "%00".join(
    (
        "%(refname:short)",
        "%(objectname:short)",
        "%(symref:short)",
        "%(contents:subject)",
    )
)

# First match wins, so more specific phrases come first.
_ERROR_PATTERNS: tuple[tuple[str, ErrorKind], ...] = (
    ("not a git repository", ErrorKind.NOT_A_REPOSITORY),
    ("directory does not exist", ErrorKind.NOT_A_REPOSITORY),
    ("is not a valid branch name", ErrorKind.INVALID_BRANCH_NAME),
    ("already exists", ErrorKind.BRANCH_ALREADY_EXISTS),
    ("not fully merged", ErrorKind.NOT_FULLY_MERGED),
    ("would be overwritten", ErrorKind.CONFLICT),
    ("checked out at", ErrorKind.CONFLICT),
    ("used by worktree", ErrorKind.CONFLICT),
    ("refusing to fetch into", ErrorKind.CONFLICT),
    ("you have unstaged changes", ErrorKind.CONFLICT),
    ("please commit your changes", ErrorKind.CONFLICT),
    ("not found", ErrorKind.BRANCH_NOT_FOUND),
    ("did not match any", ErrorKind.BRANCH_NOT_FOUND),
    ("invalid reference", ErrorKind.BRANCH_NOT_FOUND),
    ("not a commit", ErrorKind.BRANCH_NOT_FOUND),
    ("couldn't find remote ref", ErrorKind.BRANCH_NOT_FOUND),
)

_FORBIDDEN_NAME_CHARS = frozenset(" ~^:?*[\\")


def classify_error(message: str) -> ErrorKind:
    """Map git's stderr text to an ErrorKind."""
    lowered = message.lower()
    for pattern, kind in _ERROR_PATTERNS:
        if pattern in lowered:
            return kind
    return ErrorKind.BACKEND_EXECUTION_FAILED


def is_valid_branch_name(name: str) -> bool:
    """Apply git's ref-format rules for branch names without calling git."""
    if not name or name == "@" or name.startswith("-"):
        return False
    if name.startswith("/") or name.endswith(("/", ".", ".lock")):
        return False
    if ".." in name or "//" in name or "@{" in name:
        return False
    if any(ch in _FORBIDDEN_NAME_CHARS or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in name):
        return False
    return not any(
        part.startswith(".") or part.endswith(".lock") for part in name.split("/")
    )


def parse_local_branches(stdout: str) -> tuple[Branch, ...]:
    """Parse ``git branch --format`` output built from ``_LOCAL_FORMAT``."""
    branches: list[Branch] = []
    for line in stdout.splitlines():
        parts = line.split(_FIELD_DELIMITER, 5)
        if len(parts) != 6:
            continue
        head, name, sha, upstream, track, subject = parts
        name = name.strip()
        # Skip detached HEAD
        if not name or name.startswith("("):
            continue
        branches.append(
            Branch(
                name=name,
                kind=BranchKind.LOCAL,
                is_current=head.strip() == "*",
                commit_sha=sha.strip(),
                commit_message=subject.strip(),
                upstream=upstream.strip() or None,
                upstream_track=track.strip() or None,
            )
        )
    return tuple(branches)


def parse_remote_branches(stdout: str) -> tuple[Branch, ...]:
    """Parse ``git branch -r --format`` output built from ``_REMOTE_FORMAT``."""
    branches: list[Branch] = []
    for line in stdout.splitlines():
        parts = line.split(_FIELD_DELIMITER, 3)
        if len(parts) != 4:
            continue
        name, sha, symref, subject = parts
        name = name.strip()
        # Skip HEAD pointers like "origin/HEAD -> origin/main"
        if not name or symref.strip():
            continue
        remote_name = name.split("/", 1)[0] if "/" in name else None
        branches.append(
            Branch(
                name=name,
                kind=BranchKind.REMOTE,
                remote_name=remote_name,
                commit_sha=sha.strip(),
                commit_message=subject.strip(),
            )
        )
    return tuple(branches)


class BranchRepository:
    """Branch listing and lifecycle operations against a RepositoryContext."""

    def __init__(self, *, timeout: int = _DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    async def list(self, context: RepositoryContext, mode: BranchKind) -> tuple[Branch, ...]:
        """List local or remote branches in backend order."""
        cwd = context.working_directory
        code, _, stderr = await self._run(
            "rev-parse", "--is-inside-work-tree", context=context
        )
        if code != 0:
            logger.info("not_a_repository", cwd=str(cwd), stderr=stderr.strip())
            raise NotARepositoryError(f"Not a git repository: {cwd}")

        if mode is BranchKind.LOCAL:
            stdout = await self._check(
                "list local branches",
                "branch", "--list", f"--format={_LOCAL_FORMAT}",
                context=context,
            )
            branches = parse_local_branches(stdout)
        else:
            stdout = await self._check(
                "list remote branches",
                "branch", "--remotes", f"--format={_REMOTE_FORMAT}",
                context=context,
            )
            branches = parse_remote_branches(stdout)

        logger.debug("branches_listed", mode=mode.value, count=len(branches), cwd=str(cwd))
        return branches

    async def switch(self, context: RepositoryContext, branch: Branch) -> None:
        """Check out *branch*; a remote branch gets a local tracking branch first."""
        if branch.kind is BranchKind.REMOTE:
            await self._check(
                f"track {branch.name}", "checkout", "--track", branch.name, context=context
            )
            logger.info("remote_branch_tracked", branch=branch.name, local=branch.local_name)
            return

        await self._check(f"switch to {branch.name}", "switch", branch.name, context=context)
        logger.info("branch_switched", branch=branch.name)

    async def switch_previous(self, context: RepositoryContext) -> None:
        await self._check("switch to the previous branch", "switch", "-", context=context)
        logger.info("branch_switched_previous")

    async def create(self, context: RepositoryContext, name: str) -> None:
        """Create *name* at HEAD and check it out."""
        if not is_valid_branch_name(name):
            raise InvalidBranchNameError(f"Invalid branch name: {name!r}")
        await self._check(f"create {name}", "checkout", "-b", name, context=context)
        logger.info("branch_created", branch=name)

    async def delete(
        self, context: RepositoryContext, branch: Branch, *, force: bool = False
    ) -> None:
        if branch.kind is BranchKind.REMOTE:
            raise UnsupportedOperationError(
                f"Cannot delete remote branch {branch.name}"
            )
        if branch.is_current:
            raise ConflictError(
                f"Cannot delete the checked-out branch {branch.name}"
            )
        flag = "-D" if force else "-d"
        await self._check(
            f"delete {branch.name}", "branch", flag, branch.name, context=context
        )
        logger.info("branch_deleted", branch=branch.name, force=force)

    async def fetch(self, context: RepositoryContext, branch: Branch) -> None:
        """Fast-forward a local branch from its upstream without checking it out."""
        if branch.kind is BranchKind.REMOTE:
            raise UnsupportedOperationError(f"Cannot fetch into remote branch {branch.name}")
        if not branch.upstream or "/" not in branch.upstream:
            raise UnsupportedOperationError(
                f"Local branch {branch.name} does not track any remote branch"
            )
        remote, remote_ref = branch.upstream.split("/", 1)
        refspec = f"{remote_ref}:{branch.name}"
        await self._check(
            f"fetch {branch.upstream}", "fetch", remote, refspec, context=context
        )
        logger.info("branch_fetched", branch=branch.name, upstream=branch.upstream)

    def log_command(
        self, context: RepositoryContext, branch: Branch, config: BranchDeckConfig
    ) -> LogCommand:
        """Build (not run) the command that shows *branch*'s history."""
        return LogCommand(
            argv=("git", "log", *config.log_arguments, branch.name),
            cwd=context.working_directory,
            floating=config.open_log_in_floating,
        )

    async def _check(self, action: str, *args: str, context: RepositoryContext) -> str:
        """Run git and raise the classified error on a non-zero exit."""
        code, stdout, stderr = await self._run(*args, context=context)
        if code == 0:
            return stdout
        message = stderr.strip() or stdout.strip() or f"Failed to {action}"
        kind = classify_error(message)
        logger.info("git_command_failed", action=action, kind=kind.value, stderr=message)
        raise error_for_kind(kind, message)

    async def _run(self, *args: str, context: RepositoryContext) -> tuple[int, str, str]:
        """Execute a git command via asyncio.create_subprocess_exec.

        Timeouts and spawn failures raise BackendExecutionError; a missing
        working directory is reported as a failed command.
        """
        cwd = context.working_directory
        if not cwd.is_dir():
            return 1, "", f"Directory does not exist: {cwd}"

        cmd = ("git", *args)
        logger.debug("git_exec", command=cmd, cwd=str(cwd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout
            )
            stdout = stdout_bytes.decode("utf-8", errors="replace")
            stderr = stderr_bytes.decode("utf-8", errors="replace")
            return proc.returncode or 0, stdout, stderr
        except TimeoutError:
            logger.warning("git_exec_timeout", command=cmd, timeout=self._timeout)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            raise BackendExecutionError(f"Command timed out after {self._timeout}s") from None
        except FileNotFoundError:
            raise BackendExecutionError("git is not installed or not in PATH") from None
        except OSError as e:
            logger.error("git_exec_error", command=cmd, error=str(e))
            raise BackendExecutionError(str(e)) from e
