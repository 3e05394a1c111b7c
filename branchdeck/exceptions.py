"""Shared exception types for branchdeck."""

from enum import StrEnum


class ErrorKind(StrEnum):
    NOT_A_REPOSITORY = "NotARepository"
    BRANCH_NOT_FOUND = "BranchNotFound"
    BRANCH_ALREADY_EXISTS = "BranchAlreadyExists"
    INVALID_BRANCH_NAME = "InvalidBranchName"
    NOT_FULLY_MERGED = "NotFullyMerged"
    CONFLICT = "Conflict"
    UNSUPPORTED_OPERATION = "UnsupportedOperation"
    BACKEND_EXECUTION_FAILED = "BackendExecutionFailed"


class BranchDeckError(Exception):
    """Base exception for all branchdeck errors."""

    kind: ErrorKind = ErrorKind.BACKEND_EXECUTION_FAILED


class ConfigError(BranchDeckError):
    """Configuration is invalid or missing."""


class NotARepositoryError(BranchDeckError):
    """The working directory is not a git work tree."""

    kind = ErrorKind.NOT_A_REPOSITORY


class BranchNotFoundError(BranchDeckError):
    kind = ErrorKind.BRANCH_NOT_FOUND


class BranchAlreadyExistsError(BranchDeckError):
    kind = ErrorKind.BRANCH_ALREADY_EXISTS


class InvalidBranchNameError(BranchDeckError):
    kind = ErrorKind.INVALID_BRANCH_NAME


class NotFullyMergedError(BranchDeckError):
    kind = ErrorKind.NOT_FULLY_MERGED


class ConflictError(BranchDeckError):
    """Working tree or HEAD state blocks the operation."""

    kind = ErrorKind.CONFLICT


class UnsupportedOperationError(BranchDeckError):
    """Operation is not allowed for this kind of branch."""

    kind = ErrorKind.UNSUPPORTED_OPERATION


class BackendExecutionError(BranchDeckError):
    """git failed in a way that maps to no specific kind."""


_ERRORS_BY_KIND: dict[ErrorKind, type[BranchDeckError]] = {
    ErrorKind.NOT_A_REPOSITORY: NotARepositoryError,
    ErrorKind.BRANCH_NOT_FOUND: BranchNotFoundError,
    ErrorKind.BRANCH_ALREADY_EXISTS: BranchAlreadyExistsError,
    ErrorKind.INVALID_BRANCH_NAME: InvalidBranchNameError,
    ErrorKind.NOT_FULLY_MERGED: NotFullyMergedError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.UNSUPPORTED_OPERATION: UnsupportedOperationError,
    ErrorKind.BACKEND_EXECUTION_FAILED: BackendExecutionError,
}


def error_for_kind(kind: ErrorKind, message: str) -> BranchDeckError:
    """Build the exception subclass matching *kind*."""
    return _ERRORS_BY_KIND[kind](message)
