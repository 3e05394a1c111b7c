"""Selection state: the single source of truth the host renders."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from branchdeck.core import fuzzy
from branchdeck.exceptions import ErrorKind
from branchdeck.git.models import Branch, BranchKind


class PhaseStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"


class Phase(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: PhaseStatus = PhaseStatus.IDLE
    kind: ErrorKind | None = None
    message: str = ""

    @classmethod
    def error(cls, kind: ErrorKind, message: str) -> Phase:
        return cls(status=PhaseStatus.ERROR, kind=kind, message=message)

    @property
    def is_error(self) -> bool:
        return self.status is PhaseStatus.ERROR


IDLE = Phase()
LOADING = Phase(status=PhaseStatus.LOADING)


class SelectionState(BaseModel):
    """Immutable UI state; transitions build a new instance via ``evolve``."""

    model_config = ConfigDict(frozen=True)

    branches: tuple[Branch, ...] = ()
    filter: str = ""
    selected_index: int = 0
    mode: BranchKind = BranchKind.LOCAL
    input_buffer: str = ""
    phase: Phase = IDLE
    outstanding: int = 0
    working_directory: Path | None = None

    @property
    def visible_branches(self) -> list[Branch]:
        """Branches of the current mode matching ``filter``, best match first."""
        return fuzzy.match(self.filter, self.branches, key=lambda b: b.name)

    @property
    def selected_branch(self) -> Branch | None:
        visible = self.visible_branches
        if not visible:
            return None
        return visible[self.selected_index]

    def evolve(self, **changes) -> SelectionState:
        """Copy with *changes* applied and ``selected_index`` clamped."""
        return self.model_copy(update=changes)._clamped()

    def _clamped(self) -> SelectionState:
        count = len(self.visible_branches)
        clamped = min(max(self.selected_index, 0), max(count - 1, 0))
        if clamped == self.selected_index:
            return self
        return self.model_copy(update={"selected_index": clamped})

    def settled_phase(self) -> Phase:
        """Phase to show once no error is pending."""
        return LOADING if self.outstanding > 0 else IDLE
