"""Repository context: the working directory every git call runs against."""

from __future__ import annotations

import itertools
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

_generations = itertools.count(1)


class RepositoryContext(BaseModel):
    """Immutable handle on one working directory.

    A working-directory change produces a new context instead of mutating
    this one, so in-flight operations keep the context they were issued with.
    Each context gets a distinct ``generation`` even when the path repeats.
    """

    model_config = ConfigDict(frozen=True)

    working_directory: Path
    generation: int = Field(default_factory=lambda: next(_generations))

    @classmethod
    def for_path(cls, path: str | Path) -> RepositoryContext:
        return cls(working_directory=Path(path).expanduser())

    def is_stale(self, current: RepositoryContext) -> bool:
        return self.generation != current.generation
