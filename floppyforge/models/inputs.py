"""Tagged step inputs — built once at step entry from the raw configuration.

Downstream code dispatches on ``kind`` and never re-inspects raw strings to
decide whether something is a file pattern, a directory pattern or content.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class InputKind(str, Enum):
    """Which configuration list an input came from."""

    FILE_PATTERN = "file_pattern"
    DIR_PATTERN = "dir_pattern"
    CONTENT = "content"


class LayoutMode(str, Enum):
    """How a staged entry's destination path was derived.

    FLATTEN   — basename only (file patterns, plain files under dir patterns).
    PRESERVE  — hierarchy below the matched directory is kept.
    LITERAL   — the destination was given verbatim (content entries).
    """

    FLATTEN = "flatten"
    PRESERVE = "preserve"
    LITERAL = "literal"


_GLOB_CHARS = frozenset("*?[")


def has_glob(pattern: str) -> bool:
    """True if *pattern* contains glob metacharacters."""
    return any(c in _GLOB_CHARS for c in pattern)


class FilePattern(BaseModel):
    """Glob whose matches are flattened to their basenames."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[InputKind.FILE_PATTERN] = InputKind.FILE_PATTERN
    pattern: str

    @property
    def is_glob(self) -> bool:
        return has_glob(self.pattern)


class DirPattern(BaseModel):
    """Glob whose directory matches are mirrored with their hierarchy."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[InputKind.DIR_PATTERN] = InputKind.DIR_PATTERN
    pattern: str

    @property
    def is_glob(self) -> bool:
        return has_glob(self.pattern)


class ContentEntry(BaseModel):
    """Literal in-image path and the bytes to store there.

    ``key`` is the configuration key exactly as given (the consumed-set
    identifier); ``destination`` is its normalised POSIX form.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal[InputKind.CONTENT] = InputKind.CONTENT
    key: str
    destination: str
    data: bytes


StepInput = Annotated[
    Union[FilePattern, DirPattern, ContentEntry],
    Field(discriminator="kind"),
]
