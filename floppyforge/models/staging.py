"""Staging models — the unit the image assembler consumes."""

from __future__ import annotations

import io
from pathlib import Path
from typing import BinaryIO

from pydantic import BaseModel, ConfigDict, model_validator

from floppyforge.models.inputs import LayoutMode


class StagingEntry(BaseModel):
    """One file that must appear in the image.

    Exactly one of ``source_path`` (read lazily from disk) and ``data``
    (already in memory) is set.
    """

    model_config = ConfigDict(frozen=True)

    destination: str  # POSIX path relative to the image root
    layout: LayoutMode
    source_id: str
    source_path: Path | None = None
    data: bytes | None = None

    @model_validator(mode="after")
    def _one_byte_source(self) -> "StagingEntry":
        if (self.source_path is None) == (self.data is None):
            raise ValueError("StagingEntry needs exactly one of source_path or data")
        return self

    @property
    def in_memory(self) -> bool:
        return self.data is not None

    def open(self) -> BinaryIO:
        """Open the byte source for reading."""
        if self.data is not None:
            return io.BytesIO(self.data)
        return open(self.source_path, "rb")

    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        return self.source_path.stat().st_size


class Collision(BaseModel):
    """Diagnostic recorded when a destination was claimed twice."""

    model_config = ConfigDict(frozen=True)

    destination: str
    kept_source: str
    dropped_source: str
    identical: bool
