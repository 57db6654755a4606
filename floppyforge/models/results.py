"""Step outcome models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from floppyforge.core.errors import FloppyStepError
from floppyforge.models.staging import Collision


class StepAction(str, Enum):
    """The two-valued control-flow contract with the host pipeline."""

    CONTINUE = "continue"
    HALT = "halt"


class StepResult(BaseModel):
    """What one invocation of the floppy step produced."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    image_path: Path | None = None
    error: FloppyStepError | None = None
    cancelled: bool = False
    files_added: frozenset[str] = frozenset()
    destinations: tuple[str, ...] = ()
    collisions: tuple[Collision, ...] = ()
    manifest_hash: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and self.image_path is not None

    @property
    def action(self) -> StepAction:
        return StepAction.CONTINUE if self.ok else StepAction.HALT
