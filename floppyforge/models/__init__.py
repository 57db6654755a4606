"""Floppyforge data models — all Pydantic v2, all frozen (immutable)."""

from floppyforge.models.config import CollisionPolicy, FloppyConfig
from floppyforge.models.inputs import (
    ContentEntry,
    DirPattern,
    FilePattern,
    InputKind,
    LayoutMode,
    StepInput,
)
from floppyforge.models.results import StepAction, StepResult
from floppyforge.models.staging import Collision, StagingEntry

__all__ = [
    # config
    "CollisionPolicy",
    "FloppyConfig",
    # inputs
    "InputKind",
    "LayoutMode",
    "FilePattern",
    "DirPattern",
    "ContentEntry",
    "StepInput",
    # staging
    "StagingEntry",
    "Collision",
    # results
    "StepAction",
    "StepResult",
]
