"""Step configuration as handed over by the host pipeline's config loader."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from floppyforge.core.fat12 import get_geometry


class CollisionPolicy(str, Enum):
    """What to do when two different payloads claim one image path."""

    ERROR = "error"
    LAST_WINS = "last_wins"


MAX_LABEL_LENGTH = 11


class FloppyConfig(BaseModel):
    """Declarative description of what goes on the floppy.

    Fields left as ``None`` fall back to the process settings.
    """

    model_config = ConfigDict(frozen=True)

    files: list[str] = Field(default_factory=list)
    directories: list[str] = Field(default_factory=list)
    content: dict[str, str | bytes] = Field(default_factory=dict)
    label: str | None = None
    image_format: str | None = None
    collision_policy: CollisionPolicy | None = None
    strict_globs: bool | None = None

    @field_validator("label")
    @classmethod
    def _check_label(cls, value: str | None) -> str | None:
        if value is None:
            return value
        if len(value) > MAX_LABEL_LENGTH:
            raise ValueError(
                f"volume label {value!r} is longer than {MAX_LABEL_LENGTH} characters"
            )
        if not value.isascii():
            raise ValueError(f"volume label {value!r} must be ASCII")
        return value

    @field_validator("image_format")
    @classmethod
    def _known_format(cls, value: str | None) -> str | None:
        return value if value is None else get_geometry(value).name
