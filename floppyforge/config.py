"""Process-wide settings — env-driven via pydantic-settings.

Reads from a ``.env`` file and ``FLOPPYFORGE_*`` environment variables.
Per-step values in ``FloppyConfig`` override these defaults.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from floppyforge.core.fat12 import get_geometry
from floppyforge.models.config import CollisionPolicy


class FloppyforgeSettings(BaseSettings):
    """Defaults for every floppy step run in this process.

    Examples
    --------
    Override via environment::

        export FLOPPYFORGE_LOG_LEVEL=DEBUG
        export FLOPPYFORGE_TEMP_DIR=/var/tmp/floppies
        export FLOPPYFORGE_DEFAULT_LABEL=cidata
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FLOPPYFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Where working trees and images are created; system temp dir if unset.
    temp_dir: Path | None = None

    # Image defaults
    default_label: str = "FLOPPYFORGE"
    image_format: str = "1.44M"

    # Resolution defaults
    collision_policy: CollisionPolicy = CollisionPolicy.ERROR
    strict_globs: bool = False

    @field_validator("image_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        return get_geometry(value).name

    @field_validator("default_label")
    @classmethod
    def _short_label(cls, value: str) -> str:
        if len(value) > 11:
            raise ValueError("default_label must be at most 11 characters")
        return value


# Module-level singleton — import as `from floppyforge.config import settings`
settings = FloppyforgeSettings()
