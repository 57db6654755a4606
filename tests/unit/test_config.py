"""Tests for process settings — env-driven defaults."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from floppyforge.config import FloppyforgeSettings
from floppyforge.models.config import CollisionPolicy


class TestFloppyforgeSettings:
    def test_defaults(self, monkeypatch):
        for var in ("LOG_LEVEL", "TEMP_DIR", "DEFAULT_LABEL", "IMAGE_FORMAT",
                    "COLLISION_POLICY", "STRICT_GLOBS"):
            monkeypatch.delenv(f"FLOPPYFORGE_{var}", raising=False)
        config = FloppyforgeSettings(_env_file=None)
        assert config.log_level == "INFO"
        assert config.temp_dir is None
        assert config.default_label == "FLOPPYFORGE"
        assert config.image_format == "1.44M"
        assert config.collision_policy is CollisionPolicy.ERROR
        assert config.strict_globs is False

    def test_env_overrides(self, monkeypatch, tmp_dir: Path):
        monkeypatch.setenv("FLOPPYFORGE_TEMP_DIR", str(tmp_dir))
        monkeypatch.setenv("FLOPPYFORGE_DEFAULT_LABEL", "cidata")
        monkeypatch.setenv("FLOPPYFORGE_IMAGE_FORMAT", "720k")
        monkeypatch.setenv("FLOPPYFORGE_COLLISION_POLICY", "last_wins")
        monkeypatch.setenv("FLOPPYFORGE_STRICT_GLOBS", "true")

        config = FloppyforgeSettings(_env_file=None)
        assert config.temp_dir == tmp_dir
        assert config.default_label == "cidata"
        assert config.image_format == "720K"
        assert config.collision_policy is CollisionPolicy.LAST_WINS
        assert config.strict_globs is True

    def test_unknown_format_rejected(self):
        with pytest.raises(ValidationError):
            FloppyforgeSettings(image_format="8in")

    def test_long_label_rejected(self):
        with pytest.raises(ValidationError):
            FloppyforgeSettings(default_label="MUCH_TOO_LONG")
