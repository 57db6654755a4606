"""Shared test fixtures for Floppyforge."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from floppyforge.config import FloppyforgeSettings
from floppyforge.core.lifecycle import LifecycleTracker
from floppyforge.models.config import FloppyConfig
from floppyforge.steps.create_floppy import CreateFloppyStep

FIXED_TIMESTAMP = datetime(2024, 5, 17, 12, 30, 44)

# Relative file paths of the three directory-pattern fixture trees.
HIERARCHIES: dict[str, list[str]] = {
    "test-0": ["file1", "file2", "file3"],
    "test-1": ["dir1/file1", "dir1/file2", "dir1/file3"],
    "test-2": [
        "dir1/file1",
        "dir1/subdir1/file1",
        "dir1/subdir1/file2",
        "dir2/subdir1/file1",
        "dir2/subdir1/file2",
    ],
}


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def scratch_dir(tmp_dir: Path) -> Path:
    """Directory the step and trackers create their temporary paths in."""
    return tmp_dir / "scratch"


@pytest.fixture
def settings(scratch_dir: Path) -> FloppyforgeSettings:
    """Settings that keep every temporary path inside the test directory."""
    return FloppyforgeSettings(temp_dir=scratch_dir)


@pytest.fixture
def tracker(scratch_dir: Path) -> LifecycleTracker:
    """Provide a LifecycleTracker rooted in the scratch directory."""
    t = LifecycleTracker(scratch_dir)
    yield t
    t.release_all()


@pytest.fixture
def state() -> dict[str, Any]:
    """A fresh shared state dict, as the host pipeline would hand over."""
    return {}


@pytest.fixture
def make_step(settings: FloppyforgeSettings) -> Callable[..., CreateFloppyStep]:
    """Factory fixture: build a CreateFloppyStep from FloppyConfig fields."""
    steps: list[CreateFloppyStep] = []

    def _factory(**config: Any) -> CreateFloppyStep:
        step = CreateFloppyStep(
            FloppyConfig(**config), settings=settings, timestamp=FIXED_TIMESTAMP
        )
        steps.append(step)
        return step

    yield _factory
    for step in steps:
        step.cleanup({})


@pytest.fixture
def flat_files(tmp_dir: Path) -> list[Path]:
    """Ten empty files ``exists0.tmp`` .. ``exists9.tmp`` in their own dir."""
    src = tmp_dir / "flat"
    src.mkdir()
    files = []
    for i in range(10):
        path = src / f"exists{i}.tmp"
        path.touch()
        files.append(path)
    return files


@pytest.fixture
def hierarchy(tmp_dir: Path) -> Path:
    """Build the ``floppy-hier`` trees; every file holds its own rel path."""
    base = tmp_dir / "floppy-hier"
    for name, files in HIERARCHIES.items():
        for rel in files:
            path = base / name / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(f"{name}/{rel}\n")
    return base
