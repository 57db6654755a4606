"""Unit tests for LifecycleTracker — ownership and best-effort release."""

from __future__ import annotations

import shutil
from pathlib import Path

from floppyforge.core.lifecycle import LifecycleTracker


class TestLifecycleTracker:
    def test_temp_paths_are_tracked(self, tracker: LifecycleTracker, scratch_dir: Path):
        d = tracker.make_temp_dir()
        f = tracker.make_temp_file(suffix=".img")

        assert d.is_dir() and f.is_file()
        assert d.parent == scratch_dir and f.parent == scratch_dir
        assert f.name.endswith(".img")
        assert tracker.tracked == (d, f)

    def test_temp_paths_are_unique(self, tracker: LifecycleTracker):
        assert tracker.make_temp_file() != tracker.make_temp_file()
        assert tracker.make_temp_dir() != tracker.make_temp_dir()

    def test_release_all_removes_everything(self, tracker: LifecycleTracker):
        d = tracker.make_temp_dir()
        (d / "nested").mkdir()
        (d / "nested" / "f").write_text("x")
        f = tracker.make_temp_file()

        assert tracker.release_all() == []
        assert not d.exists() and not f.exists()
        assert tracker.tracked == ()

    def test_release_all_is_idempotent(self, tracker: LifecycleTracker):
        tracker.make_temp_dir()
        assert tracker.release_all() == []
        assert tracker.release_all() == []

    def test_nothing_tracked_is_a_noop(self):
        assert LifecycleTracker().release_all() == []

    def test_already_removed_counts_as_released(self, tracker: LifecycleTracker):
        d = tracker.make_temp_dir()
        shutil.rmtree(d)
        assert tracker.release_all() == []
        assert tracker.tracked == ()

    def test_release_one_path(self, tracker: LifecycleTracker):
        d = tracker.make_temp_dir()
        f = tracker.make_temp_file()
        assert tracker.release(d) is None
        assert not d.exists()
        assert tracker.tracked == (f,)

    def test_untracked_path_is_left_alone(self, tracker: LifecycleTracker, tmp_dir: Path):
        keep = tmp_dir / "keep.txt"
        keep.write_text("mine")
        assert tracker.release(keep) is None
        assert keep.exists()

    def test_failed_release_is_reported_and_kept(self, tracker: LifecycleTracker, monkeypatch):
        d = tracker.make_temp_dir()

        def _deny(path, *args, **kwargs):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr(shutil, "rmtree", _deny)
        errors = tracker.release_all()
        assert len(errors) == 1
        assert isinstance(errors[0], PermissionError)
        assert tracker.tracked == (d,)

        monkeypatch.undo()
        assert tracker.release_all() == []
        assert not d.exists()

    def test_context_manager_releases(self, scratch_dir: Path):
        with LifecycleTracker(scratch_dir) as t:
            d = t.make_temp_dir()
            assert d.exists()
        assert not d.exists()
