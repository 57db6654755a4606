"""Unit tests for StagingSet — destination uniqueness and collision policy."""

from __future__ import annotations

from pathlib import Path

import pytest

from floppyforge.core.errors import DestinationCollision, InvalidDestination
from floppyforge.core.hasher import sha256_hex
from floppyforge.core.staging_set import StagingSet
from floppyforge.models.config import CollisionPolicy
from floppyforge.models.inputs import LayoutMode
from floppyforge.models.staging import StagingEntry


def _mem(destination: str, data: bytes, source_id: str | None = None) -> StagingEntry:
    return StagingEntry(
        destination=destination,
        layout=LayoutMode.LITERAL,
        source_id=source_id or destination,
        data=data,
    )


def _disk(destination: str, path: Path) -> StagingEntry:
    return StagingEntry(
        destination=destination,
        layout=LayoutMode.FLATTEN,
        source_id=str(path),
        source_path=path,
    )


# ---------------------------------------------------------------------------
# Test: basic staging
# ---------------------------------------------------------------------------


class TestStagingSet:
    def test_empty(self):
        staging = StagingSet()
        assert len(staging) == 0
        assert staging.entries == []
        assert staging.consumed == frozenset()

    def test_add_and_query(self):
        staging = StagingSet()
        assert staging.add(_mem("a.txt", b"abc"))
        assert staging.add(_mem("dir/b.txt", b"de"))

        assert len(staging) == 2
        assert staging.destinations == ["a.txt", "dir/b.txt"]
        assert "A.TXT" in staging
        assert "c.txt" not in staging

    def test_destination_is_normalised(self):
        staging = StagingSet()
        staging.add(_mem("dir\\b.txt", b"x"))
        assert staging.destinations == ["dir/b.txt"]

    def test_invalid_destination_is_rejected(self):
        with pytest.raises(InvalidDestination):
            StagingSet().add(_mem("../b.txt", b"x"))

    def test_payload_digests(self, tmp_dir: Path):
        src = tmp_dir / "f.bin"
        src.write_bytes(b"on disk")
        staging = StagingSet()
        staging.add(_mem("m.txt", b"in memory"))
        staging.add(_disk("f.bin", src))

        assert staging.payload_digests() == {
            "m.txt": sha256_hex(b"in memory"),
            "f.bin": sha256_hex(b"on disk"),
        }


# ---------------------------------------------------------------------------
# Test: duplicates and collisions
# ---------------------------------------------------------------------------


class TestStagingCollisions:
    def test_same_file_twice_is_a_reconfirmation(self, tmp_dir: Path):
        src = tmp_dir / "f.txt"
        src.write_text("one")
        staging = StagingSet()
        assert staging.add(_disk("f.txt", src))
        assert not staging.add(_disk("f.txt", src))
        assert len(staging) == 1
        assert staging.collisions == []

    def test_identical_bytes_from_different_sources(self):
        staging = StagingSet()
        staging.add(_mem("x", b"same", source_id="k1"))
        assert not staging.add(_mem("x", b"same", source_id="k2"))
        assert staging.consumed == {"k1", "k2"}
        assert staging.collisions == []

    def test_different_bytes_raise_under_error_policy(self):
        staging = StagingSet(CollisionPolicy.ERROR)
        staging.add(_mem("x", b"one", source_id="k1"))
        with pytest.raises(DestinationCollision) as info:
            staging.add(_mem("x", b"two", source_id="k2"))
        assert info.value.subject == "x"

    def test_last_wins_replaces_and_records(self):
        staging = StagingSet(CollisionPolicy.LAST_WINS)
        staging.add(_mem("x", b"one", source_id="k1"))
        assert staging.add(_mem("x", b"two", source_id="k2"))

        (entry,) = staging.entries
        assert entry.data == b"two"
        (collision,) = staging.collisions
        assert collision.kept_source == "k2"
        assert collision.dropped_source == "k1"
        assert not collision.identical

    def test_case_insensitive_slots(self):
        staging = StagingSet()
        staging.add(_mem("README", b"one", source_id="k1"))
        with pytest.raises(DestinationCollision):
            staging.add(_mem("readme", b"two", source_id="k2"))

    def test_identical_bytes_under_other_case_keep_one_entry(self):
        staging = StagingSet()
        staging.add(_mem("README", b"same", source_id="k1"))
        staging.add(_mem("readme", b"same", source_id="k2"))

        assert len(staging) == 1
        (collision,) = staging.collisions
        assert collision.identical
