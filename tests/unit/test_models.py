"""Tests for the Pydantic data models — validation, immutability, defaults."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import TypeAdapter, ValidationError

from floppyforge.core.cancellation import CancelToken, ensure_token
from floppyforge.core.errors import (
    CapacityExceeded,
    FloppyStepError,
    IOFailure,
    PatternNotFound,
    StepCancelled,
)
from floppyforge.core.hasher import canonical_json_bytes, manifest_hash, sha256_hex
from floppyforge.models import (
    CollisionPolicy,
    ContentEntry,
    DirPattern,
    FilePattern,
    FloppyConfig,
    InputKind,
    LayoutMode,
    StagingEntry,
    StepAction,
    StepInput,
    StepResult,
)


class TestInputModels:
    def test_glob_detection(self):
        assert FilePattern(pattern="*.cfg").is_glob
        assert FilePattern(pattern="exists[0-9].tmp").is_glob
        assert not DirPattern(pattern="configs/").is_glob

    def test_discriminated_union(self):
        adapter = TypeAdapter(StepInput)
        parsed = adapter.validate_python({"kind": InputKind.DIR_PATTERN, "pattern": "d*"})
        assert isinstance(parsed, DirPattern)
        parsed = adapter.validate_python(
            {"kind": InputKind.CONTENT, "key": "k", "destination": "k", "data": b"v"}
        )
        assert isinstance(parsed, ContentEntry)
        assert parsed.kind is InputKind.CONTENT

    def test_inputs_are_frozen(self):
        fp = FilePattern(pattern="a")
        with pytest.raises(ValidationError):
            fp.pattern = "b"


class TestStagingEntry:
    def test_requires_exactly_one_source(self, tmp_dir: Path):
        with pytest.raises(ValidationError):
            StagingEntry(destination="a", layout=LayoutMode.LITERAL, source_id="a")
        with pytest.raises(ValidationError):
            StagingEntry(
                destination="a",
                layout=LayoutMode.LITERAL,
                source_id="a",
                source_path=tmp_dir / "a",
                data=b"a",
            )

    def test_open_and_size(self, tmp_dir: Path):
        src = tmp_dir / "f"
        src.write_bytes(b"12345")
        on_disk = StagingEntry(
            destination="f", layout=LayoutMode.FLATTEN, source_id=str(src), source_path=src
        )
        in_mem = StagingEntry(
            destination="m", layout=LayoutMode.LITERAL, source_id="m", data=b"xy"
        )
        assert on_disk.size() == 5 and not on_disk.in_memory
        assert in_mem.size() == 2 and in_mem.in_memory
        with on_disk.open() as fh:
            assert fh.read() == b"12345"
        with in_mem.open() as fh:
            assert fh.read() == b"xy"


class TestFloppyConfig:
    def test_defaults(self):
        config = FloppyConfig()
        assert config.files == [] and config.directories == [] and config.content == {}
        assert config.label is None
        assert config.collision_policy is None

    def test_label_limits(self):
        assert FloppyConfig(label="ELEVENCHARS").label == "ELEVENCHARS"
        with pytest.raises(ValidationError):
            FloppyConfig(label="TWELVE_CHARS")
        with pytest.raises(ValidationError):
            FloppyConfig(label="dïsk")

    def test_image_format_is_canonicalised(self):
        assert FloppyConfig(image_format="2.88m").image_format == "2.88M"
        with pytest.raises(ValidationError):
            FloppyConfig(image_format="zip")

    def test_collision_policy_from_string(self):
        config = FloppyConfig(collision_policy="last_wins")
        assert config.collision_policy is CollisionPolicy.LAST_WINS

    def test_frozen(self):
        config = FloppyConfig()
        with pytest.raises(ValidationError):
            config.label = "X"


class TestStepResult:
    def test_success(self, tmp_dir: Path):
        result = StepResult(image_path=tmp_dir / "f.img")
        assert result.ok
        assert result.action is StepAction.CONTINUE

    def test_failure(self):
        result = StepResult(error=PatternNotFound("nope", subject="x*"))
        assert not result.ok
        assert result.action is StepAction.HALT

    def test_cancelled(self):
        result = StepResult(cancelled=True)
        assert not result.ok
        assert result.action is StepAction.HALT


class TestErrorsAndHelpers:
    def test_error_kinds(self):
        assert PatternNotFound.kind == "pattern_not_found"
        assert CapacityExceeded.kind == "capacity_exceeded"
        assert issubclass(IOFailure, FloppyStepError)
        assert issubclass(FloppyStepError, RuntimeError)

    def test_error_message_names_subject(self):
        assert str(PatternNotFound("no such file", subject="a.cfg")) == "no such file: a.cfg"
        assert str(IOFailure("disk on fire")) == "disk on fire"

    def test_cancel_token(self):
        token = CancelToken()
        token.raise_if_cancelled()
        token.cancel("stop")
        assert token.cancelled
        assert token.reason == "stop"
        with pytest.raises(StepCancelled, match="stop"):
            token.raise_if_cancelled("here")

    def test_ensure_token(self):
        token = CancelToken()
        assert ensure_token(token) is token
        assert not ensure_token(None).cancelled

    def test_canonical_hashing(self):
        assert canonical_json_bytes({"b": 1, "a": 2}) == b'{"a":2,"b":1}'
        assert sha256_hex(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )
        assert manifest_hash({"a": "x"}) == manifest_hash({"a": "x"})
        assert manifest_hash({"a": "x"}).startswith("sha256:")
