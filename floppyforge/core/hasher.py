"""Canonical hashing helpers for staged payloads and image manifests."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

_CHUNK = 64 * 1024


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def file_sha256(path: Path) -> str:
    """Stream a file from disk and return its SHA-256 hex digest."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def manifest_hash(items: dict[str, str]) -> str:
    """SHA-256 of canonical(destination -> payload digest).

    Identifies the logical content of an image independently of the
    timestamps and short names the encoder writes.
    """
    return f"sha256:{sha256_hex(canonical_json_bytes(items))}"
