"""ContentMaterializer — turns inline content into staging entries.

No filesystem access happens here: content keys become image paths and
their values become in-memory byte sources.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from floppyforge.core.errors import InvalidDestination
from floppyforge.models.inputs import ContentEntry, LayoutMode
from floppyforge.models.staging import StagingEntry

# Characters a VFAT long name cannot hold, plus ASCII control codes.
_FORBIDDEN = re.compile(r'[\x00-\x1f"*:<>?|]')
_DRIVE = re.compile(r"^[A-Za-z]:")


def normalize_destination(raw: str) -> str:
    """Validate an in-image path and return its normalised POSIX form.

    Backslashes count as separators and empty segments collapse, so
    ``"a\\\\b//c"`` becomes ``"a/b/c"``.
    """
    if not raw or not raw.strip():
        raise InvalidDestination("empty image path", subject=repr(raw))
    path = raw.replace("\\", "/")
    if path.startswith("/") or _DRIVE.match(path):
        raise InvalidDestination("absolute image paths are not allowed", subject=raw)
    parts = [p for p in path.split("/") if p]
    if not parts:
        raise InvalidDestination("empty image path", subject=repr(raw))
    for part in parts:
        if part in (".", ".."):
            raise InvalidDestination("relative segments are not allowed", subject=raw)
        if _FORBIDDEN.search(part):
            raise InvalidDestination(
                "image path contains characters FAT cannot store", subject=raw
            )
        if part != part.rstrip(" ."):
            raise InvalidDestination(
                "image path segments may not end in a space or dot", subject=raw
            )
    return "/".join(parts)


def to_content_entry(key: str, value: str | bytes) -> ContentEntry:
    """Build a validated ``ContentEntry`` from one configuration item."""
    data = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    return ContentEntry(key=key, destination=normalize_destination(key), data=data)


class ContentMaterializer:
    """Produces in-memory staging entries for literal content."""

    def materialize(
        self, content: Mapping[str, str | bytes]
    ) -> list[StagingEntry]:
        """Return one ``StagingEntry`` per content key, in key order.

        Raises ``InvalidDestination`` for malformed keys.
        """
        return [self.from_entry(to_content_entry(k, v)) for k, v in content.items()]

    @staticmethod
    def from_entry(entry: ContentEntry) -> StagingEntry:
        return StagingEntry(
            destination=entry.destination,
            layout=LayoutMode.LITERAL,
            source_id=entry.key,
            data=entry.data,
        )
