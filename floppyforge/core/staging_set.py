"""StagingSet — the authoritative (destination, bytes) list for one image.

Destinations are unique per image. FAT compares names without regard to
case, so ``README`` and ``readme`` claim the same slot. When a slot is
claimed twice the set decides, once, whether the second claim is a
re-confirmation (same file or identical bytes) or a collision.
"""

from __future__ import annotations

import logging
import os

from floppyforge.core.errors import DestinationCollision, IOFailure
from floppyforge.core.hasher import file_sha256, sha256_hex
from floppyforge.core.materializer import normalize_destination
from floppyforge.models.config import CollisionPolicy
from floppyforge.models.staging import Collision, StagingEntry

logger = logging.getLogger(__name__)


def _slot(destination: str) -> str:
    return destination.casefold()


class StagingSet:
    """Deduplicated staging entries plus the record of consumed sources.

    Parameters
    ----------
    policy:
        ``CollisionPolicy.ERROR`` raises ``DestinationCollision`` when two
        different payloads claim one path. ``CollisionPolicy.LAST_WINS``
        keeps the later payload and records a ``Collision``.
    """

    def __init__(self, policy: CollisionPolicy = CollisionPolicy.ERROR) -> None:
        self.policy = policy
        self._entries: dict[str, StagingEntry] = {}
        self._consumed: set[str] = set()
        self._collisions: list[Collision] = []
        self._digests: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, entry: StagingEntry) -> bool:
        """Stage *entry* and record its source.

        Returns ``True`` if the entry's bytes are now the ones staged at its
        destination, ``False`` if it only re-confirmed an existing entry.
        """
        destination = normalize_destination(entry.destination)
        if destination != entry.destination:
            entry = entry.model_copy(update={"destination": destination})

        slot = _slot(destination)
        existing = self._entries.get(slot)
        self._consumed.add(entry.source_id)

        if existing is None:
            self._entries[slot] = entry
            logger.debug("staged %s <- %s", destination, entry.source_id)
            return True

        identical = self._same_payload(existing, entry)
        if identical and existing.destination == destination:
            logger.debug(
                "%s already staged from %s; recorded %s",
                destination,
                existing.source_id,
                entry.source_id,
            )
            return False

        if self.policy is CollisionPolicy.ERROR and not identical:
            raise DestinationCollision(
                f"{entry.source_id} and {existing.source_id} both map to "
                f"{destination} with different content",
                subject=destination,
            )

        # Identical bytes under a different case, or last-wins replacement.
        self._collisions.append(
            Collision(
                destination=destination,
                kept_source=entry.source_id,
                dropped_source=existing.source_id,
                identical=identical,
            )
        )
        if not identical:
            logger.warning(
                "%s from %s replaces the copy from %s",
                destination,
                entry.source_id,
                existing.source_id,
            )
        self._entries[slot] = entry
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def entries(self) -> list[StagingEntry]:
        """Staged entries in first-claim order."""
        return list(self._entries.values())

    @property
    def consumed(self) -> frozenset[str]:
        return frozenset(self._consumed)

    @property
    def collisions(self) -> list[Collision]:
        return list(self._collisions)

    @property
    def destinations(self) -> list[str]:
        return [e.destination for e in self._entries.values()]

    def digest_of(self, entry: StagingEntry) -> str:
        """SHA-256 of an entry's payload, cached per source."""
        cached = self._digests.get(entry.source_id)
        if cached is not None:
            return cached
        if entry.data is not None:
            digest = sha256_hex(entry.data)
        else:
            try:
                digest = file_sha256(entry.source_path)
            except OSError as exc:
                raise IOFailure(
                    f"cannot read {entry.source_path}: {exc}",
                    subject=str(entry.source_path),
                ) from exc
        self._digests[entry.source_id] = digest
        return digest

    def payload_digests(self) -> dict[str, str]:
        """Map every staged destination to the digest of its bytes."""
        return {e.destination: self.digest_of(e) for e in self._entries.values()}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, destination: object) -> bool:
        return isinstance(destination, str) and _slot(destination) in self._entries

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _same_payload(self, a: StagingEntry, b: StagingEntry) -> bool:
        if a.source_path is not None and b.source_path is not None:
            try:
                if os.path.samefile(a.source_path, b.source_path):
                    return True
            except OSError as exc:
                raise IOFailure(f"cannot stat staged source: {exc}", subject=exc.filename) from exc
        return self.digest_of(a) == self.digest_of(b)
