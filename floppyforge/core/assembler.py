"""ImageAssembler — writes a staged file set into a new floppy image.

The staged entries are first mirrored into a private working directory that
has the same layout as the final image, then the FAT12 encoder serialises
that tree. The working directory is released as soon as the image exists;
the image itself stays tracked until the step is torn down.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from floppyforge.core.cancellation import CancelToken, ensure_token
from floppyforge.core.errors import FloppyStepError, IOFailure
from floppyforge.core.fat12 import DEFAULT_GEOMETRY, Fat12Image, FloppyGeometry
from floppyforge.core.lifecycle import LifecycleTracker
from floppyforge.models.staging import StagingEntry

logger = logging.getLogger(__name__)


class ImageAssembler:
    """Produces a floppy image file from staging entries.

    Parameters
    ----------
    tracker:
        Receives every temporary path the assembler creates.
    geometry:
        Floppy format to encode.
    timestamp:
        Timestamp written into directory entries; now when ``None``.
    """

    def __init__(
        self,
        tracker: LifecycleTracker,
        geometry: FloppyGeometry = DEFAULT_GEOMETRY,
        *,
        timestamp: datetime | None = None,
    ) -> None:
        self.tracker = tracker
        self.geometry = geometry
        self.timestamp = timestamp

    def assemble(
        self,
        entries: Iterable[StagingEntry],
        label: str,
        cancel: CancelToken | None = None,
    ) -> Path:
        """Encode *entries* into a new image and return its absolute path.

        Raises ``CapacityExceeded`` before touching the disk when the payload
        cannot fit, and ``IOFailure`` for any read, write or encode error.
        """
        cancel = ensure_token(cancel)
        entries = list(entries)

        self._precheck(entries, label)
        cancel.raise_if_cancelled("before staging")

        workdir = self.tracker.make_temp_dir(prefix="floppyforge-tree-")
        logger.debug("staging %d file(s) in %s", len(entries), workdir)
        for entry in entries:
            cancel.raise_if_cancelled(entry.destination)
            self._materialize(entry, workdir)

        cancel.raise_if_cancelled("before encoding")
        image_path = self.tracker.make_temp_file(prefix="floppyforge-", suffix=".img")
        try:
            image = Fat12Image(self.geometry, label, timestamp=self.timestamp)
            image.add_tree(workdir)
            image.write(image_path)
        except FloppyStepError:
            raise
        except OSError as exc:
            raise IOFailure(f"failed to encode floppy image: {exc}", subject=str(image_path)) from exc

        self.tracker.release(workdir)
        logger.info(
            "Floppy image %s written (%s, %d file(s))",
            image_path,
            self.geometry.name,
            len(entries),
        )
        return image_path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _precheck(self, entries: list[StagingEntry], label: str) -> None:
        """Size the payload in memory; no file bytes are read."""
        probe = Fat12Image(self.geometry, label, timestamp=self.timestamp)
        for entry in entries:
            try:
                if entry.data is not None:
                    probe.add_file(entry.destination, entry.data)
                else:
                    probe.add_file(entry.destination, source=entry.source_path)
            except OSError as exc:
                raise IOFailure(
                    f"cannot stat {entry.source_path}: {exc}", subject=entry.source_id
                ) from exc
        probe.check_capacity()

    @staticmethod
    def _materialize(entry: StagingEntry, workdir: Path) -> None:
        target = workdir.joinpath(*entry.destination.split("/"))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with entry.open() as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except OSError as exc:
            raise IOFailure(
                f"failed to copy {entry.source_id} to {entry.destination}: {exc}",
                subject=entry.source_id,
            ) from exc
