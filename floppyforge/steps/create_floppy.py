"""Create Floppy — stages files, directories and inline content onto a floppy.

Outputs published to the shared state on success:
    floppy_path           — absolute path of the produced image.
    floppy_files_added    — sorted source identifiers that contributed.
    floppy_manifest_hash  — digest of (destination -> payload digest).

The image and any leftover working directory belong to this step until
``cleanup()`` runs.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, ClassVar

from floppyforge.config import FloppyforgeSettings, settings as default_settings
from floppyforge.core.assembler import ImageAssembler
from floppyforge.core.cancellation import CancelToken, ensure_token
from floppyforge.core.errors import FloppyStepError, IOFailure, StepCancelled
from floppyforge.core.fat12 import FloppyGeometry, get_geometry
from floppyforge.core.hasher import manifest_hash
from floppyforge.core.lifecycle import LifecycleTracker
from floppyforge.core.materializer import ContentMaterializer, to_content_entry
from floppyforge.core.resolver import PatternResolver
from floppyforge.core.staging_set import StagingSet
from floppyforge.models.config import CollisionPolicy, FloppyConfig
from floppyforge.models.inputs import ContentEntry, DirPattern, FilePattern, StepInput
from floppyforge.models.results import StepResult
from floppyforge.steps.base import BaseStep

logger = logging.getLogger(__name__)


class CreateFloppyStep(BaseStep):
    """Builds a FAT12 floppy image from a ``FloppyConfig``.

    Parameters
    ----------
    config:
        What to put on the floppy.
    settings:
        Process defaults for the fields *config* leaves unset.
    timestamp:
        Fixed timestamp for directory entries (reproducible images).
    """

    published_keys: ClassVar[tuple[str, ...]] = (
        "floppy_path",
        "floppy_files_added",
        "floppy_manifest_hash",
    )

    def __init__(
        self,
        config: FloppyConfig | None = None,
        *,
        settings: FloppyforgeSettings | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        self.config = config or FloppyConfig()
        self.settings = settings or default_settings
        self.timestamp = timestamp
        self.files_added: set[str] = set()
        self._tracker = LifecycleTracker(self.settings.temp_dir)

    @property
    def step_id(self) -> str:
        return "create_floppy"

    @property
    def display_name(self) -> str:
        return "Create Floppy"

    # ------------------------------------------------------------------
    # Effective configuration
    # ------------------------------------------------------------------

    @property
    def label(self) -> str:
        if self.config.label is not None:
            return self.config.label
        return self.settings.default_label

    @property
    def geometry(self) -> FloppyGeometry:
        return get_geometry(self.config.image_format or self.settings.image_format)

    @property
    def collision_policy(self) -> CollisionPolicy:
        return self.config.collision_policy or self.settings.collision_policy

    @property
    def strict_globs(self) -> bool:
        if self.config.strict_globs is not None:
            return self.config.strict_globs
        return self.settings.strict_globs

    @property
    def tracked_paths(self) -> tuple[Path, ...]:
        return self._tracker.tracked

    # ------------------------------------------------------------------
    # Core logic
    # ------------------------------------------------------------------

    def parse_inputs(self) -> list[StepInput]:
        """Validate the raw configuration into tagged inputs.

        Raises ``InvalidDestination`` for a malformed content key.
        """
        inputs: list[StepInput] = [FilePattern(pattern=p) for p in self.config.files]
        inputs += [DirPattern(pattern=p) for p in self.config.directories]
        inputs += [to_content_entry(k, v) for k, v in self.config.content.items()]
        return inputs

    def stage(
        self, inputs: list[StepInput], cancel: CancelToken | None = None
    ) -> StagingSet:
        """Resolve patterns, then content, into one ``StagingSet``."""
        staging = StagingSet(self.collision_policy)
        resolver = PatternResolver(
            self.collision_policy, strict_globs=self.strict_globs, cancel=cancel
        )
        resolver.resolve(
            [i for i in inputs if isinstance(i, FilePattern)],
            [i for i in inputs if isinstance(i, DirPattern)],
            staging,
        )
        content = [i for i in inputs if isinstance(i, ContentEntry)]
        if content:
            logger.info("Copying %d file(s) from floppy_content", len(content))
        for entry in content:
            staging.add(ContentMaterializer.from_entry(entry))
        return staging

    def create(self, cancel: CancelToken | None = None) -> StepResult:
        """Build the image. Expected failures come back in ``result.error``."""
        cancel = ensure_token(cancel)
        self.files_added = set()
        if cancel.cancelled:
            return StepResult(cancelled=True)

        run_tracker = LifecycleTracker(self.settings.temp_dir)
        succeeded = False
        try:
            result = self._build(cancel, run_tracker)
            succeeded = result.ok
            return result
        finally:
            if not succeeded:
                run_tracker.release_all()
            # Anything still tracked (the image, or paths that failed to
            # release) is torn down by cleanup().
            for path in run_tracker.tracked:
                self._tracker.track(path)

    def publish(self, state: dict[str, Any], result: StepResult) -> None:
        state["floppy_path"] = str(result.image_path)
        state["floppy_files_added"] = sorted(result.files_added)
        state["floppy_manifest_hash"] = result.manifest_hash

    def cleanup(self, state: dict[str, Any]) -> None:
        """Remove the image and any temporary directory. Never raises."""
        errors = self._tracker.release_all()
        if errors:
            logger.warning(
                "%s [%s] cleanup left %d path(s) behind",
                self.display_name,
                self.step_id,
                len(errors),
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build(self, cancel: CancelToken, tracker: LifecycleTracker) -> StepResult:
        logger.info("Creating floppy disk...")
        try:
            staging = self.stage(self.parse_inputs(), cancel)
            self.files_added = set(staging.consumed)
            cancel.raise_if_cancelled("after staging")

            assembler = ImageAssembler(tracker, self.geometry, timestamp=self.timestamp)
            image_path = assembler.assemble(staging.entries, self.label, cancel)
            digest = manifest_hash(staging.payload_digests())
        except StepCancelled:
            return StepResult(cancelled=True, files_added=frozenset(self.files_added))
        except FloppyStepError as exc:
            return StepResult(error=exc, files_added=frozenset(self.files_added))
        except OSError as exc:
            return StepResult(
                error=IOFailure(str(exc), subject=exc.filename),
                files_added=frozenset(self.files_added),
            )

        logger.info(
            "Floppy disk created with %d file(s) from %d source(s)",
            len(staging),
            len(self.files_added),
        )
        return StepResult(
            image_path=image_path,
            files_added=frozenset(self.files_added),
            destinations=tuple(staging.destinations),
            collisions=tuple(staging.collisions),
            manifest_hash=digest,
        )
