"""PatternResolver — expands file and directory globs into staging entries.

File patterns flatten every match to its basename. Directory patterns mirror
each matched directory under its own basename, keeping the hierarchy below
it. Both feed a ``StagingSet`` which owns deduplication and the record of
consumed sources.
"""

from __future__ import annotations

import glob
import logging
import os
import stat
from collections.abc import Iterable, Iterator
from pathlib import Path

from floppyforge.core.cancellation import CancelToken, ensure_token
from floppyforge.core.errors import IOFailure, PatternNotFound
from floppyforge.core.staging_set import StagingSet
from floppyforge.models.config import CollisionPolicy
from floppyforge.models.inputs import DirPattern, FilePattern, LayoutMode, has_glob
from floppyforge.models.staging import StagingEntry

logger = logging.getLogger(__name__)


def _clean_pattern(pattern: str) -> str:
    """Expand ``~`` and drop trailing separators (``dir/`` is ``dir``)."""
    expanded = os.path.expanduser(pattern)
    stripped = expanded.rstrip("/" + os.sep)
    return stripped or expanded


def _is_regular(path: str, *, follow_symlinks: bool) -> bool:
    try:
        mode = os.stat(path).st_mode if follow_symlinks else os.lstat(path).st_mode
    except FileNotFoundError:
        return False
    return stat.S_ISREG(mode)


class PatternResolver:
    """Resolves patterns against the real filesystem.

    Parameters
    ----------
    policy:
        Collision policy for the ``StagingSet`` created by :meth:`resolve`.
    strict_globs:
        When ``True`` a wildcard file pattern that matches nothing is a
        ``PatternNotFound`` failure instead of a warning.
    cancel:
        Polled between patterns and for every walked file.
    """

    def __init__(
        self,
        policy: CollisionPolicy = CollisionPolicy.ERROR,
        *,
        strict_globs: bool = False,
        cancel: CancelToken | None = None,
    ) -> None:
        self.policy = policy
        self.strict_globs = strict_globs
        self._cancel = ensure_token(cancel)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(
        self,
        file_patterns: Iterable[str | FilePattern],
        dir_patterns: Iterable[str | DirPattern],
        staging: StagingSet | None = None,
    ) -> StagingSet:
        """Resolve both pattern lists into *staging* (or a new set).

        The returned set's ``entries`` and ``consumed`` are the resolved
        entries and the consumed-source record.
        """
        staging = staging if staging is not None else StagingSet(self.policy)

        file_patterns = [
            p if isinstance(p, FilePattern) else FilePattern(pattern=p)
            for p in file_patterns
        ]
        dir_patterns = [
            p if isinstance(p, DirPattern) else DirPattern(pattern=p)
            for p in dir_patterns
        ]

        if file_patterns:
            logger.info("Copying files flatly from floppy_files")
        for fp in file_patterns:
            self._cancel.raise_if_cancelled(fp.pattern)
            self.resolve_file_pattern(fp, staging)

        if dir_patterns:
            logger.info("Copying directories from floppy_dirs")
        for dp in dir_patterns:
            self._cancel.raise_if_cancelled(dp.pattern)
            self.resolve_dir_pattern(dp, staging)

        return staging

    def resolve_file_pattern(self, fp: FilePattern, staging: StagingSet) -> None:
        """Stage every regular file *fp* resolves to, flattened."""
        for match in self._expand(fp.pattern, strict=self.strict_globs):
            if os.path.isdir(match):
                logger.info("Copying files in directory %s flatly", match)
                for child in self._list_files(match):
                    self._cancel.raise_if_cancelled(child)
                    staging.add(self._entry(child, os.path.basename(child), LayoutMode.FLATTEN))
            elif _is_regular(match, follow_symlinks=True):
                staging.add(self._entry(match, os.path.basename(match), LayoutMode.FLATTEN))
            else:
                logger.debug("skipping non-regular match %s", match)

    def resolve_dir_pattern(self, dp: DirPattern, staging: StagingSet) -> None:
        """Stage everything *dp* resolves to, keeping directory hierarchy."""
        for match in self._expand(dp.pattern, strict=False):
            if os.path.isdir(match):
                logger.info("Copying directory: %s", match)
                root_name = os.path.basename(os.path.abspath(match))
                for path in self._walk(match):
                    self._cancel.raise_if_cancelled(path)
                    rel = Path(os.path.relpath(path, match)).as_posix()
                    staging.add(
                        self._entry(path, f"{root_name}/{rel}", LayoutMode.PRESERVE)
                    )
            elif _is_regular(match, follow_symlinks=True):
                staging.add(self._entry(match, os.path.basename(match), LayoutMode.FLATTEN))
            else:
                logger.debug("skipping non-regular match %s", match)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _expand(pattern: str, *, strict: bool) -> list[str]:
        """Return the sorted matches for *pattern*.

        A literal path that does not exist always fails; a wildcard with no
        matches fails only when *strict* is set.
        """
        cleaned = _clean_pattern(pattern)
        if not has_glob(cleaned):
            if not os.path.lexists(cleaned):
                raise PatternNotFound("no such file or directory", subject=pattern)
            return [cleaned]

        matches = sorted(glob.glob(cleaned, include_hidden=True))
        if not matches:
            if strict:
                raise PatternNotFound("pattern matched nothing", subject=pattern)
            logger.warning("No matches found for %s", pattern)
        return matches

    @staticmethod
    def _list_files(directory: str) -> list[str]:
        """Immediate regular files of *directory*, sorted by name."""
        try:
            with os.scandir(directory) as it:
                names = sorted(
                    e.path for e in it if e.is_file(follow_symlinks=False)
                )
        except OSError as exc:
            raise IOFailure(f"cannot list {directory}: {exc}", subject=directory) from exc
        return names

    @staticmethod
    def _walk(directory: str) -> Iterator[str]:
        """Yield every regular file beneath *directory* in sorted order.

        Symlinks, devices, sockets and FIFOs are skipped.
        """

        def _raise(exc: OSError) -> None:
            raise IOFailure(f"cannot walk {exc.filename}: {exc}", subject=exc.filename) from exc

        for dirpath, dirnames, filenames in os.walk(directory, onerror=_raise):
            dirnames.sort()
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if _is_regular(path, follow_symlinks=False):
                    yield path
                else:
                    logger.debug("skipping non-regular entry %s", path)

    @staticmethod
    def _entry(path: str, destination: str, layout: LayoutMode) -> StagingEntry:
        source = os.path.abspath(path)
        return StagingEntry(
            destination=destination,
            layout=layout,
            source_id=source,
            source_path=Path(source),
        )
