"""LifecycleTracker — owns every temporary path one step invocation creates.

Release is best-effort and idempotent: a path that has already vanished
counts as released, failures are logged and returned but never raised.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)


class LifecycleTracker:
    """Arena of temporary files and directories.

    Parameters
    ----------
    temp_dir:
        Parent directory for new temporary paths; the platform default
        when ``None``.
    """

    def __init__(self, temp_dir: Path | None = None) -> None:
        self._temp_dir = Path(temp_dir) if temp_dir is not None else None
        self._paths: list[Path] = []

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def track(self, path: Path) -> Path:
        """Take ownership of *path*; it is removed by :meth:`release_all`."""
        path = Path(path)
        if path not in self._paths:
            self._paths.append(path)
        return path

    def make_temp_dir(self, prefix: str = "floppyforge-") -> Path:
        """Create a unique directory and track it before returning."""
        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
        return self.track(Path(tempfile.mkdtemp(prefix=prefix, dir=self._temp_dir)))

    def make_temp_file(
        self, prefix: str = "floppyforge-", suffix: str = ""
    ) -> Path:
        """Create a unique empty file and track it before returning."""
        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=self._temp_dir)
        os.close(fd)
        return self.track(Path(name))

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release(self, path: Path) -> OSError | None:
        """Remove one tracked path now. Untracked paths are left alone."""
        path = Path(path)
        if path not in self._paths:
            return None
        error = self._remove(path)
        if error is None:
            self._paths.remove(path)
        return error

    def release_all(self) -> list[OSError]:
        """Remove every tracked path, newest first.

        Returns the failures; paths that failed stay tracked so a later
        call can retry them.
        """
        errors: list[OSError] = []
        remaining: list[Path] = []
        for path in reversed(self._paths):
            error = self._remove(path)
            if error is not None:
                errors.append(error)
                remaining.append(path)
        self._paths = list(reversed(remaining))
        return errors

    @property
    def tracked(self) -> tuple[Path, ...]:
        return tuple(self._paths)

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> "LifecycleTracker":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release_all()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _remove(path: Path) -> OSError | None:
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except FileNotFoundError:
            logger.debug("%s already removed", path)
        except OSError as exc:
            logger.warning("Failed to remove temporary path %s: %s", path, exc)
            return exc
        else:
            logger.debug("removed %s", path)
        return None
