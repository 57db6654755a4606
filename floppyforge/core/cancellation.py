"""Cancellation signal shared between the host pipeline and a running step."""

from __future__ import annotations

import threading

from floppyforge.core.errors import StepCancelled


class CancelToken:
    """Thread-safe, one-way cancellation flag.

    The host sets it (possibly from another thread); the step polls it at
    safe points via :meth:`raise_if_cancelled`.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "cancelled by host") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self, where: str = "") -> None:
        """Raise ``StepCancelled`` if the token has been set."""
        if self._event.is_set():
            raise StepCancelled(self._reason or "cancelled", subject=where or None)


def ensure_token(cancel: CancelToken | None) -> CancelToken:
    """Return *cancel*, or a fresh token that is never set."""
    return cancel if cancel is not None else CancelToken()
