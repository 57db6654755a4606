"""Abstract base step with an enforced run lifecycle.

Every concrete step implements ``create()``, a function of its own
configuration and the cancellation signal that returns a ``StepResult``.
The ``run()`` wrapper is **not overridable**; it is the thin adapter between
that result and the host pipeline's shared state dict:

    cancelled? -> create -> record error / publish outputs -> action

``cleanup()`` is called by the host once the step's outputs are no longer
needed, whatever ``run()`` returned.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, ClassVar, final

from floppyforge.core.cancellation import CancelToken
from floppyforge.models.results import StepAction, StepResult

logger = logging.getLogger(__name__)


class StepExecutionError(RuntimeError):
    """Recorded in state when ``create()`` fails in an unexpected way."""


class BaseStep(abc.ABC):
    """Abstract base for pipeline steps.

    Subclasses **must** implement:
        * ``step_id``      — unique identifier (e.g. ``"create_floppy"``).
        * ``display_name`` — human-readable name used in log lines.
        * ``create(cancel)`` — the step's core logic.

    Subclasses **may** override:
        * ``published_keys`` — state keys written by ``publish()``.
        * ``publish(state, result)`` — copy outputs into the state dict.
        * ``cleanup(state)`` — release resources.

    Subclasses **must not** override ``run()``.
    """

    published_keys: ClassVar[tuple[str, ...]] = ()

    # ------------------------------------------------------------------
    # Abstract interface — subclasses implement these
    # ------------------------------------------------------------------

    @property
    @abc.abstractmethod
    def step_id(self) -> str:
        """Unique step identifier."""
        ...

    @property
    @abc.abstractmethod
    def display_name(self) -> str:
        """Human-readable display name."""
        ...

    @abc.abstractmethod
    def create(self, cancel: CancelToken | None = None) -> StepResult:
        """Do the step's work and describe the outcome.

        Expected failures are returned in ``StepResult.error`` rather than
        raised.
        """
        ...

    def publish(self, state: dict[str, Any], result: StepResult) -> None:
        """Copy a successful result's outputs into *state*."""

    def cleanup(self, state: dict[str, Any]) -> None:
        """Release whatever ``create()`` left behind."""

    # ------------------------------------------------------------------
    # Lifecycle — NOT overridable
    # ------------------------------------------------------------------

    @final
    def run(
        self, state: dict[str, Any], cancel: CancelToken | None = None
    ) -> StepAction:
        """Run the step against the host's shared *state*.  **Do not override.**

        Outputs, ``error`` and ``cancelled`` left by an earlier run are
        cleared first. On success the outputs are published and ``CONTINUE``
        is returned.
        On failure ``state["error"]`` is set, nothing is published and
        ``HALT`` is returned. On cancellation ``state["cancelled"]`` is set
        and ``HALT`` is returned.
        """
        for key in (*self.published_keys, "error", "cancelled"):
            state.pop(key, None)

        if cancel is not None and cancel.cancelled:
            logger.info("%s [%s] cancelled before start", self.display_name, self.step_id)
            state["cancelled"] = True
            return StepAction.HALT

        try:
            result = self.create(cancel)
        except Exception as exc:
            logger.exception(
                "%s [%s] execution failed: %s", self.display_name, self.step_id, exc
            )
            state["error"] = StepExecutionError(f"Step {self.step_id} failed: {exc}")
            return StepAction.HALT

        state.setdefault("step_results", {})[self.step_id] = result

        if result.cancelled:
            logger.info("%s [%s] cancelled", self.display_name, self.step_id)
            state["cancelled"] = True
            return StepAction.HALT

        if result.error is not None:
            logger.error(
                "%s [%s] failed: %s", self.display_name, self.step_id, result.error
            )
            state["error"] = result.error
            return StepAction.HALT

        self.publish(state, result)
        logger.info("%s [%s] completed", self.display_name, self.step_id)
        return StepAction.CONTINUE

    # ------------------------------------------------------------------
    # Repr
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return f"<{type(self).__name__} step_id={self.step_id!r}>"
