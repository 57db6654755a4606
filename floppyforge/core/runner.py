"""Minimal step runner — the host side of the step contract.

Runs steps in order against one shared state dict, stops at the first
``HALT``, then tears down every step that ran, newest first.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from floppyforge.core.cancellation import CancelToken
from floppyforge.models.results import StepAction
from floppyforge.steps.base import BaseStep

logger = logging.getLogger(__name__)


class StepRunner:
    """Sequential runner with guaranteed cleanup.

    Parameters
    ----------
    steps:
        Steps to run, in order.
    """

    def __init__(self, steps: Sequence[BaseStep]) -> None:
        self.steps = list(steps)
        self._ran: list[BaseStep] = []

    def run(
        self,
        state: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
        *,
        cleanup: bool = True,
    ) -> dict[str, Any]:
        """Run all steps and return the final state.

        With ``cleanup=False`` teardown is left to :meth:`cleanup`, so the
        caller can use step outputs first.
        """
        state = state if state is not None else {}
        self._ran = []
        try:
            for step in self.steps:
                self._ran.append(step)
                action = step.run(state, cancel)
                if action is StepAction.HALT:
                    logger.info("Pipeline halted at %s", step.step_id)
                    state["halted_at"] = step.step_id
                    break
        finally:
            if cleanup:
                self.cleanup(state)
        return state

    def cleanup(self, state: dict[str, Any]) -> None:
        """Tear down every step that ran, newest first."""
        for step in reversed(self._ran):
            step.cleanup(state)
        self._ran = []
