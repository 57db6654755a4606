"""Unit tests for BaseStep — the run() adapter between results and state."""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar

import pytest

from floppyforge.core.cancellation import CancelToken
from floppyforge.core.errors import IOFailure
from floppyforge.core.runner import StepRunner
from floppyforge.models.results import StepAction, StepResult
from floppyforge.steps.base import BaseStep, StepExecutionError

# ---------------------------------------------------------------------------
# Concrete test step implementations
# ---------------------------------------------------------------------------


class _ScriptedStep(BaseStep):
    """Returns (or raises) whatever it was given."""

    published_keys: ClassVar[tuple[str, ...]] = ("out",)

    def __init__(self, outcome: StepResult | Exception, step_id: str = "scripted") -> None:
        self.outcome = outcome
        self._id = step_id
        self.calls = 0
        self.cleanups = 0

    @property
    def step_id(self) -> str:
        return self._id

    @property
    def display_name(self) -> str:
        return "Scripted Step"

    def create(self, cancel: CancelToken | None = None) -> StepResult:
        self.calls += 1
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    def publish(self, state: dict[str, Any], result: StepResult) -> None:
        state["out"] = str(result.image_path)

    def cleanup(self, state: dict[str, Any]) -> None:
        self.cleanups += 1


OK = StepResult(image_path=Path("/tmp/x.img"))


class TestBaseStepRun:
    def test_cannot_instantiate_abstract(self):
        with pytest.raises(TypeError):
            BaseStep()  # type: ignore[abstract]

    def test_success_publishes(self):
        state: dict[str, Any] = {}
        assert _ScriptedStep(OK).run(state) is StepAction.CONTINUE
        assert state["out"] == str(Path("/tmp/x.img"))
        assert state["step_results"]["scripted"] is OK

    def test_error_result_halts(self):
        state: dict[str, Any] = {"out": "stale"}
        err = IOFailure("disk full")
        assert _ScriptedStep(StepResult(error=err)).run(state) is StepAction.HALT
        assert state["error"] is err
        assert "out" not in state

    def test_cancelled_result_halts_without_error(self):
        state: dict[str, Any] = {}
        assert _ScriptedStep(StepResult(cancelled=True)).run(state) is StepAction.HALT
        assert state["cancelled"] is True
        assert "error" not in state

    def test_unexpected_exception_is_wrapped(self):
        state: dict[str, Any] = {}
        step = _ScriptedStep(ValueError("Intentional failure for testing"))
        assert step.run(state) is StepAction.HALT
        assert isinstance(state["error"], StepExecutionError)
        assert "Intentional failure" in str(state["error"])

    def test_precancelled_token_skips_create(self):
        token = CancelToken()
        token.cancel()
        step = _ScriptedStep(OK)
        state: dict[str, Any] = {}
        assert step.run(state, token) is StepAction.HALT
        assert step.calls == 0
        assert state["cancelled"] is True

    def test_success_clears_earlier_error_and_cancelled(self):
        state: dict[str, Any] = {"error": IOFailure("old"), "cancelled": True}
        assert _ScriptedStep(OK).run(state) is StepAction.CONTINUE
        assert "error" not in state
        assert "cancelled" not in state


class TestStepRunner:
    def test_runs_in_order_and_cleans_up(self):
        first, second = _ScriptedStep(OK, "first"), _ScriptedStep(OK, "second")
        state = StepRunner([first, second]).run()
        assert (first.calls, second.calls) == (1, 1)
        assert (first.cleanups, second.cleanups) == (1, 1)
        assert "halted_at" not in state

    def test_stops_at_first_halt(self):
        bad = _ScriptedStep(StepResult(error=IOFailure("x")), "bad")
        never = _ScriptedStep(OK, "never")
        state = StepRunner([bad, never]).run()
        assert state["halted_at"] == "bad"
        assert never.calls == 0
        assert bad.cleanups == 1
        assert never.cleanups == 0

    def test_cleanup_can_be_deferred(self):
        step = _ScriptedStep(OK)
        runner = StepRunner([step])
        state = runner.run(cleanup=False)
        assert step.cleanups == 0
        runner.cleanup(state)
        runner.cleanup(state)
        assert step.cleanups == 1
