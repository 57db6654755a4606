"""Floppyforge pipeline steps — registry mapping step_id to step class.

Usage::

    from floppyforge.steps import STEP_REGISTRY, get_step

    step = get_step("create_floppy", config=FloppyConfig(files=["a.cfg"]))
    action = step.run(state)
    ...
    step.cleanup(state)
"""

from __future__ import annotations

from typing import Any

from floppyforge.steps.base import BaseStep, StepExecutionError
from floppyforge.steps.create_floppy import CreateFloppyStep

STEP_REGISTRY: dict[str, type[BaseStep]] = {
    "create_floppy": CreateFloppyStep,
}


def get_step(step_id: str, **kwargs: Any) -> BaseStep:
    """Instantiate and return a step by its ``step_id``.

    Raises ``KeyError`` if the step_id is not registered.
    """
    try:
        cls = STEP_REGISTRY[step_id]
    except KeyError:
        raise KeyError(
            f"Unknown step_id {step_id!r}. "
            f"Registered steps: {sorted(STEP_REGISTRY.keys())}"
        ) from None
    return cls(**kwargs)


__all__ = [
    "BaseStep",
    "StepExecutionError",
    "STEP_REGISTRY",
    "get_step",
    "CreateFloppyStep",
]
