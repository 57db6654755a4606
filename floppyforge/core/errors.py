"""Error kinds raised while staging and encoding a floppy image.

Every error carries the offending pattern or path as ``subject`` so the
message recorded in the pipeline state is diagnosable on its own.
"""

from __future__ import annotations

from typing import ClassVar


class FloppyStepError(RuntimeError):
    """Base class for all failures of the floppy staging step."""

    kind: ClassVar[str] = "floppy_error"

    def __init__(self, message: str, *, subject: str | None = None) -> None:
        super().__init__(message)
        self.subject = subject

    def __str__(self) -> str:
        message = super().__str__()
        if self.subject and self.subject not in message:
            return f"{message}: {self.subject}"
        return message


class PatternNotFound(FloppyStepError):
    """A pattern that names an explicit path matched nothing."""

    kind: ClassVar[str] = "pattern_not_found"


class DestinationCollision(FloppyStepError):
    """Two sources with different bytes map to the same image path."""

    kind: ClassVar[str] = "destination_collision"


class InvalidDestination(FloppyStepError):
    """An image path is empty, absolute, escapes the root or is unstorable."""

    kind: ClassVar[str] = "invalid_destination"


class CapacityExceeded(FloppyStepError):
    """The payload does not fit on the selected floppy geometry."""

    kind: ClassVar[str] = "capacity_exceeded"


class IOFailure(FloppyStepError):
    """Reading a source, writing the tree or encoding the image failed."""

    kind: ClassVar[str] = "io_failure"


class StepCancelled(FloppyStepError):
    """The host pipeline cancelled the step."""

    kind: ClassVar[str] = "cancelled"
