"""Exception hierarchy raised by pipeline construction and evaluation."""

from typing import Any, Optional


class EvaluationError(Exception):
    """Base class for every error a pipeline surfaces to its caller."""


class AlreadyConsumedError(EvaluationError):
    """A terminal operation ran on a pipeline that was already evaluated."""

    def __init__(self, message: str = "Pipeline has already been consumed; derive a new one from the source"):
        super().__init__(message)


class StageEvaluationError(EvaluationError):
    """A user-supplied function raised while a stage was running.

    The original exception is kept as ``__cause__`` and on ``cause``.
    """

    def __init__(self, stage: str, element: Any, cause: Optional[BaseException] = None):
        self.stage = stage
        self.element = element
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed on element {element!r}: {cause!r}")


class InvalidArgument(EvaluationError, ValueError):
    """Malformed stage or source parameters."""


class NotComparableError(EvaluationError, TypeError):
    """Elements have no natural ordering and no key or comparator was given."""


class DuplicateKeyError(EvaluationError, ValueError):
    """Keyed collection hit the same key twice without a merge function."""

    def __init__(self, key: Any, existing: Any, incoming: Any):
        self.key = key
        self.existing = existing
        self.incoming = incoming
        super().__init__(f"Duplicate key {key!r} (attempted merging values {existing!r} and {incoming!r})")


class ExhaustedSource(EvaluationError):
    """Raised by a source cursor polled after completion. Internal only."""
