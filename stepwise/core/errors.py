"""Exception taxonomy for stepwise runs."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class StepwiseError(Exception):
    """Base class for all errors raised by stepwise."""


class EvaluationError(StepwiseError):
    """A user-supplied cost, gradient, Hessian or constraint call failed."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} evaluation failed: {message}")
        self.operation = operation


class NumericalError(StepwiseError):
    """Singular matrix, NaN or Inf produced during a solver step."""


class LineSearchFailed(StepwiseError):
    """A nested line search ended without satisfying its conditions."""


class CheckpointIOError(StepwiseError):
    """Writing or reading a checkpoint failed."""


class SerializationFormatError(StepwiseError):
    """A checkpoint has an unknown format tag or version."""


class ObserverError(StepwiseError):
    """An observer registered as mandatory raised."""


class InterruptRequested(StepwiseError):
    """Graceful stop request; terminates the run, never fails it."""


class FailurePhase(Enum):
    """Phase of a run in which an unrecoverable error happened."""

    INIT = "init"
    ITERATION = "iteration"
    NESTED = "nested"
    OBSERVER = "observer"
    CHECKPOINT = "checkpoint"


class OptimizationError(StepwiseError):
    """Structured failure of a run.

    Attributes:
        phase: Where the run failed.
        iteration: Iteration counter of the state when the failure happened.
        cause: The underlying exception.
    """

    def __init__(
        self,
        phase: FailurePhase,
        iteration: int,
        cause: Optional[BaseException] = None,
    ) -> None:
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown"
        super().__init__(f"run failed in {phase.value} at iteration {iteration}: {detail}")
        self.phase = phase
        self.iteration = iteration
        self.cause = cause


__all__ = [
    "CheckpointIOError",
    "EvaluationError",
    "FailurePhase",
    "InterruptRequested",
    "LineSearchFailed",
    "NumericalError",
    "ObserverError",
    "OptimizationError",
    "SerializationFormatError",
    "StepwiseError",
]
