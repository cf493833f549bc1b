"""Core interfaces shared across iterative algorithms."""

from .checkpoint import (
    CHECKPOINT_VERSION,
    CheckpointFrequency,
    FileCheckpoint,
)
from .config import ExecutorConfig
from .errors import (
    CheckpointIOError,
    EvaluationError,
    FailurePhase,
    InterruptRequested,
    LineSearchFailed,
    NumericalError,
    ObserverError,
    OptimizationError,
    SerializationFormatError,
    StepwiseError,
)
from .executor import Executor, ExecutorPhase, RunResult
from .problem import Problem
from .solver import KV, Solver
from .state import IterState, Particle, PopulationState, State
from .termination import (
    NOT_TERMINATED,
    TerminationPolicy,
    TerminationReason,
    TerminationStatus,
)

__all__ = [
    "CHECKPOINT_VERSION",
    "CheckpointFrequency",
    "CheckpointIOError",
    "EvaluationError",
    "Executor",
    "ExecutorConfig",
    "ExecutorPhase",
    "FailurePhase",
    "FileCheckpoint",
    "InterruptRequested",
    "IterState",
    "KV",
    "LineSearchFailed",
    "NOT_TERMINATED",
    "NumericalError",
    "ObserverError",
    "OptimizationError",
    "Particle",
    "PopulationState",
    "Problem",
    "RunResult",
    "SerializationFormatError",
    "Solver",
    "State",
    "StepwiseError",
    "TerminationPolicy",
    "TerminationReason",
    "TerminationStatus",
]
