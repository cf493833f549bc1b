"""Stepwise - an executor for iterative numerical optimization algorithms."""

__version__ = "0.1.0"

# Core abstractions
from .core import (
    CHECKPOINT_VERSION,
    NOT_TERMINATED,
    CheckpointFrequency,
    CheckpointIOError,
    EvaluationError,
    Executor,
    ExecutorConfig,
    ExecutorPhase,
    FailurePhase,
    FileCheckpoint,
    InterruptRequested,
    IterState,
    LineSearchFailed,
    NumericalError,
    ObserverError,
    OptimizationError,
    Particle,
    PopulationState,
    Problem,
    RunResult,
    SerializationFormatError,
    Solver,
    State,
    StepwiseError,
    TerminationPolicy,
    TerminationReason,
    TerminationStatus,
)

# Debugging and logging
from .diagnostics import debug_context, is_debug_enabled, set_debug_enabled
from .logging import configure_logging, get_logger, set_log_level

# Math backends
from .math import NUMPY, MathBackend, NumpyBackend, TorchBackend, get_backend

# Observers
from .observers import (
    LogObserver,
    Observer,
    ObserverMode,
    ParamHistory,
    PlotObserver,
    StateData,
    StateView,
)

# Front-ends
from .optimize import OptimizeResult, minimize

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
    "LineSearchFailed",
    "LogObserver",
    "MathBackend",
    "NOT_TERMINATED",
    "NUMPY",
    "NumericalError",
    "NumpyBackend",
    "Observer",
    "ObserverError",
    "ObserverMode",
    "OptimizationError",
    "OptimizeResult",
    "ParamHistory",
    "Particle",
    "PlotObserver",
    "PopulationState",
    "Problem",
    "RunResult",
    "SerializationFormatError",
    "Solver",
    "State",
    "StateData",
    "StateView",
    "StepwiseError",
    "TerminationPolicy",
    "TerminationReason",
    "TerminationStatus",
    "TorchBackend",
    "__version__",
    "configure_logging",
    "debug_context",
    "get_backend",
    "get_logger",
    "is_debug_enabled",
    "minimize",
    "set_debug_enabled",
    "set_log_level",
]
