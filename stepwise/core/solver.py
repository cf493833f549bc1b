"""Base class for iterative algorithms run by the executor."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from .problem import Problem
from .termination import NOT_TERMINATED, TerminationStatus

KV = Dict[str, Any]
StepResult = Tuple[Any, Optional[KV]]


class Solver(ABC):
    """
    One optimization method's per-iteration update.

    Implementations receive the :class:`Problem` and the current state and
    return the updated state plus optional key/value diagnostics. A step
    must be bounded: any iterative sub-procedure (a line search, say) runs
    as a nested :class:`~stepwise.core.executor.Executor`.

    Solvers must be picklable so the checkpoint manager can store them
    together with their internal fields and random generator.
    """

    name: str = "solver"

    def init(self, problem: Problem, state: Any) -> StepResult:
        """
        Prepare derived quantities before the first iteration.

        The default does nothing. Implementations may call
        ``state.terminate_with(...)`` if the starting point already
        satisfies their convergence test.
        """
        return state, None

    @abstractmethod
    def next_iter(self, problem: Problem, state: Any) -> StepResult:
        """
        Perform exactly one logical step.

        Args:
            problem: Problem providing cost/gradient/Hessian evaluations.
            state: State after the previous step.

        Returns:
            The new state and an optional diagnostics dict.
        """

    def terminate(self, state: Any) -> TerminationStatus:
        """
        Algorithm-specific convergence test.

        Must not modify ``state``; it is re-evaluated when a run is replayed
        from a checkpoint.
        """
        return NOT_TERMINATED

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


__all__ = ["KV", "Solver", "StepResult"]
