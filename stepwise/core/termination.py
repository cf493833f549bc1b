"""Termination reasons and the per-iteration termination policy.

The policy runs its checks in a fixed order and the first one that fires is
recorded on the state:

1. the solver's own convergence test (``Solver.terminate``),
2. maximum iterations,
3. maximum evaluation counts,
4. wall-clock budget,
5. target cost,
6. cost tolerance between consecutive iterations,
7. no-improvement window,
8. external interrupt.

The order is the tie-break when several conditions hold on the same
iteration.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from .config import ExecutorConfig

if TYPE_CHECKING:
    from .solver import Solver


class TerminationReason(Enum):
    """Why a run stopped."""

    MAX_ITERATIONS_REACHED = "Maximum number of iterations reached"
    MAX_EVALUATIONS_REACHED = "Maximum number of evaluations reached"
    TARGET_COST_REACHED = "Target cost value reached"
    TARGET_TOLERANCE_REACHED = "Target tolerance reached"
    NO_IMPROVEMENT = "No improvement within window"
    TIMED_OUT = "Timeout reached"
    SOLVER_REQUESTED_STOP = "Solver converged"
    EXTERNAL_INTERRUPT = "Interrupted"
    LINE_SEARCH_FAILED = "Line search failed"
    SOLVER_FAILED = "Solver failed"

    @property
    def text(self) -> str:
        return self.value


@dataclass(frozen=True)
class TerminationStatus:
    """Either not terminated (``reason is None``) or terminated with a reason."""

    reason: Optional[TerminationReason] = None
    detail: Optional[str] = None

    @property
    def terminated(self) -> bool:
        return self.reason is not None

    @classmethod
    def running(cls) -> "TerminationStatus":
        return NOT_TERMINATED

    @classmethod
    def stop(
        cls, reason: TerminationReason, detail: Optional[str] = None
    ) -> "TerminationStatus":
        return cls(reason=reason, detail=detail)

    def __str__(self) -> str:
        if self.reason is None:
            return "Running"
        if self.detail:
            return f"Terminated({self.reason.text}: {self.detail})"
        return f"Terminated({self.reason.text})"


NOT_TERMINATED = TerminationStatus()


class TerminationPolicy:
    """Combines the solver's convergence test with the generic limits."""

    def __init__(self, config: Optional[ExecutorConfig] = None) -> None:
        self.config = config if config is not None else ExecutorConfig()

    def evaluate(
        self, solver: "Solver", state: Any, interrupted: bool = False
    ) -> TerminationStatus:
        status = solver.terminate(state)
        if status.terminated:
            return status
        status = self.generic(state)
        if status.terminated:
            return status
        if interrupted:
            return TerminationStatus.stop(TerminationReason.EXTERNAL_INTERRUPT)
        return NOT_TERMINATED

    def generic(self, state: Any) -> TerminationStatus:
        cfg = self.config
        if cfg.max_iters is not None and state.iteration >= cfg.max_iters:
            return TerminationStatus.stop(TerminationReason.MAX_ITERATIONS_REACHED)
        for name, limit in cfg.max_evals.items():
            if state.counts.get(name, 0) >= limit:
                return TerminationStatus.stop(
                    TerminationReason.MAX_EVALUATIONS_REACHED, f"{name} >= {limit}"
                )
        if (
            cfg.timeout is not None
            and state.elapsed_time is not None
            and state.elapsed_time >= cfg.timeout
        ):
            return TerminationStatus.stop(TerminationReason.TIMED_OUT)
        if state.best_cost is not None and state.best_cost <= cfg.target_cost:
            return TerminationStatus.stop(TerminationReason.TARGET_COST_REACHED)
        if (
            cfg.cost_tolerance is not None
            and state.cost is not None
            and state.prev_cost is not None
            and math.isfinite(state.prev_cost)
            and abs(state.prev_cost - state.cost) <= cfg.cost_tolerance
        ):
            return TerminationStatus.stop(TerminationReason.TARGET_TOLERANCE_REACHED)
        if (
            cfg.max_no_improvement is not None
            and state.iteration - state.last_best_iter >= cfg.max_no_improvement
        ):
            return TerminationStatus.stop(TerminationReason.NO_IMPROVEMENT)
        return NOT_TERMINATED


__all__ = [
    "NOT_TERMINATED",
    "TerminationPolicy",
    "TerminationReason",
    "TerminationStatus",
]
