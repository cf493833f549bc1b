"""Line searches following Nocedal & Wright, run as nested executors.

A line search is an ordinary :class:`~stepwise.core.solver.Solver` over an
:class:`~stepwise.core.state.IterState` whose ``param`` is the current trial
point ``x + alpha * p``. Each executor iteration evaluates exactly one trial
step; the acceptance test lives in :meth:`Solver.terminate`.

Parent solvers call :func:`run_line_search`, which runs the search on a
child :class:`~stepwise.core.problem.Problem` and folds its evaluation
counts back into the parent problem.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ..core.config import ExecutorConfig
from ..core.errors import LineSearchFailed, NumericalError
from ..core.executor import Executor
from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import NOT_TERMINATED, TerminationReason, TerminationStatus
from ..logging import get_logger
from ..math import NUMPY, MathBackend

logger = get_logger(__name__)


class LineSearchCondition(ABC):
    """Acceptance test for a trial step length."""

    name = "condition"
    requires_gradient = False

    @abstractmethod
    def holds(
        self,
        cost: float,
        slope: Optional[float],
        base_cost: float,
        base_slope: float,
        alpha: float,
    ) -> bool:
        """
        Args:
            cost: Cost at the trial point.
            slope: Directional derivative at the trial point, or None when
                the gradient was not evaluated.
            base_cost: Cost at the start point.
            base_slope: Directional derivative at the start point (negative).
            alpha: Trial step length.
        """


class ArmijoCondition(LineSearchCondition):
    """Sufficient decrease: ``f(x + a p) <= f(x) + c a g^T p``."""

    name = "Armijo"

    def __init__(self, c: float = 1e-4) -> None:
        if not (0 < c < 1):
            raise ValueError("Armijo constant c must lie in (0, 1)")
        self.c = c

    def holds(self, cost, slope, base_cost, base_slope, alpha):
        return cost <= base_cost + self.c * alpha * base_slope

    def __repr__(self) -> str:
        return f"ArmijoCondition(c={self.c})"


class WolfeCondition(LineSearchCondition):
    """Armijo plus the curvature condition ``g(x + a p)^T p >= c2 g^T p``."""

    name = "Wolfe"
    requires_gradient = True

    def __init__(self, c1: float = 1e-4, c2: float = 0.9) -> None:
        if not (0 < c1 < c2 < 1):
            raise ValueError("Require 0 < c1 < c2 < 1 for Wolfe conditions.")
        self.c1 = c1
        self.c2 = c2

    def holds(self, cost, slope, base_cost, base_slope, alpha):
        if slope is None:
            return False
        return (
            cost <= base_cost + self.c1 * alpha * base_slope
            and slope >= self.c2 * base_slope
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(c1={self.c1}, c2={self.c2})"


class StrongWolfeCondition(WolfeCondition):
    """Armijo plus ``|g(x + a p)^T p| <= c2 |g^T p|``."""

    name = "strong Wolfe"

    def holds(self, cost, slope, base_cost, base_slope, alpha):
        if slope is None:
            return False
        return (
            cost <= base_cost + self.c1 * alpha * base_slope
            and abs(slope) <= self.c2 * abs(base_slope)
        )


class GoldsteinCondition(LineSearchCondition):
    """Goldstein bounds ``f(x) + (1-c) a g^T p <= f(x + a p) <= f(x) + c a g^T p``."""

    name = "Goldstein"

    def __init__(self, c: float = 0.25) -> None:
        if not (0 < c < 0.5):
            raise ValueError("Goldstein constant c must lie in (0, 0.5)")
        self.c = c

    def holds(self, cost, slope, base_cost, base_slope, alpha):
        upper = base_cost + self.c * alpha * base_slope
        lower = base_cost + (1 - self.c) * alpha * base_slope
        return lower <= cost <= upper

    def __repr__(self) -> str:
        return f"GoldsteinCondition(c={self.c})"


class LineSearch(Solver):
    """
    Base class for step-length searches along a fixed direction.

    Configure the direction with :meth:`with_direction`, which returns a
    fresh copy so a template instance can be stored on a parent solver and
    reused every iteration.
    """

    name = "line search"
    max_iters = 50

    def __init__(self, initial_step: float = 1.0, math: MathBackend = NUMPY) -> None:
        if initial_step <= 0:
            raise ValueError("initial_step must be positive.")
        self.initial_step = float(initial_step)
        self.math = math
        self.direction: Any = None
        self.alpha = 0.0
        self._base: Any = None
        self._base_cost = 0.0
        self._base_slope = 0.0

    def with_direction(
        self, direction: Any, initial_step: Optional[float] = None
    ) -> "LineSearch":
        search = copy.copy(self)
        search.direction = direction
        if initial_step is not None:
            if initial_step <= 0:
                raise ValueError("initial_step must be positive.")
            search.initial_step = float(initial_step)
        search.alpha = 0.0
        return search

    @property
    def step_length(self) -> float:
        return self.alpha

    def _prepare(self, problem: Problem, state: IterState) -> None:
        if self.direction is None:
            raise ValueError("No search direction set; call with_direction() first.")
        if state.param is None:
            raise ValueError("Line search needs a start point in state.param.")
        self._base = state.param
        base_cost = state.cost if state.cost is not None else problem.cost(state.param)
        base_grad = state.grad if state.grad is not None else problem.gradient(state.param)
        self._base_cost = float(base_cost)
        self._base_slope = self.math.dot(base_grad, self.direction)
        if self._base_slope >= 0:
            raise ValueError("Search direction must be a descent direction.")

    def _point(self, alpha: float) -> Any:
        return self.math.scaled_add(self._base, alpha, self.direction)

    def _slope(self, grad: Any) -> Optional[float]:
        return None if grad is None else self.math.dot(grad, self.direction)

    def _accept(
        self, state: IterState, alpha: float, param: Any, cost: float, grad: Any
    ) -> StepResult:
        state.move_to(param, cost)
        state.prev_grad, state.grad = state.grad, grad
        self.alpha = alpha
        return state, {"step_length": alpha}


class BacktrackingLineSearch(LineSearch):
    """
    Shrink the step by ``rho`` until ``condition`` holds.

    Args:
        condition: Acceptance test; defaults to :class:`ArmijoCondition`.
        rho: Contraction factor in (0, 1).
        initial_step: First trial step length.
        math: Vector backend.
    """

    name = "Backtracking"

    def __init__(
        self,
        condition: Optional[LineSearchCondition] = None,
        rho: float = 0.5,
        initial_step: float = 1.0,
        math: MathBackend = NUMPY,
    ) -> None:
        super().__init__(initial_step, math)
        if not (0 < rho < 1):
            raise ValueError("rho must lie in (0, 1)")
        self.condition = condition if condition is not None else ArmijoCondition()
        self.rho = rho

    def __repr__(self) -> str:
        return f"BacktrackingLineSearch(condition={self.condition!r}, rho={self.rho})"

    def _trial(self, problem: Problem, state: IterState, alpha: float) -> StepResult:
        param = self._point(alpha)
        cost = problem.cost(param)
        grad = problem.gradient(param) if self.condition.requires_gradient else None
        return self._accept(state, alpha, param, cost, grad)

    def init(self, problem: Problem, state: IterState) -> StepResult:
        self._prepare(problem, state)
        return self._trial(problem, state, self.initial_step)

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        return self._trial(problem, state, self.alpha * self.rho)

    def terminate(self, state: IterState) -> TerminationStatus:
        if self.condition.holds(
            state.cost,
            self._slope(state.grad),
            self._base_cost,
            self._base_slope,
            self.alpha,
        ):
            return TerminationStatus.stop(
                TerminationReason.SOLVER_REQUESTED_STOP,
                f"{self.condition.name} condition met",
            )
        return NOT_TERMINATED


class StrongWolfeLineSearch(LineSearch):
    """
    Strong Wolfe line search using bracketing and zoom.

    The bracketing phase doubles the step until it either satisfies the
    strong Wolfe conditions or brackets an acceptable step; the zoom phase
    then bisects the bracket. One trial step is evaluated per iteration.
    If the bracket collapses, its low end (which satisfies sufficient
    decrease) is accepted.
    The gradient is evaluated only at trials that pass the sufficient
    decrease test, so the accepted point always carries its gradient.
    """

    name = "Strong Wolfe"
    max_iters = 72

    def __init__(
        self,
        c1: float = 1e-4,
        c2: float = 0.9,
        initial_step: float = 1.0,
        math: MathBackend = NUMPY,
    ) -> None:
        super().__init__(initial_step, math)
        self.condition = StrongWolfeCondition(c1, c2)
        self._reset()

    def __repr__(self) -> str:
        return f"StrongWolfeLineSearch(c1={self.condition.c1}, c2={self.condition.c2})"

    def _reset(self) -> None:
        self._zooming = False
        self._expansions = 0
        self._alpha_prev = 0.0
        self._phi_prev = 0.0
        self._lo = 0.0
        self._hi = 0.0
        self._phi_lo = 0.0
        self._phi_ref = float("inf")
        self._collapsed = False

    def with_direction(self, direction, initial_step=None):
        search = super().with_direction(direction, initial_step)
        search._reset()
        return search

    def _sufficient(self, cost: float, alpha: float) -> bool:
        return cost <= self._base_cost + self.condition.c1 * alpha * self._base_slope

    def _trial(self, problem: Problem, state: IterState, alpha: float) -> StepResult:
        param = self._point(alpha)
        cost = problem.cost(param)
        grad = None
        if self._sufficient(cost, alpha) and cost < self._phi_ref:
            grad = problem.gradient(param)
        return self._accept(state, alpha, param, cost, grad)

    def init(self, problem: Problem, state: IterState) -> StepResult:
        self._reset()
        self._prepare(problem, state)
        self._phi_prev = self._base_cost
        return self._trial(problem, state, self.initial_step)

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        alpha = self.alpha
        phi = state.cost
        slope = self._slope(state.grad)
        if not self._zooming:
            if not self._sufficient(phi, alpha) or (
                self._expansions > 0 and phi >= self._phi_prev
            ):
                self._lo, self._phi_lo, self._hi = self._alpha_prev, self._phi_prev, alpha
                self._zooming = True
            elif slope is not None and slope >= 0:
                self._lo, self._phi_lo, self._hi = alpha, phi, self._alpha_prev
                self._zooming = True
            else:
                self._alpha_prev = alpha
                self._phi_prev = phi
                self._expansions += 1
                self._phi_ref = phi
                return self._trial(problem, state, 2.0 * alpha)
        else:
            if not self._sufficient(phi, alpha) or phi >= self._phi_lo:
                self._hi = alpha
            else:
                if slope is not None and slope * (self._hi - self._lo) > 0:
                    self._hi = self._lo
                self._lo = alpha
                self._phi_lo = phi
            if abs(self._hi - self._lo) < 1e-12:
                return self._settle(problem, state)
        self._phi_ref = self._phi_lo
        return self._trial(problem, state, 0.5 * (self._lo + self._hi))

    def _settle(self, problem: Problem, state: IterState) -> StepResult:
        # The low end of a collapsed bracket always satisfies sufficient decrease.
        if self._lo <= 0:
            raise NumericalError("zoom interval collapsed onto the start point")
        param = self._point(self._lo)
        self._collapsed = True
        return self._accept(state, self._lo, param, self._phi_lo, problem.gradient(param))

    def terminate(self, state: IterState) -> TerminationStatus:
        if self._collapsed:
            return TerminationStatus.stop(
                TerminationReason.SOLVER_REQUESTED_STOP,
                "zoom interval collapsed on a sufficient-decrease step",
            )
        if state.cost >= self._phi_ref:
            return NOT_TERMINATED
        if self.condition.holds(
            state.cost,
            self._slope(state.grad),
            self._base_cost,
            self._base_slope,
            self.alpha,
        ):
            return TerminationStatus.stop(
                TerminationReason.SOLVER_REQUESTED_STOP, "strong Wolfe conditions met"
            )
        return NOT_TERMINATED


@dataclass
class LineSearchResult:
    """Accepted step of a nested line search."""

    step_length: float
    param: Any
    cost: float
    grad: Any
    iterations: int


def run_line_search(
    problem: Problem,
    line_search: LineSearch,
    param: Any,
    cost: Optional[float],
    grad: Any,
    direction: Any,
    initial_step: Optional[float] = None,
    max_iters: Optional[int] = None,
) -> LineSearchResult:
    """
    Run ``line_search`` along ``direction`` from ``param`` as a nested executor.

    The nested run gets a child problem, its own state and its own
    termination policy; no observers or checkpoints are attached. Its
    evaluation counts are added to ``problem`` once it finishes.

    Raises:
        LineSearchFailed: The nested run failed or stopped for any reason
            other than its acceptance test.
    """
    child = problem.child()
    search = line_search.with_direction(direction, initial_step)
    state = IterState(param=param, cost=cost, grad=grad)
    config = ExecutorConfig(
        max_iters=max_iters if max_iters is not None else search.max_iters,
        timer=False,
        run_id="line_search",
        nested=True,
    )
    result = Executor(child, search, state, config=config).run()
    problem.consume(child)
    if result.error is not None:
        raise LineSearchFailed(
            f"{search.name} line search failed: {result.error.cause}"
        ) from result.error
    if result.termination_reason is not TerminationReason.SOLVER_REQUESTED_STOP:
        raise LineSearchFailed(
            f"{search.name} line search stopped without an acceptable step: "
            f"{result.state.termination_status}"
        )
    final = result.state
    logger.debug(
        "%s accepted step %.3e after %d extra trials",
        search.name,
        result.solver.step_length,
        final.iteration,
    )
    return LineSearchResult(
        step_length=result.solver.step_length,
        param=final.param,
        cost=final.cost,
        grad=final.grad,
        iterations=final.iteration,
    )


__all__ = [
    "ArmijoCondition",
    "BacktrackingLineSearch",
    "GoldsteinCondition",
    "LineSearch",
    "LineSearchCondition",
    "LineSearchResult",
    "StrongWolfeCondition",
    "StrongWolfeLineSearch",
    "WolfeCondition",
    "run_line_search",
]
