"""Newton and damped Newton optimization routines."""

from __future__ import annotations

from typing import Any, Optional

from ..core.errors import NumericalError
from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import TerminationStatus
from ..logging import get_logger
from ..math import NUMPY, MathBackend
from ..utils import like, safe_solve, to_numpy
from .gradient import RTOL, gradient_status, start_point
from .line_search import LineSearch, run_line_search

logger = get_logger(__name__)


def regularized_solve(
    math: MathBackend, mat: Any, rhs: Any, reg: float = 0.0, attempts: int = 5
) -> Any:
    """Solve ``(mat + reg I) x = rhs``, growing ``reg`` while the system is singular.

    After ``attempts`` failures the ridge-regularized NumPy fallback is
    used; if that fails too :class:`NumericalError` propagates.
    """
    reg = max(reg, 0.0)
    eye = math.eye(int(rhs.shape[0]))
    for _ in range(attempts):
        try:
            return math.solve(math.scaled_add(mat, reg, eye), rhs)
        except NumericalError:
            reg = reg * 10 + 1e-8
    logger.debug("falling back to ridge solve with reg=%g", reg)
    shifted = to_numpy(math.scaled_add(mat, reg, eye))
    return like(safe_solve(shifted, to_numpy(rhs)), rhs)


class Newton(Solver):
    """
    Newton's method with optional line search and damping.

    ``state.hessian`` holds the Hessian used for the most recent step.

    Args:
        line_search: Optional nested line search along the Newton step.
            Without one the full step is taken.
        lambda_reg: Levenberg-style damping added to the Hessian diagonal.
        tol: Gradient-norm tolerance.
        math: Vector backend.
    """

    name = "Newton"

    def __init__(
        self,
        line_search: Optional[LineSearch] = None,
        lambda_reg: float = 0.0,
        tol: float = RTOL,
        math: MathBackend = NUMPY,
    ) -> None:
        self.line_search = line_search
        self.lambda_reg = lambda_reg
        self.tol = tol
        self.math = math

    def init(self, problem: Problem, state: IterState) -> StepResult:
        return start_point(problem, state, self.math), None

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        m = self.math
        hess = problem.hessian(state.param)
        step = regularized_solve(m, hess, m.mul(state.grad, -1.0), self.lambda_reg)
        kv = {}
        if self.line_search is not None:
            ls = run_line_search(
                problem, self.line_search, state.param, state.cost, state.grad, step
            )
            x_new, cost, grad = ls.param, ls.cost, ls.grad
            kv = {"step_length": ls.step_length, "line_search_iters": ls.iterations}
        else:
            x_new = m.add(state.param, step)
            cost, grad = problem.cost(x_new), None
        if grad is None:
            grad = problem.gradient(x_new)
        state.move_to(x_new, cost, grad, hessian=hess)
        kv["step_norm"] = m.norm(step)
        return state, kv

    def terminate(self, state: IterState) -> TerminationStatus:
        return gradient_status(self.math, state.grad, self.tol)


__all__ = ["Newton", "regularized_solve"]
