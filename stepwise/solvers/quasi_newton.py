"""Quasi-Newton optimization algorithms (BFGS and L-BFGS)."""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Optional

from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import TerminationStatus
from ..math import NUMPY, MathBackend
from .gradient import RTOL, gradient_status, start_point
from .line_search import LineSearch, StrongWolfeLineSearch, run_line_search

CURVATURE_EPS = 1e-12


class BFGS(Solver):
    """
    Full-memory BFGS with strong Wolfe line search.

    The inverse Hessian approximation lives on the state
    (``state.inv_hessian``); a caller may seed it before the run. It is
    reset to the identity whenever the curvature condition ``y^T s > 0``
    fails.
    """

    name = "BFGS"

    def __init__(
        self,
        line_search: Optional[LineSearch] = None,
        tol: float = RTOL,
        math: MathBackend = NUMPY,
    ) -> None:
        self.line_search = line_search if line_search is not None else StrongWolfeLineSearch(math=math)
        self.tol = tol
        self.math = math

    def init(self, problem: Problem, state: IterState) -> StepResult:
        state = start_point(problem, state, self.math)
        if state.inv_hessian is None:
            state.inv_hessian = self.math.eye(int(state.param.shape[0]))
        return state, None

    def _update(self, inv_hessian: Any, s: Any, y: Any) -> Any:
        m = self.math
        ys = m.dot(y, s)
        if ys <= CURVATURE_EPS:
            return m.eye(int(s.shape[0]))
        rho = 1.0 / ys
        hy = m.matvec(inv_hessian, y)
        yhy = m.dot(y, hy)
        cross = m.add(m.outer(s, hy), m.outer(hy, s))
        updated = m.scaled_sub(inv_hessian, rho, cross)
        return m.scaled_add(updated, rho * rho * yhy + rho, m.outer(s, s))

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        m = self.math
        direction = m.mul(m.matvec(state.inv_hessian, state.grad), -1.0)
        ls = run_line_search(
            problem, self.line_search, state.param, state.cost, state.grad, direction
        )
        grad_new = ls.grad if ls.grad is not None else problem.gradient(ls.param)
        s = m.sub(ls.param, state.param)
        y = m.sub(grad_new, state.grad)
        inv_hessian = self._update(state.inv_hessian, s, y)
        state.move_to(ls.param, ls.cost, grad_new, inv_hessian=inv_hessian)
        return state, {"step_length": ls.step_length, "line_search_iters": ls.iterations}

    def terminate(self, state: IterState) -> TerminationStatus:
        return gradient_status(self.math, state.grad, self.tol)


class LBFGS(Solver):
    """
    Limited-memory BFGS using two-loop recursion.

    Args:
        m: Number of correction pairs to keep.
        line_search: Nested line search; strong Wolfe by default.
        tol: Gradient-norm tolerance.
        math: Vector backend.
    """

    name = "L-BFGS"

    def __init__(
        self,
        m: int = 10,
        line_search: Optional[LineSearch] = None,
        tol: float = RTOL,
        math: MathBackend = NUMPY,
    ) -> None:
        if m <= 0:
            raise ValueError("Memory parameter m must be positive.")
        self.m = m
        self.line_search = line_search if line_search is not None else StrongWolfeLineSearch(math=math)
        self.tol = tol
        self.math = math
        self.s_history: Deque[Any] = deque(maxlen=m)
        self.y_history: Deque[Any] = deque(maxlen=m)

    def init(self, problem: Problem, state: IterState) -> StepResult:
        self.s_history = deque(maxlen=self.m)
        self.y_history = deque(maxlen=self.m)
        return start_point(problem, state, self.math), None

    def two_loop(self, g: Any) -> Any:
        m = self.math
        q = m.copy(g)
        alpha_vals = []
        for s, y in reversed(list(zip(self.s_history, self.y_history))):
            rho = 1.0 / m.dot(y, s)
            alpha_i = rho * m.dot(s, q)
            q = m.scaled_sub(q, alpha_i, y)
            alpha_vals.append((rho, alpha_i, s, y))
        if self.s_history:
            last_s = self.s_history[-1]
            last_y = self.y_history[-1]
            gamma = m.dot(last_s, last_y) / m.dot(last_y, last_y)
        else:
            gamma = 1.0
        r = m.mul(q, gamma)
        for rho, alpha_i, s, y in reversed(alpha_vals):
            beta = rho * m.dot(y, r)
            r = m.scaled_add(r, alpha_i - beta, s)
        return m.mul(r, -1.0)

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        m = self.math
        direction = self.two_loop(state.grad)
        ls = run_line_search(
            problem, self.line_search, state.param, state.cost, state.grad, direction
        )
        grad_new = ls.grad if ls.grad is not None else problem.gradient(ls.param)
        s = m.sub(ls.param, state.param)
        y = m.sub(grad_new, state.grad)
        if m.dot(y, s) > CURVATURE_EPS:
            self.s_history.append(s)
            self.y_history.append(y)
        state.move_to(ls.param, ls.cost, grad_new)
        return state, {
            "step_length": ls.step_length,
            "line_search_iters": ls.iterations,
            "memory": len(self.s_history),
        }

    def terminate(self, state: IterState) -> TerminationStatus:
        return gradient_status(self.math, state.grad, self.tol)


__all__ = ["BFGS", "LBFGS"]
