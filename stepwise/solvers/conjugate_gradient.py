"""Nonlinear conjugate gradient methods."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import TerminationStatus
from ..math import NUMPY, MathBackend
from .gradient import RTOL, gradient_status, start_point
from .line_search import LineSearch, StrongWolfeLineSearch, run_line_search


def _fletcher_reeves(m: MathBackend, g_new: Any, g: Any, d: Any) -> float:
    return m.dot(g_new, g_new) / m.dot(g, g)


def _polak_ribiere(m: MathBackend, g_new: Any, g: Any, d: Any) -> float:
    return m.dot(g_new, m.sub(g_new, g)) / m.dot(g, g)


def _polak_ribiere_plus(m: MathBackend, g_new: Any, g: Any, d: Any) -> float:
    return max(_polak_ribiere(m, g_new, g, d), 0.0)


def _hestenes_stiefel(m: MathBackend, g_new: Any, g: Any, d: Any) -> float:
    y = m.sub(g_new, g)
    denom = m.dot(d, y)
    if denom == 0:
        return 0.0
    return m.dot(g_new, y) / denom


BETA_METHODS: Dict[str, Callable[[MathBackend, Any, Any, Any], float]] = {
    "fletcher_reeves": _fletcher_reeves,
    "polak_ribiere": _polak_ribiere,
    "polak_ribiere_plus": _polak_ribiere_plus,
    "hestenes_stiefel": _hestenes_stiefel,
}


class NonlinearConjugateGradient(Solver):
    """
    Nonlinear conjugate gradient with restarts.

    Args:
        beta: Update formula, one of :data:`BETA_METHODS`.
        line_search: Nested line search; strong Wolfe with ``c2=0.1`` by
            default, as CG needs a tighter curvature condition than
            quasi-Newton methods.
        restart_iters: Reset to steepest descent every this many iterations.
        restart_orthogonality: Reset when ``|g_k^T g_{k-1}| / |g_k|^2``
            exceeds this value.
        tol: Gradient-norm tolerance.
        math: Vector backend.
    """

    name = "Nonlinear conjugate gradient"

    def __init__(
        self,
        beta: str = "polak_ribiere_plus",
        line_search: Optional[LineSearch] = None,
        restart_iters: Optional[int] = None,
        restart_orthogonality: Optional[float] = None,
        tol: float = RTOL,
        math: MathBackend = NUMPY,
    ) -> None:
        if beta not in BETA_METHODS:
            raise ValueError(f"Unknown beta method {beta!r}. Supported: {sorted(BETA_METHODS)}")
        if restart_iters is not None and restart_iters < 1:
            raise ValueError("restart_iters must be at least 1.")
        self.beta = beta
        self.line_search = (
            line_search if line_search is not None else StrongWolfeLineSearch(c2=0.1, math=math)
        )
        self.restart_iters = restart_iters
        self.restart_orthogonality = restart_orthogonality
        self.tol = tol
        self.math = math
        self.direction: Any = None

    def init(self, problem: Problem, state: IterState) -> StepResult:
        state = start_point(problem, state, self.math)
        self.direction = self.math.mul(state.grad, -1.0)
        return state, None

    def _restart(self, iteration: int, g_new: Any, g: Any) -> bool:
        m = self.math
        if self.restart_iters is not None and iteration % self.restart_iters == 0:
            return True
        if self.restart_orthogonality is not None:
            gg = m.dot(g_new, g_new)
            return gg > 0 and abs(m.dot(g_new, g)) / gg >= self.restart_orthogonality
        return False

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        m = self.math
        g = state.grad
        direction = self.direction
        if m.dot(g, direction) >= 0:
            direction = m.mul(g, -1.0)
        ls = run_line_search(problem, self.line_search, state.param, state.cost, g, direction)
        g_new = ls.grad if ls.grad is not None else problem.gradient(ls.param)
        restarted = self._restart(state.iteration + 1, g_new, g)
        beta = 0.0 if restarted else BETA_METHODS[self.beta](m, g_new, g, direction)
        self.direction = m.scaled_add(m.mul(g_new, -1.0), beta, direction)
        state.move_to(ls.param, ls.cost, g_new)
        return state, {
            "beta": beta,
            "restart": restarted,
            "step_length": ls.step_length,
            "line_search_iters": ls.iterations,
        }

    def terminate(self, state: IterState) -> TerminationStatus:
        return gradient_status(self.math, state.grad, self.tol)


__all__ = ["BETA_METHODS", "NonlinearConjugateGradient"]
