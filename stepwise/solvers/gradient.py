"""Gradient-based optimization algorithms."""

from __future__ import annotations

from typing import Any, Optional

from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import NOT_TERMINATED, TerminationReason, TerminationStatus
from ..math import NUMPY, MathBackend
from .line_search import BacktrackingLineSearch, LineSearch, run_line_search

RTOL = 1e-8
ATOL = 1e-10


def check_convergence(grad_norm: float, tol: float) -> bool:
    """Return True if gradient norm satisfies tolerance."""
    return grad_norm <= max(tol, ATOL)


def gradient_status(math: MathBackend, grad: Any, tol: float) -> TerminationStatus:
    """Shared gradient-norm convergence test."""
    if grad is None:
        return NOT_TERMINATED
    if check_convergence(math.norm(grad), tol):
        return TerminationStatus.stop(
            TerminationReason.SOLVER_REQUESTED_STOP, "Gradient tolerance satisfied."
        )
    return NOT_TERMINATED


def start_point(problem: Problem, state: IterState, math: MathBackend) -> IterState:
    """Evaluate cost and gradient at ``state.param`` unless already present."""
    if state.param is None:
        raise ValueError("Initial parameter vector must be set on the state.")
    state.param = math.copy(math.asarray(state.param))
    if state.cost is None:
        state.cost = problem.cost(state.param)
    if state.grad is None:
        state.grad = problem.gradient(state.param)
    return state


class GradientDescent(Solver):
    """
    Classic gradient descent with optional momentum and Nesterov update.

    Args:
        step_size: Fixed learning rate.
        momentum: Use heavy-ball momentum.
        beta: Momentum coefficient.
        nesterov: Evaluate the gradient at the look-ahead point. Implies
            ``momentum``.
        tol: Gradient-norm tolerance for the convergence test.
        math: Vector backend.
    """

    name = "Gradient descent"

    def __init__(
        self,
        step_size: float = 1e-2,
        momentum: bool = False,
        beta: float = 0.9,
        nesterov: bool = False,
        tol: float = RTOL,
        math: MathBackend = NUMPY,
    ) -> None:
        if step_size <= 0:
            raise ValueError("step_size must be positive.")
        if not (0 <= beta < 1):
            raise ValueError("beta must lie in [0, 1).")
        self.step_size = step_size
        self.momentum = momentum or nesterov
        self.beta = beta
        self.nesterov = nesterov
        self.tol = tol
        self.math = math
        self.velocity: Any = None

    def __repr__(self) -> str:
        return (
            f"GradientDescent(step_size={self.step_size}, momentum={self.momentum}, "
            f"nesterov={self.nesterov})"
        )

    def init(self, problem: Problem, state: IterState) -> StepResult:
        state = start_point(problem, state, self.math)
        self.velocity = self.math.zeros_like(state.param)
        return state, None

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        m = self.math
        x = state.param
        if self.nesterov:
            point = m.scaled_add(x, self.beta, self.velocity)
            grad = problem.gradient(point)
        else:
            point = x
            grad = state.grad
        if self.momentum:
            self.velocity = m.scaled_sub(m.mul(self.velocity, self.beta), self.step_size, grad)
            x_new = m.add(point, self.velocity)
        else:
            x_new = m.scaled_sub(x, self.step_size, grad)
        cost = problem.cost(x_new)
        state.move_to(x_new, cost, problem.gradient(x_new))
        return state, {"grad_norm": m.norm(grad)}

    def terminate(self, state: IterState) -> TerminationStatus:
        return gradient_status(self.math, state.grad, self.tol)


class SteepestDescent(Solver):
    """Steepest descent with the step length chosen by a nested line search."""

    name = "Steepest descent"

    def __init__(
        self,
        line_search: Optional[LineSearch] = None,
        tol: float = RTOL,
        math: MathBackend = NUMPY,
    ) -> None:
        self.line_search = line_search if line_search is not None else BacktrackingLineSearch(math=math)
        self.tol = tol
        self.math = math

    def init(self, problem: Problem, state: IterState) -> StepResult:
        return start_point(problem, state, self.math), None

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        direction = self.math.mul(state.grad, -1.0)
        ls = run_line_search(
            problem, self.line_search, state.param, state.cost, state.grad, direction
        )
        grad = ls.grad if ls.grad is not None else problem.gradient(ls.param)
        state.move_to(ls.param, ls.cost, grad)
        return state, {"step_length": ls.step_length, "line_search_iters": ls.iterations}

    def terminate(self, state: IterState) -> TerminationStatus:
        return gradient_status(self.math, state.grad, self.tol)


__all__ = [
    "ATOL",
    "GradientDescent",
    "RTOL",
    "SteepestDescent",
    "check_convergence",
    "gradient_status",
    "start_point",
]
