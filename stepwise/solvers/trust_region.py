"""Trust-region methods with dogleg and Cauchy point strategies."""

from __future__ import annotations

import math as _math
from typing import Any

from ..core.errors import NumericalError
from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import TerminationStatus
from ..math import NUMPY, MathBackend
from .gradient import RTOL, gradient_status, start_point
from .newton import regularized_solve


def cauchy_point(m: MathBackend, grad: Any, hess: Any, delta: float) -> Any:
    """Minimizer of the quadratic model along ``-grad`` inside the region."""
    grad_norm = m.norm(grad)
    if grad_norm == 0:
        return m.zeros_like(grad)
    gbg = m.weighted_dot(grad, hess, grad)
    if gbg <= 0:
        tau = 1.0
    else:
        tau = min((grad_norm**3) / (delta * gbg), 1.0)
    return m.mul(grad, -(tau * delta / grad_norm))


def dogleg_step(m: MathBackend, grad: Any, hess: Any, delta: float) -> Any:
    """Compute dogleg step combining Cauchy point and Newton step."""
    p_u = cauchy_point(m, grad, hess, delta)
    p_b = regularized_solve(m, hess, m.mul(grad, -1.0), attempts=1)
    if m.norm(p_b) <= delta:
        return p_b
    norm_u = m.norm(p_u)
    if norm_u >= delta:
        return m.mul(p_u, delta / norm_u)
    diff = m.sub(p_b, p_u)
    a = m.dot(diff, diff)
    if a <= 0:
        return m.mul(p_u, delta / norm_u)
    b = 2.0 * m.dot(p_u, diff)
    c = m.dot(p_u, p_u) - delta**2
    disc = max(b * b - 4 * a * c, 0.0)
    tau = (-b + _math.sqrt(disc)) / (2 * a)
    return m.scaled_add(p_u, tau, diff)


SUBPROBLEMS = {
    "dogleg": dogleg_step,
    "cauchy": cauchy_point,
}


class TrustRegion(Solver):
    """
    Trust-region solver over a quadratic model.

    A rejected step leaves the parameters unchanged (the state records a
    zero move) and shrinks the radius.

    Args:
        radius: Initial trust-region radius.
        max_radius: Upper bound for the radius.
        eta: Minimum ratio of actual to predicted reduction for accepting
            a step.
        subproblem: ``"dogleg"`` or ``"cauchy"``.
        tol: Gradient-norm tolerance.
        math: Vector backend.
    """

    name = "Trust region"

    def __init__(
        self,
        radius: float = 1.0,
        max_radius: float = 100.0,
        eta: float = 0.15,
        subproblem: str = "dogleg",
        tol: float = RTOL,
        math: MathBackend = NUMPY,
    ) -> None:
        if radius <= 0 or max_radius < radius:
            raise ValueError("Require 0 < radius <= max_radius.")
        if not (0 <= eta < 1):
            raise ValueError("eta must lie in [0, 1).")
        if subproblem not in SUBPROBLEMS:
            raise ValueError(
                f"Unknown subproblem {subproblem!r}. Supported: {sorted(SUBPROBLEMS)}"
            )
        self.initial_radius = radius
        self.radius = radius
        self.max_radius = max_radius
        self.eta = eta
        self.subproblem = subproblem
        self.tol = tol
        self.math = math

    def __repr__(self) -> str:
        return f"TrustRegion(radius={self.radius}, subproblem={self.subproblem!r})"

    def init(self, problem: Problem, state: IterState) -> StepResult:
        state = start_point(problem, state, self.math)
        self.radius = self.initial_radius
        return state, {"radius": self.radius}

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        m = self.math
        x, fx, grad = state.param, state.cost, state.grad
        hess = problem.hessian(x)
        step = SUBPROBLEMS[self.subproblem](m, grad, hess, self.radius)
        candidate = m.add(x, step)
        f_candidate = problem.cost(candidate)
        actual_red = fx - f_candidate
        predicted_red = -(m.dot(grad, step) + 0.5 * m.weighted_dot(step, hess, step))
        if predicted_red <= 0:
            rho = 0.0
        else:
            rho = actual_red / predicted_red
        if rho < 0.25:
            self.radius *= 0.25
        elif rho > 0.75 and m.norm(step) >= 0.9 * self.radius:
            self.radius = min(2.0 * self.radius, self.max_radius)
        accepted = rho > self.eta and _math.isfinite(f_candidate)
        if accepted:
            state.move_to(candidate, f_candidate, problem.gradient(candidate), hessian=hess)
        else:
            state.move_to(x, fx, hessian=hess)
        if self.radius == 0.0:
            raise NumericalError("trust-region radius underflowed to zero")
        return state, {"radius": self.radius, "rho": rho, "accepted": accepted}

    def terminate(self, state: IterState) -> TerminationStatus:
        return gradient_status(self.math, state.grad, self.tol)


__all__ = ["TrustRegion", "cauchy_point", "dogleg_step"]
