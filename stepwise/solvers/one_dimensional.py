"""Scalar methods: golden-section minimization and Brent root finding.

Both work on an :class:`IterState` whose ``param`` is a Python float and
keep their bracket inside the solver.
"""

from __future__ import annotations

import math as _math
import sys

from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import NOT_TERMINATED, TerminationReason, TerminationStatus
from .gradient import ATOL

GOLDEN_R = 0.5 * (_math.sqrt(5.0) - 1.0)
GOLDEN_C = 1.0 - GOLDEN_R
EPS = sys.float_info.epsilon


def _check_bracket(bounds: tuple) -> tuple:
    lower, upper = (float(v) for v in bounds)
    if not lower < upper:
        raise ValueError("Bracket must satisfy lower < upper.")
    return lower, upper


class GoldenSectionSearch(Solver):
    """
    Golden-section search for a minimum of a unimodal function on a bracket.

    Args:
        bounds: ``(lower, upper)``.
        tol: Relative width of the final bracket.
    """

    name = "Golden-section search"

    def __init__(self, bounds: tuple, tol: float = 1e-8) -> None:
        if tol <= 0:
            raise ValueError("tol must be positive.")
        self.bounds = _check_bracket(bounds)
        self.tol = tol
        self.x0 = self.x1 = self.x2 = self.x3 = 0.0
        self.f1 = self.f2 = 0.0

    def __repr__(self) -> str:
        return f"GoldenSectionSearch(bounds={self.bounds}, tol={self.tol})"

    def _current(self, state: IterState) -> IterState:
        if self.f1 < self.f2:
            return state.move_to(self.x1, self.f1)
        return state.move_to(self.x2, self.f2)

    def init(self, problem: Problem, state: IterState) -> StepResult:
        a, b = self.bounds
        self.x0, self.x3 = a, b
        self.x1 = a + GOLDEN_C * (b - a)
        self.x2 = a + GOLDEN_R * (b - a)
        self.f1 = problem.cost(self.x1)
        self.f2 = problem.cost(self.x2)
        return self._current(state), {"width": b - a}

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        if self.f2 < self.f1:
            self.x0, self.x1 = self.x1, self.x2
            self.x2 = GOLDEN_R * self.x1 + GOLDEN_C * self.x3
            self.f1 = self.f2
            self.f2 = problem.cost(self.x2)
        else:
            self.x3, self.x2 = self.x2, self.x1
            self.x1 = GOLDEN_R * self.x2 + GOLDEN_C * self.x0
            self.f2 = self.f1
            self.f1 = problem.cost(self.x1)
        return self._current(state), {"width": self.x3 - self.x0}

    def terminate(self, state: IterState) -> TerminationStatus:
        width = abs(self.x3 - self.x0)
        if width <= max(self.tol * (abs(self.x1) + abs(self.x2)), ATOL):
            return TerminationStatus.stop(
                TerminationReason.SOLVER_REQUESTED_STOP, "bracket width below tolerance"
            )
        return NOT_TERMINATED


class BrentRoot(Solver):
    """
    Brent's method for a root of ``fun`` on a sign-changing bracket.

    ``problem.fun`` returns the signed function value; the state's ``cost``
    is its absolute value so best tracking follows the closest approach to
    the root.

    Args:
        bounds: ``(lower, upper)`` with ``fun(lower) * fun(upper) <= 0``.
        tol: Absolute tolerance on the root.
    """

    name = "Brent root"

    def __init__(self, bounds: tuple, tol: float = 1e-12) -> None:
        if tol <= 0:
            raise ValueError("tol must be positive.")
        self.bounds = _check_bracket(bounds)
        self.tol = tol
        self.a = self.b = self.c = 0.0
        self.fa = self.fb = self.fc = 0.0
        self.d = self.e = 0.0

    def __repr__(self) -> str:
        return f"BrentRoot(bounds={self.bounds}, tol={self.tol})"

    def _normalize(self) -> None:
        if (self.fb > 0 and self.fc > 0) or (self.fb < 0 and self.fc < 0):
            self.c, self.fc = self.a, self.fa
            self.d = self.e = self.b - self.a
        if abs(self.fc) < abs(self.fb):
            self.a, self.b, self.c = self.b, self.c, self.b
            self.fa, self.fb, self.fc = self.fb, self.fc, self.fb

    def _tolerance(self) -> float:
        return 2.0 * EPS * abs(self.b) + 0.5 * self.tol

    def init(self, problem: Problem, state: IterState) -> StepResult:
        self.a, self.b = self.bounds
        self.fa = problem.cost(self.a)
        self.fb = problem.cost(self.b)
        if (self.fa > 0 and self.fb > 0) or (self.fa < 0 and self.fb < 0):
            raise ValueError(
                f"Root must be bracketed: f({self.a}) = {self.fa}, f({self.b}) = {self.fb}."
            )
        self.c, self.fc = self.b, self.fb
        self.d = self.e = self.b - self.a
        self._normalize()
        return state.move_to(self.b, abs(self.fb)), None

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        tol1 = self._tolerance()
        xm = 0.5 * (self.c - self.b)
        method = "bisection"
        if abs(self.e) >= tol1 and abs(self.fa) > abs(self.fb):
            s = self.fb / self.fa
            if self.a == self.c:
                p = 2.0 * xm * s
                q = 1.0 - s
            else:
                q = self.fa / self.fc
                r = self.fb / self.fc
                p = s * (2.0 * xm * q * (q - r) - (self.b - self.a) * (r - 1.0))
                q = (q - 1.0) * (r - 1.0) * (s - 1.0)
            if p > 0:
                q = -q
            p = abs(p)
            min1 = 3.0 * xm * q - abs(tol1 * q)
            min2 = abs(self.e * q)
            if 2.0 * p < min(min1, min2):
                self.e = self.d
                self.d = p / q
                method = "interpolation"
            else:
                self.d = xm
                self.e = self.d
        else:
            self.d = xm
            self.e = self.d
        self.a, self.fa = self.b, self.fb
        if abs(self.d) > tol1:
            self.b += self.d
        else:
            self.b += _math.copysign(tol1, xm)
        self.fb = problem.cost(self.b)
        self._normalize()
        return state.move_to(self.b, abs(self.fb)), {"method": method}

    def terminate(self, state: IterState) -> TerminationStatus:
        if self.fb == 0 or abs(0.5 * (self.c - self.b)) <= self._tolerance():
            return TerminationStatus.stop(
                TerminationReason.SOLVER_REQUESTED_STOP, "root bracket below tolerance"
            )
        return NOT_TERMINATED


__all__ = ["BrentRoot", "GoldenSectionSearch"]
