"""Derivative-free Nelder-Mead simplex method."""

from __future__ import annotations

import math as _math
from typing import Any, List, Optional, Sequence

from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import NOT_TERMINATED, TerminationReason, TerminationStatus
from ..math import NUMPY, MathBackend

SD_TOLERANCE = 2.220446049250313e-16


class NelderMead(Solver):
    """
    Nelder-Mead downhill simplex.

    The simplex is solver-internal; the state's ``param`` is always the best
    vertex and ``cost`` its cost. Vertex costs are evaluated with
    :meth:`Problem.bulk_cost`, so the initial simplex and shrink steps fan
    out over the problem's worker threads.

    Args:
        simplex: Optional initial vertices (``n + 1`` points). If omitted it
            is built around ``state.param`` by perturbing each coordinate by
            5% (or 0.00025 for zero coordinates).
        alpha: Reflection coefficient.
        gamma: Expansion coefficient.
        rho: Contraction coefficient.
        sigma: Shrink coefficient.
        sd_tolerance: Stop when the standard deviation of the vertex costs
            falls below this value.
        math: Vector backend.
    """

    name = "Nelder-Mead"

    def __init__(
        self,
        simplex: Optional[Sequence[Any]] = None,
        alpha: float = 1.0,
        gamma: float = 2.0,
        rho: float = 0.5,
        sigma: float = 0.5,
        sd_tolerance: float = SD_TOLERANCE,
        math: MathBackend = NUMPY,
    ) -> None:
        if alpha <= 0:
            raise ValueError("alpha must be positive.")
        if gamma <= 1:
            raise ValueError("gamma must be greater than 1.")
        if not (0 < rho <= 0.5):
            raise ValueError("rho must lie in (0, 0.5].")
        if not (0 < sigma < 1):
            raise ValueError("sigma must lie in (0, 1).")
        if sd_tolerance < 0:
            raise ValueError("sd_tolerance must be non-negative.")
        self.initial_simplex = list(simplex) if simplex is not None else None
        self.alpha = alpha
        self.gamma = gamma
        self.rho = rho
        self.sigma = sigma
        self.sd_tolerance = sd_tolerance
        self.math = math
        self.vertices: List[Any] = []
        self.costs: List[float] = []

    def __repr__(self) -> str:
        return (
            f"NelderMead(alpha={self.alpha}, gamma={self.gamma}, rho={self.rho}, "
            f"sigma={self.sigma})"
        )

    def _default_simplex(self, x0: Any) -> List[Any]:
        m = self.math
        n = int(x0.shape[0])
        eye = m.eye(n)
        vertices = [m.copy(x0)]
        for i in range(n):
            xi = float(x0[i])
            delta = 0.05 * xi if xi != 0 else 0.00025
            vertices.append(m.scaled_add(x0, delta, eye[i]))
        return vertices

    def _sort(self) -> None:
        order = sorted(range(len(self.costs)), key=lambda i: self.costs[i])
        self.vertices = [self.vertices[i] for i in order]
        self.costs = [self.costs[i] for i in order]

    def init(self, problem: Problem, state: IterState) -> StepResult:
        m = self.math
        if self.initial_simplex is not None:
            vertices = [m.asarray(v) for v in self.initial_simplex]
        elif state.param is not None:
            vertices = self._default_simplex(m.asarray(state.param))
        else:
            raise ValueError("Nelder-Mead needs an initial simplex or state.param.")
        dim = int(vertices[0].shape[0])
        if len(vertices) != dim + 1:
            raise ValueError(
                f"Simplex must have {dim + 1} vertices for dimension {dim}, got {len(vertices)}."
            )
        self.vertices = vertices
        self.costs = problem.bulk_cost(vertices)
        self._sort()
        state.move_to(self.vertices[0], self.costs[0])
        return state, {"simplex_size": len(self.vertices)}

    def _centroid(self) -> Any:
        m = self.math
        total = m.copy(self.vertices[0])
        for v in self.vertices[1:-1]:
            total = m.add(total, v)
        return m.div(total, float(len(self.vertices) - 1))

    def _replace_worst(self, vertex: Any, cost: float) -> None:
        self.vertices[-1] = vertex
        self.costs[-1] = cost

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        m = self.math
        best_cost, second_worst, worst_cost = self.costs[0], self.costs[-2], self.costs[-1]
        worst = self.vertices[-1]
        centroid = self._centroid()
        reflected = m.scaled_add(centroid, self.alpha, m.sub(centroid, worst))
        f_reflected = problem.cost(reflected)
        if best_cost <= f_reflected < second_worst:
            self._replace_worst(reflected, f_reflected)
            action = "reflection"
        elif f_reflected < best_cost:
            expanded = m.scaled_add(centroid, self.gamma, m.sub(reflected, centroid))
            f_expanded = problem.cost(expanded)
            if f_expanded < f_reflected:
                self._replace_worst(expanded, f_expanded)
                action = "expansion"
            else:
                self._replace_worst(reflected, f_reflected)
                action = "reflection"
        else:
            if f_reflected < worst_cost:
                contracted = m.scaled_add(centroid, self.rho, m.sub(reflected, centroid))
                f_contracted = problem.cost(contracted)
                accept = f_contracted <= f_reflected
                action = "outside contraction"
            else:
                contracted = m.scaled_add(centroid, self.rho, m.sub(worst, centroid))
                f_contracted = problem.cost(contracted)
                accept = f_contracted < worst_cost
                action = "inside contraction"
            if accept:
                self._replace_worst(contracted, f_contracted)
            else:
                self._shrink(problem)
                action = "shrink"
        self._sort()
        state.move_to(self.vertices[0], self.costs[0])
        return state, {"action": action}

    def _shrink(self, problem: Problem) -> None:
        m = self.math
        best = self.vertices[0]
        shrunk = [
            m.scaled_add(best, self.sigma, m.sub(v, best)) for v in self.vertices[1:]
        ]
        self.vertices = [best] + shrunk
        self.costs = [self.costs[0]] + problem.bulk_cost(shrunk)

    def cost_std(self) -> float:
        n = len(self.costs)
        mean = sum(self.costs) / n
        return _math.sqrt(sum((c - mean) ** 2 for c in self.costs) / n)

    def terminate(self, state: IterState) -> TerminationStatus:
        if self.costs and self.cost_std() < self.sd_tolerance:
            return TerminationStatus.stop(
                TerminationReason.SOLVER_REQUESTED_STOP,
                "simplex cost standard deviation below tolerance",
            )
        return NOT_TERMINATED


__all__ = ["NelderMead"]
