"""Simulated annealing with pluggable cooling schedules."""

from __future__ import annotations

import math as _math
from typing import Callable, Dict, Optional

import numpy as np

from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import IterState
from ..core.termination import NOT_TERMINATED, TerminationReason, TerminationStatus


def _fast(t0: float, k: int) -> float:
    return t0 / (k + 1)


def _boltzmann(t0: float, k: int) -> float:
    return t0 / _math.log(k + 2)


def _exponential(t0: float, k: int, factor: float = 0.95) -> float:
    return t0 * factor**k


SCHEDULES: Dict[str, Callable[[float, int], float]] = {
    "fast": _fast,
    "boltzmann": _boltzmann,
    "exponential": _exponential,
}


class SimulatedAnnealing(Solver):
    """
    Simulated annealing over a user-supplied neighbourhood.

    The problem must provide ``anneal_fun(param, temperature, rng)`` that
    returns a perturbed candidate; the solver passes its own seeded
    generator so runs are reproducible and resumable.

    Args:
        temperature: Initial temperature.
        schedule: Cooling schedule name (``"fast"``, ``"boltzmann"``,
            ``"exponential"``).
        stall_accepted: Stop after this many iterations without an accepted
            move.
        stall_best: Stop after this many iterations without a new best.
        reanneal_fixed: Reset the schedule every this many iterations.
        reanneal_accepted: Reset after this many iterations without an
            accepted move.
        reanneal_best: Reset after this many iterations without a new best.
        seed: Seed of the solver's generator.
    """

    name = "Simulated annealing"

    def __init__(
        self,
        temperature: float,
        schedule: str = "fast",
        stall_accepted: Optional[int] = None,
        stall_best: Optional[int] = None,
        reanneal_fixed: Optional[int] = None,
        reanneal_accepted: Optional[int] = None,
        reanneal_best: Optional[int] = None,
        seed: Optional[int] = None,
    ) -> None:
        if temperature <= 0:
            raise ValueError("Initial temperature must be positive.")
        if schedule not in SCHEDULES:
            raise ValueError(f"Unknown schedule {schedule!r}. Supported: {sorted(SCHEDULES)}")
        self.init_temp = float(temperature)
        self.temperature = float(temperature)
        self.schedule = schedule
        self.stall_accepted = stall_accepted
        self.stall_best = stall_best
        self.reanneal_fixed = reanneal_fixed
        self.reanneal_accepted = reanneal_accepted
        self.reanneal_best = reanneal_best
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self._reset_counters()

    def __repr__(self) -> str:
        return (
            f"SimulatedAnnealing(temperature={self.init_temp}, schedule={self.schedule!r}, "
            f"seed={self.seed})"
        )

    def _reset_counters(self) -> None:
        self.temp_iter = 0
        self.stall_iter_accepted = 0
        self.stall_iter_best = 0
        self.reanneal_iter_fixed = 0
        self.reanneal_iter_accepted = 0
        self.reanneal_iter_best = 0

    def init(self, problem: Problem, state: IterState) -> StepResult:
        if state.param is None:
            raise ValueError("Simulated annealing needs an initial parameter.")
        self._reset_counters()
        self.temperature = self.init_temp
        if state.cost is None:
            state.cost = problem.cost(state.param)
        return state, {"temperature": self.temperature}

    def _cool(self) -> None:
        self.temp_iter += 1
        self.temperature = SCHEDULES[self.schedule](self.init_temp, self.temp_iter)

    def _maybe_reanneal(self) -> bool:
        triggers = (
            (self.reanneal_fixed, self.reanneal_iter_fixed),
            (self.reanneal_accepted, self.reanneal_iter_accepted),
            (self.reanneal_best, self.reanneal_iter_best),
        )
        if not any(limit is not None and count >= limit for limit, count in triggers):
            return False
        self.temp_iter = 0
        self.temperature = self.init_temp
        self.reanneal_iter_fixed = 0
        self.reanneal_iter_accepted = 0
        self.reanneal_iter_best = 0
        return True

    def next_iter(self, problem: Problem, state: IterState) -> StepResult:
        candidate = problem.anneal(state.param, self.temperature, self.rng)
        new_cost = problem.cost(candidate)
        delta = new_cost - state.cost
        accepted = delta < 0 or self.rng.uniform() < _math.exp(-delta / self.temperature)
        new_best = new_cost < state.best_cost
        if accepted:
            state.move_to(candidate, new_cost)
            self.stall_iter_accepted = 0
            self.reanneal_iter_accepted = 0
        else:
            # rejected: cost and prev_cost stay put
            state.prev_param = state.param
            self.stall_iter_accepted += 1
            self.reanneal_iter_accepted += 1
        if new_best and accepted:
            self.stall_iter_best = 0
            self.reanneal_iter_best = 0
        else:
            self.stall_iter_best += 1
            self.reanneal_iter_best += 1
        self.reanneal_iter_fixed += 1
        reannealed = self._maybe_reanneal()
        if not reannealed:
            self._cool()
        return state, {
            "temperature": self.temperature,
            "accepted": accepted,
            "reannealed": reannealed,
            "stall_accepted": self.stall_iter_accepted,
            "stall_best": self.stall_iter_best,
        }

    def terminate(self, state: IterState) -> TerminationStatus:
        if self.stall_accepted is not None and self.stall_iter_accepted >= self.stall_accepted:
            return TerminationStatus.stop(
                TerminationReason.SOLVER_REQUESTED_STOP, "accepted stall iteration limit reached"
            )
        if self.stall_best is not None and self.stall_iter_best >= self.stall_best:
            return TerminationStatus.stop(
                TerminationReason.SOLVER_REQUESTED_STOP, "best stall iteration limit reached"
            )
        return NOT_TERMINATED


__all__ = ["SCHEDULES", "SimulatedAnnealing"]
