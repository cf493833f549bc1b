"""Run state shapes.

Algorithms disagree on what their state is: a single point with derivative
data, or a population of candidates. Each shape is its own dataclass; what
they share is the :class:`State` protocol the executor relies on (iteration
counter, costs, best tracking, counters, timing and termination status).
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .termination import NOT_TERMINATED, TerminationReason, TerminationStatus


@runtime_checkable
class State(Protocol):
    """Capabilities every state shape provides to the executor."""

    iteration: int
    last_best_iter: int
    cost: Optional[float]
    prev_cost: Optional[float]
    best_cost: float
    counts: Dict[str, int]
    elapsed_time: Optional[float]
    termination_status: TerminationStatus

    def update(self) -> None:
        """Run the best-tracking hook after a step."""

    def is_best(self) -> bool:
        """Return True if the last update produced a new best."""

    def terminate_with(
        self, reason: TerminationReason, detail: Optional[str] = None
    ) -> None:
        """Mark the state terminated; the first reason sticks."""

    def get_param(self) -> Any:
        """Current candidate, for logging."""

    def get_best_param(self) -> Any:
        """Best candidate so far, for logging."""


def _strictly_better(cost: Optional[float], best_cost: float) -> bool:
    if cost is None or math.isnan(cost):
        return False
    return cost < best_cost


def _snapshot(value: Any) -> Any:
    if value is None or isinstance(value, (int, float)):
        return value
    if hasattr(value, "clone"):
        return value.detach().clone()
    return copy.deepcopy(value)


class _Bookkeeping:
    """Counters, timing and termination handling shared by the state shapes."""

    iteration: int
    last_best_iter: int
    counts: Dict[str, int]
    elapsed_time: Optional[float]
    termination_status: TerminationStatus
    _new_best: bool

    @property
    def terminated(self) -> bool:
        return self.termination_status.terminated

    @property
    def termination_reason(self) -> Optional[TerminationReason]:
        return self.termination_status.reason

    def terminate_with(
        self, reason: TerminationReason, detail: Optional[str] = None
    ) -> None:
        if self.termination_status.terminated:
            return
        self.termination_status = TerminationStatus.stop(reason, detail)

    def increment_iter(self) -> None:
        self.iteration += 1

    def is_best(self) -> bool:
        return self._new_best

    def set_counts(self, counts: Dict[str, int]) -> None:
        self.counts = dict(counts)


@dataclass
class IterState(_Bookkeeping):
    """
    State of single-point algorithms.

    ``param`` is whatever the algorithm iterates on: a vector for gradient
    methods, a float for 1-D searches. ``cost`` is None until evaluated.
    """

    param: Any = None
    prev_param: Any = None
    best_param: Any = None
    prev_best_param: Any = None
    cost: Optional[float] = None
    prev_cost: Optional[float] = None
    best_cost: float = math.inf
    prev_best_cost: float = math.inf
    grad: Any = None
    prev_grad: Any = None
    hessian: Any = None
    prev_hessian: Any = None
    inv_hessian: Any = None
    prev_inv_hessian: Any = None
    iteration: int = 0
    last_best_iter: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    elapsed_time: Optional[float] = None
    termination_status: TerminationStatus = NOT_TERMINATED
    _new_best: bool = field(default=False, repr=False)

    def move_to(
        self,
        param: Any,
        cost: Optional[float] = None,
        grad: Any = None,
        hessian: Any = None,
        inv_hessian: Any = None,
    ) -> "IterState":
        """Shift the current values into ``prev_*`` and install new ones.

        Arguments left as None keep their current value for gradient and
        Hessian data, so a solver only passes what it recomputed.
        """
        self.prev_param = self.param
        self.param = param
        self.prev_cost = self.cost
        self.cost = cost
        if grad is not None:
            self.prev_grad = self.grad
            self.grad = grad
        if hessian is not None:
            self.prev_hessian = self.hessian
            self.hessian = hessian
        if inv_hessian is not None:
            self.prev_inv_hessian = self.inv_hessian
            self.inv_hessian = inv_hessian
        return self

    def set_cost(self, cost: Optional[float]) -> "IterState":
        self.prev_cost = self.cost
        self.cost = cost
        return self

    def update(self) -> None:
        self._new_best = False
        if self.param is None or not _strictly_better(self.cost, self.best_cost):
            return
        self.prev_best_param = self.best_param
        self.prev_best_cost = self.best_cost
        self.best_param = _snapshot(self.param)
        self.best_cost = float(self.cost)
        self.last_best_iter = self.iteration
        self._new_best = True

    def get_param(self) -> Any:
        return self.param

    def get_best_param(self) -> Any:
        return self.best_param


@dataclass
class Particle:
    """One member of a population, with its personal best."""

    position: Any
    velocity: Any
    cost: float
    best_position: Any
    best_cost: float


@dataclass
class PopulationState(_Bookkeeping):
    """
    State of population algorithms.

    ``individual`` is the best particle of the current iteration and plays
    the role ``param`` plays for single-point states; ``best_individual`` is
    the best particle seen over the run.
    """

    population: List[Particle] = field(default_factory=list)
    individual: Optional[Particle] = None
    prev_individual: Optional[Particle] = None
    best_individual: Optional[Particle] = None
    prev_best_individual: Optional[Particle] = None
    cost: Optional[float] = None
    prev_cost: Optional[float] = None
    best_cost: float = math.inf
    prev_best_cost: float = math.inf
    iteration: int = 0
    last_best_iter: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    elapsed_time: Optional[float] = None
    termination_status: TerminationStatus = NOT_TERMINATED
    _new_best: bool = field(default=False, repr=False)

    def set_population(self, population: List[Particle]) -> "PopulationState":
        """Install a new population and make its lowest-cost member current."""
        self.population = population
        self.prev_individual = self.individual
        self.prev_cost = self.cost
        if population:
            best = min(population, key=lambda p: p.cost)
            self.individual = best
            self.cost = best.cost
        else:
            self.individual = None
            self.cost = None
        return self

    def update(self) -> None:
        self._new_best = False
        if self.individual is None or not _strictly_better(self.cost, self.best_cost):
            return
        self.prev_best_individual = self.best_individual
        self.prev_best_cost = self.best_cost
        self.best_individual = copy.deepcopy(self.individual)
        self.best_cost = float(self.cost)
        self.last_best_iter = self.iteration
        self._new_best = True

    def get_param(self) -> Any:
        return None if self.individual is None else self.individual.position

    def get_best_param(self) -> Any:
        return None if self.best_individual is None else self.best_individual.position

    @property
    def best_param(self) -> Any:
        return self.get_best_param()

    @property
    def param(self) -> Any:
        return self.get_param()


__all__ = ["IterState", "Particle", "PopulationState", "State"]
