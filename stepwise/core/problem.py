"""Problem wrapper around the user's objective and derivative callables."""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .errors import EvaluationError, NumericalError, StepwiseError

Objective = Callable[[Any], float]
Gradient = Callable[[Any], Any]
Hessian = Callable[[Any], Any]
Constraint = Callable[[Any], Any]
Anneal = Callable[[Any, float, np.random.Generator], Any]

COUNTERS = (
    "cost_count",
    "gradient_count",
    "hessian_count",
    "constraint_count",
    "anneal_count",
)


def _call(operation: str, func: Callable[..., Any], *args: Any) -> Any:
    try:
        return func(*args)
    except StepwiseError:
        raise
    except Exception as exc:
        raise EvaluationError(operation, f"{type(exc).__name__}: {exc}") from exc


def _as_cost(value: Any) -> float:
    cost = float(value)
    if math.isnan(cost):
        raise NumericalError("cost function returned NaN.")
    return cost


@dataclass
class Problem:
    """
    Container describing an optimization problem.

    Wraps the user callables, counts every evaluation and falls back to
    central finite differences when no gradient or Hessian is supplied.
    Exceptions raised by the callables surface as :class:`EvaluationError`.

    Args:
        fun: Cost function ``fun(x) -> float``.
        grad: Optional gradient ``grad(x) -> array``.
        hess: Optional Hessian ``hess(x) -> matrix``.
        constraint_fun: Optional constraint function ``constraint(x) -> array``.
        anneal_fun: Optional neighbor generator ``anneal(x, temperature, rng)``
            used by simulated annealing.
        dim: Optional problem dimension.
        workers: Thread count for :meth:`bulk_cost`. ``None`` or 1 evaluates
            sequentially.
    """

    fun: Objective
    grad: Optional[Gradient] = None
    hess: Optional[Hessian] = None
    constraint_fun: Optional[Constraint] = None
    anneal_fun: Optional[Anneal] = None
    dim: Optional[int] = None
    workers: Optional[int] = None
    _counts: Dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(COUNTERS, 0), init=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.workers is not None and self.workers < 1:
            raise ValueError("workers must be at least 1.")

    @property
    def counts(self) -> Dict[str, int]:
        """Copy of the evaluation counters."""
        return dict(self._counts)

    def restore_counts(self, counts: Dict[str, int]) -> None:
        """Overwrite the counters, e.g. when resuming from a checkpoint."""
        self._counts = dict.fromkeys(COUNTERS, 0)
        self._counts.update(counts)

    def has_gradient(self) -> bool:
        return self.grad is not None

    def has_hessian(self) -> bool:
        return self.hess is not None

    def cost(self, param: Any) -> float:
        value = _call("cost", self.fun, param)
        self._counts["cost_count"] += 1
        return _as_cost(value)

    def gradient(self, param: Any) -> Any:
        if self.grad is not None:
            value = _call("gradient", self.grad, param)
            self._counts["gradient_count"] += 1
            return value
        from ..utils import approx_grad, like, to_numpy

        grad, evals = _call(
            "gradient",
            approx_grad,
            lambda z: self.fun(like(z, param)),
            to_numpy(param),
            1e-6,
            True,
        )
        self._counts["cost_count"] += int(evals)
        return like(grad, param)

    def hessian(self, param: Any) -> Any:
        if self.hess is not None:
            value = _call("hessian", self.hess, param)
            self._counts["hessian_count"] += 1
            return value
        from ..utils import approx_hessian, like, to_numpy

        hess, evals = _call(
            "hessian",
            approx_hessian,
            lambda z: self.fun(like(z, param)),
            to_numpy(param),
            1e-4,
            True,
        )
        self._counts["cost_count"] += int(evals)
        return like(hess, param)

    def constraint(self, param: Any) -> Any:
        if self.constraint_fun is None:
            raise NotImplementedError("Problem has no constraint function.")
        value = _call("constraint", self.constraint_fun, param)
        self._counts["constraint_count"] += 1
        return value

    def anneal(self, param: Any, temperature: float, rng: np.random.Generator) -> Any:
        if self.anneal_fun is None:
            raise NotImplementedError("Problem has no anneal function.")
        value = _call("anneal", self.anneal_fun, param, temperature, rng)
        self._counts["anneal_count"] += 1
        return value

    def bulk_cost(self, params: Sequence[Any]) -> List[float]:
        """Evaluate the cost of many candidates.

        With ``workers > 1`` the evaluations fan out over a thread pool and
        are joined before returning. Counters are updated once, after the
        join, on the calling thread. Results keep the input order.
        """
        if self.workers is None or self.workers == 1 or len(params) < 2:
            values = [_call("cost", self.fun, p) for p in params]
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                futures = [pool.submit(_call, "cost", self.fun, p) for p in params]
                values = [f.result() for f in futures]
        self._counts["cost_count"] += len(params)
        return [_as_cost(v) for v in values]

    def child(self) -> "Problem":
        """Return a view over the same callables with fresh counters."""
        return Problem(
            fun=self.fun,
            grad=self.grad,
            hess=self.hess,
            constraint_fun=self.constraint_fun,
            anneal_fun=self.anneal_fun,
            dim=self.dim,
            workers=self.workers,
        )

    def consume(self, child: "Problem") -> None:
        """Add a child's counters to this problem's counters."""
        for name, value in child._counts.items():
            self._counts[name] = self._counts.get(name, 0) + value


__all__ = [
    "Anneal",
    "COUNTERS",
    "Constraint",
    "Gradient",
    "Hessian",
    "Objective",
    "Problem",
]
