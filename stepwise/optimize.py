"""Function-call front-ends over the executor.

Example
-------
>>> import numpy as np
>>> from stepwise import Problem
>>> from stepwise.optimize import bfgs
>>> def rosen(x):
...     return (1 - x[0])**2 + 100 * (x[1] - x[0]**2)**2
>>> def rosen_grad(x):
...     return np.array([
...         -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
...         200 * (x[1] - x[0] ** 2),
...     ])
>>> problem = Problem(fun=rosen, grad=rosen_grad, dim=2)
>>> res = bfgs(problem, np.array([-1.2, 1.0]))
>>> round(res.fun, 6)
0.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional

import numpy as np

from .core.checkpoint import FileCheckpoint
from .core.config import ExecutorConfig
from .core.executor import Executor, RunResult
from .core.problem import Problem
from .core.solver import KV, Solver
from .core.state import IterState, PopulationState
from .core.termination import TerminationReason
from .observers.base import Observer, StateView
from .observers.history import ParamHistory
from .solvers import (
    BFGS,
    LBFGS,
    RTOL,
    BacktrackingLineSearch,
    GradientDescent,
    LineSearch,
    NelderMead,
    Newton,
    ParticleSwarm,
    SteepestDescent,
    TrustRegion,
)
from .solvers.neldermead import SD_TOLERANCE
from .utils import to_numpy

SUCCESS_REASONS = frozenset(
    {
        TerminationReason.SOLVER_REQUESTED_STOP,
        TerminationReason.TARGET_COST_REACHED,
        TerminationReason.TARGET_TOLERANCE_REACHED,
    }
)

Callback = Callable[[Any, float, Any], None]


@dataclass
class OptimizeResult:
    """Standard result object returned by all front-ends in this module."""

    x: Any
    fun: float
    nit: int
    success: bool
    message: str
    grad_norm: float
    nfev: int
    njev: int
    nhev: int
    history: List[Any] = field(default_factory=list)
    reason: Optional[TerminationReason] = None


class _CallbackObserver(Observer):
    """Call ``callback(x, fx, grad)`` after every iteration."""

    def __init__(self, callback: Callback) -> None:
        self.callback = callback

    def observe_iter(self, state: StateView, kv: KV) -> None:
        self.callback(state.get_param(), state.cost, getattr(state, "grad", None))


def _to_result(run: RunResult, history: Optional[ParamHistory]) -> OptimizeResult:
    state = run.state
    reason = run.termination_reason
    grad = getattr(state, "grad", None)
    grad_norm = float(np.linalg.norm(to_numpy(grad))) if grad is not None else float("nan")
    if run.error is not None:
        message = str(run.error)
    else:
        message = state.termination_status.detail or (reason.text if reason else "")
    counts = state.counts
    return OptimizeResult(
        x=run.best_param,
        fun=float(run.best_cost),
        nit=state.iteration,
        success=run.succeeded and reason in SUCCESS_REASONS,
        message=message,
        grad_norm=grad_norm,
        nfev=counts.get("cost_count", 0),
        njev=counts.get("gradient_count", 0),
        nhev=counts.get("hessian_count", 0),
        history=list(history.params) if history is not None else [],
        reason=reason,
    )


def minimize(
    problem: Problem,
    solver: Solver,
    x0: Any = None,
    state: Any = None,
    maxiter: Optional[int] = None,
    history: bool = False,
    callback: Optional[Callback] = None,
    observers: Iterable[Observer] = (),
    checkpoint: Optional[FileCheckpoint] = None,
    **config: Any,
) -> OptimizeResult:
    """
    Run ``solver`` on ``problem`` and summarize the outcome.

    Args:
        problem: Problem to minimize.
        solver: Any solver instance.
        x0: Starting point; ignored when ``state`` is given.
        state: Explicit initial state (e.g. a :class:`PopulationState`).
        maxiter: Iteration limit.
        history: Record the parameter after every iteration.
        callback: ``callback(x, fx, grad)`` after every iteration.
        observers: Additional observers, fired every iteration.
        checkpoint: Optional checkpoint manager.
        **config: Further :class:`ExecutorConfig` fields.
    """
    if state is None:
        state = IterState(param=x0)
    executor = Executor(problem, solver, state, config=ExecutorConfig(max_iters=maxiter, **config))
    recorder = ParamHistory() if history else None
    if recorder is not None:
        executor.add_observer(recorder)
    if callback is not None:
        executor.add_observer(_CallbackObserver(callback), mandatory=True)
    for observer in observers:
        executor.add_observer(observer)
    if checkpoint is not None:
        executor.checkpointing(checkpoint)
    return _to_result(executor.run(), recorder)


def gradient_descent(
    problem: Problem,
    x0: np.ndarray,
    lr: float = 1e-2,
    maxiter: int = 10_000,
    tol: float = RTOL,
    momentum: bool = False,
    beta: float = 0.9,
    nesterov: bool = False,
    callback: Optional[Callback] = None,
    history: bool = False,
) -> OptimizeResult:
    """Classic gradient descent with optional momentum and Nesterov update."""
    solver = GradientDescent(
        step_size=lr, momentum=momentum, beta=beta, nesterov=nesterov, tol=tol
    )
    return minimize(problem, solver, x0, maxiter=maxiter, history=history, callback=callback)


def steepest_descent(
    problem: Problem,
    x0: np.ndarray,
    maxiter: int = 1000,
    tol: float = RTOL,
    line_search: Optional[LineSearch] = None,
    history: bool = False,
) -> OptimizeResult:
    """Steepest descent with a backtracking Armijo line search by default."""
    solver = SteepestDescent(line_search=line_search, tol=tol)
    return minimize(problem, solver, x0, maxiter=maxiter, history=history)


def bfgs(
    problem: Problem,
    x0: np.ndarray,
    maxiter: int = 1000,
    tol: float = RTOL,
    line_search: Optional[LineSearch] = None,
    history: bool = False,
) -> OptimizeResult:
    """Full-memory BFGS with strong Wolfe line search."""
    return minimize(
        problem, BFGS(line_search=line_search, tol=tol), x0, maxiter=maxiter, history=history
    )


def lbfgs(
    problem: Problem,
    x0: np.ndarray,
    m: int = 10,
    maxiter: int = 1000,
    tol: float = RTOL,
    line_search: Optional[LineSearch] = None,
    history: bool = False,
) -> OptimizeResult:
    """Limited-memory BFGS using two-loop recursion."""
    return minimize(
        problem, LBFGS(m=m, line_search=line_search, tol=tol), x0, maxiter=maxiter, history=history
    )


def newton_method(
    problem: Problem,
    x0: np.ndarray,
    maxiter: int = 100,
    tol: float = RTOL,
    use_line_search: bool = False,
    line_search: Optional[LineSearch] = None,
    lambda_reg: float = 0.0,
    history: bool = False,
) -> OptimizeResult:
    """Newton's method with optional line search and damping."""
    if use_line_search and line_search is None:
        line_search = BacktrackingLineSearch()
    solver = Newton(
        line_search=line_search if use_line_search else None,
        lambda_reg=lambda_reg,
        tol=tol,
    )
    return minimize(problem, solver, x0, maxiter=maxiter, history=history)


def trust_region(
    problem: Problem,
    x0: np.ndarray,
    delta0: float = 1.0,
    max_delta: float = 100.0,
    eta: float = 0.15,
    maxiter: int = 200,
    tol: float = RTOL,
    subproblem: str = "dogleg",
    history: bool = False,
) -> OptimizeResult:
    """Trust-region solver (dogleg by default)."""
    solver = TrustRegion(
        radius=delta0, max_radius=max_delta, eta=eta, subproblem=subproblem, tol=tol
    )
    return minimize(problem, solver, x0, maxiter=maxiter, history=history)


def nelder_mead(
    problem: Problem,
    x0: np.ndarray,
    maxiter: int = 1000,
    sd_tolerance: float = SD_TOLERANCE,
    simplex: Optional[List[np.ndarray]] = None,
    history: bool = False,
) -> OptimizeResult:
    """Derivative-free Nelder-Mead simplex."""
    solver = NelderMead(simplex=simplex, sd_tolerance=sd_tolerance)
    return minimize(problem, solver, x0, maxiter=maxiter, history=history)


def particle_swarm(
    problem: Problem,
    bounds: tuple,
    num_particles: int = 40,
    maxiter: int = 100,
    seed: Optional[int] = None,
    history: bool = False,
    **config: Any,
) -> OptimizeResult:
    """Particle swarm optimization inside ``bounds``."""
    solver = ParticleSwarm(bounds, num_particles=num_particles, seed=seed)
    return minimize(
        problem, solver, state=PopulationState(), maxiter=maxiter, history=history, **config
    )


__all__ = [
    "OptimizeResult",
    "SUCCESS_REASONS",
    "bfgs",
    "gradient_descent",
    "lbfgs",
    "minimize",
    "nelder_mead",
    "newton_method",
    "particle_swarm",
    "steepest_descent",
    "trust_region",
]
