"""Optimization algorithms implemented as executor-driven solvers.

Example
-------
>>> import numpy as np
>>> from stepwise import Executor, ExecutorConfig, IterState, Problem
>>> from stepwise.solvers import BFGS
>>> def rosen(x):
...     return (1 - x[0])**2 + 100 * (x[1] - x[0]**2)**2
>>> def rosen_grad(x):
...     return np.array([
...         -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
...         200 * (x[1] - x[0] ** 2),
...     ])
>>> problem = Problem(fun=rosen, grad=rosen_grad, dim=2)
>>> result = Executor(problem, BFGS(), IterState(param=np.array([-1.2, 1.0])),
...                   config=ExecutorConfig(max_iters=300)).run()
>>> round(result.best_cost, 6)
0.0
"""

from .conjugate_gradient import BETA_METHODS, NonlinearConjugateGradient
from .gradient import ATOL, RTOL, GradientDescent, SteepestDescent, check_convergence
from .line_search import (
    ArmijoCondition,
    BacktrackingLineSearch,
    GoldsteinCondition,
    LineSearch,
    LineSearchCondition,
    LineSearchResult,
    StrongWolfeCondition,
    StrongWolfeLineSearch,
    WolfeCondition,
    run_line_search,
)
from .neldermead import NelderMead
from .newton import Newton, regularized_solve
from .one_dimensional import BrentRoot, GoldenSectionSearch
from .particle_swarm import ParticleSwarm
from .quasi_newton import BFGS, LBFGS
from .simulated_annealing import SCHEDULES, SimulatedAnnealing
from .trust_region import TrustRegion, cauchy_point, dogleg_step

__all__ = [
    "ATOL",
    "ArmijoCondition",
    "BETA_METHODS",
    "BFGS",
    "BacktrackingLineSearch",
    "BrentRoot",
    "GoldenSectionSearch",
    "GoldsteinCondition",
    "GradientDescent",
    "LBFGS",
    "LineSearch",
    "LineSearchCondition",
    "LineSearchResult",
    "NelderMead",
    "Newton",
    "NonlinearConjugateGradient",
    "ParticleSwarm",
    "RTOL",
    "SCHEDULES",
    "SimulatedAnnealing",
    "SteepestDescent",
    "StrongWolfeCondition",
    "StrongWolfeLineSearch",
    "TrustRegion",
    "WolfeCondition",
    "cauchy_point",
    "check_convergence",
    "dogleg_step",
    "regularized_solve",
    "run_line_search",
]
