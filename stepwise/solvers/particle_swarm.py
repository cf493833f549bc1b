"""Particle swarm optimization over a box."""

from __future__ import annotations

import math as _math
from typing import Any, List, Optional

import numpy as np

from ..core.problem import Problem
from ..core.solver import Solver, StepResult
from ..core.state import Particle, PopulationState
from ..math import NUMPY, MathBackend


class ParticleSwarm(Solver):
    """
    Canonical particle swarm optimization.

    Works on a :class:`PopulationState`. Positions are kept inside
    ``[lower, upper]``; each iteration updates every particle and evaluates
    the whole swarm with :meth:`Problem.bulk_cost`.

    Args:
        bounds: ``(lower, upper)`` arrays of the search box.
        num_particles: Swarm size.
        inertia: Velocity inertia weight.
        cognitive: Attraction to the particle's own best.
        social: Attraction to the swarm's best.
        seed: Seed for the solver's own ``numpy.random.Generator``. The
            generator is part of the solver, so a checkpoint captures it.
        math: Vector backend.
    """

    name = "Particle swarm"

    def __init__(
        self,
        bounds: tuple,
        num_particles: int = 40,
        inertia: float = 1.0 / (2.0 * _math.log(2.0)),
        cognitive: float = 0.5 + _math.log(2.0),
        social: float = 0.5 + _math.log(2.0),
        seed: Optional[int] = None,
        math: MathBackend = NUMPY,
    ) -> None:
        if num_particles < 1:
            raise ValueError("num_particles must be at least 1.")
        lower, upper = bounds
        self.math = math
        self.lower = math.asarray(lower)
        self.upper = math.asarray(upper)
        if self.lower.shape != self.upper.shape:
            raise ValueError("Lower and upper bounds must have the same shape.")
        if not bool((self.lower < self.upper).all()):
            raise ValueError("Each lower bound must be strictly below its upper bound.")
        self.num_particles = num_particles
        self.inertia = inertia
        self.cognitive = cognitive
        self.social = social
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def __repr__(self) -> str:
        return f"ParticleSwarm(num_particles={self.num_particles}, seed={self.seed})"

    def _clamp(self, x: Any) -> Any:
        return self.math.minimum(self.math.maximum(x, self.lower), self.upper)

    def init(self, problem: Problem, state: PopulationState) -> StepResult:
        m = self.math
        span = m.sub(self.upper, self.lower)
        if state.population:
            positions = [m.asarray(p.position) for p in state.population]
        else:
            positions = [
                m.random_uniform(self.lower, self.upper, self.rng)
                for _ in range(self.num_particles)
            ]
        velocities = [
            m.random_uniform(m.mul(span, -1.0), span, self.rng) for _ in positions
        ]
        costs = problem.bulk_cost(positions)
        population = [
            Particle(
                position=x,
                velocity=v,
                cost=c,
                best_position=m.copy(x),
                best_cost=c,
            )
            for x, v, c in zip(positions, velocities, costs)
        ]
        state.set_population(population)
        return state, {"particles": len(population)}

    def next_iter(self, problem: Problem, state: PopulationState) -> StepResult:
        m = self.math
        swarm_best = state.get_best_param()
        ones = m.add(m.zeros_like(self.lower), 1.0)
        zeros = m.zeros_like(self.lower)
        positions: List[Any] = []
        velocities: List[Any] = []
        for particle in state.population:
            r1 = m.random_uniform(zeros, ones, self.rng)
            r2 = m.random_uniform(zeros, ones, self.rng)
            cognitive = m.mul(r1, m.sub(particle.best_position, particle.position))
            social = m.mul(r2, m.sub(swarm_best, particle.position))
            velocity = m.scaled_add(
                m.scaled_add(m.mul(particle.velocity, self.inertia), self.cognitive, cognitive),
                self.social,
                social,
            )
            velocities.append(velocity)
            positions.append(self._clamp(m.add(particle.position, velocity)))
        costs = problem.bulk_cost(positions)
        population = []
        improved = 0
        for particle, x, v, c in zip(state.population, positions, velocities, costs):
            if c < particle.best_cost:
                best_position, best_cost = m.copy(x), c
                improved += 1
            else:
                best_position, best_cost = particle.best_position, particle.best_cost
            population.append(
                Particle(
                    position=x,
                    velocity=v,
                    cost=c,
                    best_position=best_position,
                    best_cost=best_cost,
                )
            )
        state.set_population(population)
        return state, {"improved_particles": improved}


__all__ = ["ParticleSwarm"]
