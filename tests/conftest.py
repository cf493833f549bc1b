"""Pytest configuration and shared fixtures for stepwise tests.

This module provides:
- Deterministic RNG fixtures for numpy and torch
- Common test problems (quadratic, Rosenbrock)
- A non-interactive matplotlib backend for plotting tests
"""

import os

import numpy as np
import pytest
import torch

os.environ.setdefault("MPLBACKEND", "Agg")


@pytest.fixture(scope="function")
def rng() -> np.random.Generator:
    """Provide a deterministic numpy RNG for tests.

    Uses seed from TEST_RNG_SEED environment variable (default: 0).
    This ensures tests are reproducible while allowing override for debugging.

    Returns:
        A seeded numpy.random.Generator instance.
    """
    seed = int(os.environ.get("TEST_RNG_SEED", "0"))
    return np.random.default_rng(seed)


@pytest.fixture(scope="function")
def torch_rng() -> torch.Generator:
    """Provide a deterministic CPU torch RNG for tests."""
    seed = int(os.environ.get("TEST_RNG_SEED", "0"))
    generator = torch.Generator(device="cpu")
    generator.manual_seed(seed)
    return generator


@pytest.fixture(scope="function", autouse=True)
def set_random_seeds(rng: np.random.Generator, torch_rng: torch.Generator) -> None:
    """Auto-use fixture to set global random seeds for reproducibility."""
    np.random.seed(int(os.environ.get("TEST_RNG_SEED", "0")))
    torch.manual_seed(int(os.environ.get("TEST_RNG_SEED", "0")))


def rosenbrock(x) -> float:
    return float((1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2)


def rosenbrock_grad(x):
    return np.array(
        [
            -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
            200 * (x[1] - x[0] ** 2),
        ]
    )


@pytest.fixture
def rosen_problem():
    """Rosenbrock problem with analytic gradient."""
    from stepwise import Problem

    return Problem(fun=rosenbrock, grad=rosenbrock_grad, dim=2)


@pytest.fixture
def shifted_quadratic():
    """``(x - 3)^2`` in one dimension with analytic gradient."""
    from stepwise import Problem

    return Problem(fun=lambda x: float((x[0] - 3.0) ** 2), grad=lambda x: 2 * (x - 3.0), dim=1)
