"""Dense NumPy implementation of the math capability."""

from __future__ import annotations

from typing import Any, Sequence, Union

import numpy as np

from ..core.errors import NumericalError


class NumpyBackend:
    """Backend over ``numpy.ndarray`` with float64 defaults."""

    name = "numpy"

    def asarray(self, value: Any) -> np.ndarray:
        return np.asarray(value, dtype=float)

    def copy(self, a: np.ndarray) -> np.ndarray:
        return np.array(a, dtype=float, copy=True)

    def add(self, a, b):
        return a + b

    def sub(self, a, b):
        return a - b

    def mul(self, a, b):
        return a * b

    def div(self, a, b):
        return a / b

    def scaled_add(self, a, alpha, b):
        return a + alpha * b

    def scaled_sub(self, a, alpha, b):
        return a - alpha * b

    def dot(self, a, b) -> float:
        return float(np.dot(a, b))

    def weighted_dot(self, a, w, b) -> float:
        return float(a @ (w @ b))

    def norm(self, a) -> float:
        return float(np.linalg.norm(a))

    def zeros(self, shape: Union[int, Sequence[int]]) -> np.ndarray:
        return np.zeros(shape, dtype=float)

    def zeros_like(self, a) -> np.ndarray:
        return np.zeros_like(a, dtype=float)

    def eye(self, n: int) -> np.ndarray:
        return np.eye(n)

    def inv(self, m) -> np.ndarray:
        try:
            return np.linalg.inv(m)
        except np.linalg.LinAlgError as exc:
            raise NumericalError(f"matrix inversion failed: {exc}") from exc

    def solve(self, m, b) -> np.ndarray:
        try:
            return np.linalg.solve(m, b)
        except np.linalg.LinAlgError as exc:
            raise NumericalError(f"linear solve failed: {exc}") from exc

    def transpose(self, m):
        return m.T

    def conj(self, a):
        return np.conj(a)

    def minimum(self, a, b):
        return np.minimum(a, b)

    def maximum(self, a, b):
        return np.maximum(a, b)

    def outer(self, a, b):
        return np.outer(a, b)

    def matvec(self, m, v):
        return m @ v

    def isfinite(self, a) -> bool:
        return bool(np.all(np.isfinite(a)))

    def random_uniform(self, low, high, rng: np.random.Generator) -> np.ndarray:
        low = np.asarray(low, dtype=float)
        high = np.asarray(high, dtype=float)
        return rng.uniform(low, high)

    def __repr__(self) -> str:
        return "NumpyBackend()"


NUMPY = NumpyBackend()

__all__ = ["NUMPY", "NumpyBackend"]
