"""The vector/matrix capability solvers are written against."""

from __future__ import annotations

from typing import Any, Protocol, Sequence, Union, runtime_checkable

import numpy as np

Scalar = Union[int, float]


@runtime_checkable
class MathBackend(Protocol):
    """
    Fixed operation set every solver uses for its linear algebra.

    Arrays are whatever the backend natively handles (``numpy.ndarray``,
    ``torch.Tensor``). Scalars returned by reductions are Python floats.
    Random sampling always draws from a ``numpy.random.Generator`` owned by
    the caller, so runs stay reproducible regardless of the backend.
    """

    name: str

    def asarray(self, value: Any) -> Any: ...

    def copy(self, a: Any) -> Any: ...

    def add(self, a: Any, b: Any) -> Any: ...

    def sub(self, a: Any, b: Any) -> Any: ...

    def mul(self, a: Any, b: Any) -> Any: ...

    def div(self, a: Any, b: Any) -> Any: ...

    def scaled_add(self, a: Any, alpha: Scalar, b: Any) -> Any:
        """Return ``a + alpha * b``."""

    def scaled_sub(self, a: Any, alpha: Scalar, b: Any) -> Any:
        """Return ``a - alpha * b``."""

    def dot(self, a: Any, b: Any) -> float: ...

    def weighted_dot(self, a: Any, w: Any, b: Any) -> float:
        """Return ``a^T W b``."""

    def norm(self, a: Any) -> float: ...

    def zeros(self, shape: Union[int, Sequence[int]]) -> Any: ...

    def zeros_like(self, a: Any) -> Any: ...

    def eye(self, n: int) -> Any: ...

    def inv(self, m: Any) -> Any: ...

    def solve(self, m: Any, b: Any) -> Any: ...

    def transpose(self, m: Any) -> Any: ...

    def conj(self, a: Any) -> Any: ...

    def minimum(self, a: Any, b: Any) -> Any: ...

    def maximum(self, a: Any, b: Any) -> Any: ...

    def outer(self, a: Any, b: Any) -> Any: ...

    def matvec(self, m: Any, v: Any) -> Any: ...

    def isfinite(self, a: Any) -> bool: ...

    def random_uniform(
        self, low: Any, high: Any, rng: np.random.Generator
    ) -> Any: ...


__all__ = ["MathBackend", "Scalar"]
