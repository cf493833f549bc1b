"""Math capability backends.

Solvers perform their vector and matrix work through a :class:`MathBackend`
so the same update rule runs on NumPy arrays or PyTorch tensors.
"""

from __future__ import annotations

from .base import MathBackend, Scalar
from .numpy_backend import NUMPY, NumpyBackend
from .torch_backend import TorchBackend


def get_backend(name: str, **kwargs) -> MathBackend:
    """
    Return a backend by name.

    Args:
        name: ``"numpy"`` or ``"torch"``.
        **kwargs: Passed to the backend constructor (``device``, ``dtype``
            for torch).

    Raises:
        ValueError: If the name is not supported.
    """
    name_lower = name.lower()
    if name_lower == "numpy":
        return NUMPY
    elif name_lower == "torch":
        return TorchBackend(**kwargs)
    supported = ["numpy", "torch"]
    raise ValueError(f"Unsupported backend '{name}'. Supported backends: {supported}")


__all__ = [
    "MathBackend",
    "NUMPY",
    "NumpyBackend",
    "Scalar",
    "TorchBackend",
    "get_backend",
]
