"""PyTorch implementation of the math capability."""

from __future__ import annotations

from typing import Any, Sequence, Union

import numpy as np
import torch

from ..core.errors import NumericalError


def _resolve_device(name: Union[str, torch.device]) -> torch.device:
    """
    Map a device name to a torch device.

    Supported names:
        - "cpu"
        - "cuda" (only if CUDA is available)

    Raises:
        RuntimeError: If "cuda" is requested but CUDA is not available.
        ValueError: If the device name is not supported.
    """
    if isinstance(name, torch.device):
        return name
    if name == "cpu":
        return torch.device("cpu")
    elif name == "cuda":
        if not torch.cuda.is_available():
            raise RuntimeError(
                "CUDA device requested but torch.cuda.is_available() is False"
            )
        return torch.device("cuda")
    else:
        supported = ["cpu", "cuda"]
        raise ValueError(
            f"Unsupported device name: {name!r}. Supported devices: {supported}"
        )


class TorchBackend:
    """
    Backend over ``torch.Tensor``.

    All tensors are created on ``device`` with ``dtype``; float64 is the
    default so results match the NumPy backend to rounding.
    """

    name = "torch"

    def __init__(
        self,
        device: Union[str, torch.device] = "cpu",
        dtype: torch.dtype = torch.float64,
    ) -> None:
        self.device = _resolve_device(device)
        self.dtype = dtype

    def __repr__(self) -> str:
        return f"TorchBackend(device={self.device}, dtype={self.dtype})"

    def asarray(self, value: Any) -> torch.Tensor:
        if isinstance(value, torch.Tensor):
            return value.to(device=self.device, dtype=self.dtype)
        return torch.as_tensor(np.asarray(value), dtype=self.dtype, device=self.device)

    def copy(self, a: torch.Tensor) -> torch.Tensor:
        return a.detach().clone()

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
        return float(torch.dot(a.reshape(-1), b.reshape(-1)))

    def weighted_dot(self, a, w, b) -> float:
        return float(a @ (w @ b))

    def norm(self, a) -> float:
        return float(torch.linalg.norm(a))

    def zeros(self, shape: Union[int, Sequence[int]]) -> torch.Tensor:
        if isinstance(shape, int):
            shape = (shape,)
        return torch.zeros(tuple(shape), dtype=self.dtype, device=self.device)

    def zeros_like(self, a) -> torch.Tensor:
        return torch.zeros_like(a, dtype=self.dtype, device=self.device)

    def eye(self, n: int) -> torch.Tensor:
        return torch.eye(n, dtype=self.dtype, device=self.device)

    def inv(self, m) -> torch.Tensor:
        try:
            return torch.linalg.inv(m)
        except RuntimeError as exc:
            raise NumericalError(f"matrix inversion failed: {exc}") from exc

    def solve(self, m, b) -> torch.Tensor:
        try:
            return torch.linalg.solve(m, b)
        except RuntimeError as exc:
            raise NumericalError(f"linear solve failed: {exc}") from exc

    def transpose(self, m):
        return m.transpose(-2, -1)

    def conj(self, a):
        return a.conj()

    def minimum(self, a, b):
        return torch.minimum(a, b)

    def maximum(self, a, b):
        return torch.maximum(a, b)

    def outer(self, a, b):
        return torch.outer(a, b)

    def matvec(self, m, v):
        return m @ v

    def isfinite(self, a) -> bool:
        return bool(torch.all(torch.isfinite(a)))

    def random_uniform(self, low, high, rng: np.random.Generator) -> torch.Tensor:
        if isinstance(low, torch.Tensor):
            low = low.detach().cpu().numpy()
        if isinstance(high, torch.Tensor):
            high = high.detach().cpu().numpy()
        sample = rng.uniform(np.asarray(low, dtype=float), np.asarray(high, dtype=float))
        return self.asarray(sample)


__all__ = ["TorchBackend"]
