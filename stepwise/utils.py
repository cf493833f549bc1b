"""Finite differences, guarded linear solves and array conversion helpers.

Everything here works on float64 NumPy arrays; :func:`to_numpy` and
:func:`like` move values in and out of that representation so the same
routines serve torch-backed problems.
"""

from __future__ import annotations

from typing import Any, Callable

import numpy as np
import torch

from .core.errors import NumericalError

Array = np.ndarray
Objective = Callable[[Array], float]


def _unit(x: Array, i: int, eps: float) -> Array:
    step = np.zeros_like(x)
    step.flat[i] = eps
    return step


def approx_grad(
    fun: Objective, x: Array, eps: float = 1e-6, return_evals: bool = False
) -> Array | tuple[Array, int]:
    """
    Central-difference gradient of ``fun`` at ``x``.

    Costs ``2 n`` evaluations of ``fun``.

    Args:
        fun: Scalar objective.
        x: Point of evaluation.
        eps: Perturbation size.
        return_evals: Also return the number of ``fun`` calls made.
    """
    if eps <= 0:
        raise ValueError("eps must be positive")
    x = np.asarray(x, dtype=float)
    grad = np.empty_like(x)
    for i in range(x.size):
        step = _unit(x, i, eps)
        grad.flat[i] = (fun(x + step) - fun(x - step)) / (2.0 * eps)
    evals = 2 * x.size
    return (grad, evals) if return_evals else grad


def approx_hessian(
    fun: Objective, x: Array, eps: float = 1e-4, return_evals: bool = False
) -> Array | tuple[Array, int]:
    """
    Second-order central-difference Hessian of ``fun`` at ``x``.

    Uses one evaluation at ``x``, two per diagonal entry and four per
    off-diagonal pair, i.e. ``1 + 2 n + 2 n (n - 1)`` in total.
    """
    if eps <= 0:
        raise ValueError("eps must be positive")
    x = np.asarray(x, dtype=float)
    n = x.size
    hess = np.empty((n, n), dtype=float)
    fx = fun(x)
    evals = 1
    for i in range(n):
        ei = _unit(x, i, eps)
        hess[i, i] = (fun(x + ei) - 2 * fx + fun(x - ei)) / eps**2
        evals += 2
        for j in range(i + 1, n):
            ej = _unit(x, j, eps)
            value = (
                fun(x + ei + ej) - fun(x + ei - ej) - fun(x - ei + ej) + fun(x - ei - ej)
            ) / (4 * eps**2)
            evals += 4
            hess[i, j] = hess[j, i] = value
    return (hess, evals) if return_evals else hess


def safe_solve(mat: Array, vec: Array, reg: float = 1e-12) -> Array:
    """
    Solve ``mat @ x = vec``, retrying once with a ridge of size ``reg``.

    Raises:
        NumericalError: The system stays singular after regularization.
    """
    try:
        return np.linalg.solve(mat, vec)
    except np.linalg.LinAlgError:
        ridge = reg * np.eye(mat.shape[0], dtype=mat.dtype)
        try:
            return np.linalg.solve(mat + ridge, vec)
        except np.linalg.LinAlgError as exc:
            raise NumericalError(f"singular system even with ridge {reg}") from exc


def to_numpy(value: Any) -> np.ndarray:
    """Return ``value`` as a float64 NumPy array (tensors are copied to host)."""
    if isinstance(value, torch.Tensor):
        return value.detach().cpu().numpy().astype(float)
    return np.asarray(value, dtype=float)


def like(value: np.ndarray, reference: Any) -> Any:
    """Convert a NumPy result back to the array type of ``reference``."""
    if isinstance(reference, torch.Tensor):
        return torch.as_tensor(value, dtype=reference.dtype, device=reference.device)
    return value


__all__ = [
    "Array",
    "Objective",
    "approx_grad",
    "approx_hessian",
    "like",
    "safe_solve",
    "to_numpy",
]
