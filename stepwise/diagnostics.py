"""Debug mode management and state sanity checks for stepwise."""

from __future__ import annotations

import math
import os
from contextlib import contextmanager
from typing import Any, Iterator

import numpy as np
import torch

from .core.errors import NumericalError

_DEBUG_ENV_VAR = "STEPWISE_DEBUG"
_debug_enabled: bool = os.getenv(_DEBUG_ENV_VAR, "0").lower() in (
    "1",
    "true",
    "yes",
    "on",
)


def is_debug_enabled() -> bool:
    """
    Return whether stepwise debug mode is currently enabled.

    Debug mode can be toggled via set_debug_enabled(...) or the
    STEPWISE_DEBUG environment variable. When enabled, the executor checks
    every parameter vector it sees for non-finite entries.

    Returns
    -------
    bool
        True if debug mode is enabled, False otherwise.
    """
    return _debug_enabled


def set_debug_enabled(enabled: bool) -> None:
    """
    Globally enable or disable stepwise debug mode.

    Parameters
    ----------
    enabled:
        Whether to enable debug mode.
    """
    global _debug_enabled
    _debug_enabled = bool(enabled)


@contextmanager
def debug_context(enabled: bool = True) -> Iterator[None]:
    """
    Context manager to temporarily enable or disable debug mode.

    Example
    -------
    >>> with debug_context(True):
    ...     # debug mode enabled inside block
    ...     pass
    """
    global _debug_enabled
    prev = _debug_enabled
    _debug_enabled = bool(enabled)
    try:
        yield
    finally:
        _debug_enabled = prev


def all_finite(value: Any) -> bool:
    """Return True if ``value`` (scalar, array or tensor) has no NaN/Inf."""
    if value is None:
        return True
    if isinstance(value, torch.Tensor):
        return bool(torch.all(torch.isfinite(value)))
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return bool(np.all(np.isfinite(np.asarray(value, dtype=float))))


def assert_finite(value: Any, what: str) -> None:
    """Raise :class:`NumericalError` if ``value`` contains NaN or Inf."""
    if not all_finite(value):
        raise NumericalError(f"{what} contains non-finite values.")


__all__ = [
    "all_finite",
    "assert_finite",
    "debug_context",
    "is_debug_enabled",
    "set_debug_enabled",
]
