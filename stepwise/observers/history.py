"""Observer recording parameter snapshots."""

from __future__ import annotations

from typing import Any, List

from ..core.solver import KV
from .base import Observer, StateView


def _copy(value: Any) -> Any:
    if hasattr(value, "clone"):
        return value.clone()
    if hasattr(value, "copy"):
        return value.copy()
    return value


class ParamHistory(Observer):
    """Keep a copy of ``param`` for every notification (init, iterations, final)."""

    def __init__(self) -> None:
        self.params: List[Any] = []
        self.iterations: List[int] = []

    def _record(self, state: StateView) -> None:
        param = state.get_param()
        if param is None:
            return
        if self.iterations and self.iterations[-1] == state.iteration:
            return
        self.iterations.append(state.iteration)
        self.params.append(_copy(param))

    def observe_init(self, name: str, state: StateView, kv: KV) -> None:
        self._record(state)

    def observe_iter(self, state: StateView, kv: KV) -> None:
        self._record(state)

    def observe_final(self, state: StateView, kv: KV) -> None:
        self._record(state)


__all__ = ["ParamHistory"]
