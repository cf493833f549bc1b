"""Progress loggers built on the ``logging`` module.

Two variants are provided: a human-readable terminal logger and a JSON-lines
file logger. Both write one record per notification containing the selected
:class:`StateData` fields followed by the solver's diagnostics.
"""

from __future__ import annotations

import itertools
import logging
import sys
from enum import Enum
from typing import IO, Any, Dict, List, Optional, Sequence

import numpy as np
import torch

from ..core.solver import KV
from ..logging import JsonFormatter
from .base import Observer, StateView

_instance_ids = itertools.count()


class StateData(Enum):
    """State values a :class:`LogObserver` can record."""

    ITER = "iter"
    COST = "cost"
    BEST_COST = "best_cost"
    PARAM = "param"
    BEST_PARAM = "best_param"
    FUNCTION_COUNTS = "counts"
    IS_BEST = "is_best"
    LAST_BEST_ITER = "last_best_iter"
    TIME = "time"
    TERMINATION_STATUS = "termination_status"


DEFAULT_DATA = (
    StateData.FUNCTION_COUNTS,
    StateData.BEST_COST,
    StateData.COST,
    StateData.ITER,
)


def _plain(value: Any) -> Any:
    if isinstance(value, torch.Tensor):
        return value.detach().cpu().tolist()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value


def _collect(state: StateView, data: Sequence[StateData]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for item in data:
        if item is StateData.ITER:
            fields["iter"] = state.iteration
        elif item is StateData.COST:
            fields["cost"] = state.cost
        elif item is StateData.BEST_COST:
            fields["best_cost"] = state.best_cost
        elif item is StateData.PARAM:
            fields["param"] = _plain(state.get_param())
        elif item is StateData.BEST_PARAM:
            fields["best_param"] = _plain(state.get_best_param())
        elif item is StateData.FUNCTION_COUNTS:
            fields.update(dict(state.counts))
        elif item is StateData.IS_BEST:
            fields["is_best"] = state.is_best()
        elif item is StateData.LAST_BEST_ITER:
            fields["last_best_iter"] = state.last_best_iter
        elif item is StateData.TIME:
            fields["time"] = state.elapsed_time
        elif item is StateData.TERMINATION_STATUS:
            fields["termination_status"] = str(state.termination_status)
    return fields


class _KeyValueFormatter(logging.Formatter):
    """Render ``message`` followed by ``key: value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        fields = getattr(record, "fields", None) or {}
        pairs = ", ".join(f"{k}: {v}" for k, v in fields.items())
        message = record.getMessage()
        if message and pairs:
            return f"{message} {pairs}"
        return message or pairs


class LogObserver(Observer):
    """
    Log progress through a dedicated ``logging.Logger``.

    Use :meth:`term` for a human-readable stream logger or :meth:`file` for a
    JSON-lines file logger. The handler is closed in :meth:`close`.

    Example:
        >>> from stepwise.observers import LogObserver, ObserverMode
        >>> executor.add_observer(LogObserver.term(), ObserverMode.every(10))
    """

    def __init__(
        self,
        handler: logging.Handler,
        data: Sequence[StateData] = DEFAULT_DATA,
    ) -> None:
        self.data: List[StateData] = list(data)
        self._handler = handler
        self._logger = logging.getLogger(f"stepwise.progress.{next(_instance_ids)}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self._logger.addHandler(handler)

    @classmethod
    def term(
        cls,
        stream: Optional[IO[str]] = None,
        data: Sequence[StateData] = DEFAULT_DATA,
    ) -> "LogObserver":
        """Human-readable lines on ``stream`` (default: stderr)."""
        handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
        handler.setFormatter(_KeyValueFormatter())
        return cls(handler, data)

    @classmethod
    def file(
        cls,
        path: str,
        truncate: bool = True,
        data: Sequence[StateData] = DEFAULT_DATA,
    ) -> "LogObserver":
        """JSON lines appended to (or truncating) ``path``."""
        handler = logging.FileHandler(path, mode="w" if truncate else "a", encoding="utf-8")
        handler.setFormatter(JsonFormatter())
        return cls(handler, data)

    def with_data(self, data: Sequence[StateData]) -> "LogObserver":
        """Select the logged state fields; order is kept, duplicates are not removed."""
        self.data = list(data)
        return self

    def _emit(self, message: str, fields: Dict[str, Any]) -> None:
        self._logger.info(message, extra={"fields": fields})

    def observe_init(self, name: str, state: StateView, kv: KV) -> None:
        fields = {k: _plain(v) for k, v in kv.items()}
        self._emit(name, fields)

    def observe_iter(self, state: StateView, kv: KV) -> None:
        fields = _collect(state, self.data)
        fields.update({k: _plain(v) for k, v in kv.items()})
        self._emit("", fields)

    def observe_final(self, state: StateView, kv: KV) -> None:
        fields = _collect(state, self.data)
        fields["termination_status"] = str(state.termination_status)
        fields.update({k: _plain(v) for k, v in kv.items()})
        self._emit("final", fields)

    def close(self) -> None:
        self._handler.flush()
        self._handler.close()
        self._logger.removeHandler(self._handler)


__all__ = ["DEFAULT_DATA", "LogObserver", "StateData"]
