"""Observer interface, firing cadence and the ordered observer registry."""

from __future__ import annotations

import copy
import types
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

import numpy as np
import torch

from ..core.errors import InterruptRequested, ObserverError
from ..core.solver import KV
from ..logging import get_logger

logger = get_logger(__name__)

_READ_ONLY_METHODS = frozenset({"is_best", "get_param", "get_best_param"})


def _freeze(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        view = value.view()
        view.flags.writeable = False
        return view
    if isinstance(value, torch.Tensor):
        return value.detach().clone()
    if isinstance(value, dict):
        return types.MappingProxyType(dict(value))
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    if value is None or isinstance(value, (int, float, str, bool, tuple)):
        return value
    if hasattr(value, "__dataclass_fields__"):
        return copy.deepcopy(value)
    return value


class StateView:
    """
    Read-only proxy over a run state handed to observers.

    Attribute reads return non-writeable array views, detached tensor clones
    and read-only mappings. Attribute assignment raises ``AttributeError``,
    and only the read-only state methods can be called.
    """

    __slots__ = ("_state",)

    def __init__(self, state: Any) -> None:
        object.__setattr__(self, "_state", state)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        value = getattr(self._state, name)
        if callable(value) and not isinstance(value, (np.ndarray, torch.Tensor)):
            if name not in _READ_ONLY_METHODS:
                raise AttributeError(f"{name!r} is not available on a read-only state view")
            return lambda *args, **kwargs: _freeze(value(*args, **kwargs))
        return _freeze(value)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("state views are read-only")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("state views are read-only")

    @property
    def state_type(self) -> type:
        return type(self._state)

    def __repr__(self) -> str:
        return f"StateView({type(self._state).__name__}, iteration={self._state.iteration})"


class Observer:
    """
    Subscriber notified of run progress.

    All hooks default to no-ops; implementations override what they need.
    Raise :class:`~stepwise.core.errors.InterruptRequested` from a hook to
    ask the executor to stop after the current iteration.
    """

    def observe_init(self, name: str, state: StateView, kv: KV) -> None:
        """Called once after the solver's ``init``."""

    def observe_iter(self, state: StateView, kv: KV) -> None:
        """Called after iterations matching the observer's cadence."""

    def observe_final(self, state: StateView, kv: KV) -> None:
        """Called once when the run terminates or fails."""

    def close(self) -> None:
        """Release resources; called on every exit path of a run."""


@dataclass(frozen=True)
class ObserverMode:
    """
    Firing cadence of an observer.

    Use the constructors :meth:`always`, :meth:`every`, :meth:`final` and
    :meth:`never` rather than instantiating directly.
    """

    kind: str = "always"
    n: int = 1

    def __post_init__(self) -> None:
        if self.kind not in ("always", "every", "final", "never"):
            raise ValueError(f"Unknown observer mode {self.kind!r}.")
        if self.n < 1:
            raise ValueError("Observer cadence must be at least 1.")

    @classmethod
    def always(cls) -> "ObserverMode":
        return cls("always")

    @classmethod
    def every(cls, n: int) -> "ObserverMode":
        return cls("every", n)

    @classmethod
    def final(cls) -> "ObserverMode":
        return cls("final")

    @classmethod
    def never(cls) -> "ObserverMode":
        return cls("never")

    @property
    def active(self) -> bool:
        return self.kind != "never"

    @property
    def periodic(self) -> bool:
        """Whether init and iteration notifications are delivered (not final-only)."""
        return self.kind in ("always", "every")

    def fires_at(self, iteration: int) -> bool:
        """Whether a regular (non-final) iteration notification is due."""
        if self.kind == "always":
            return True
        if self.kind == "every":
            return iteration % self.n == 0
        return False


@dataclass
class _Entry:
    observer: Observer
    mode: ObserverMode
    mandatory: bool


class Observers:
    """
    Ordered registry of observers.

    Notifications go out in registration order. A failing optional observer
    is logged and recorded in :attr:`failures`; a failing mandatory observer
    raises :class:`~stepwise.core.errors.ObserverError`.
    """

    def __init__(self) -> None:
        self._entries: List[_Entry] = []
        self.failures: List[tuple[Observer, BaseException]] = []
        self.interrupt_requested = False

    def add(
        self,
        observer: Observer,
        mode: Optional[ObserverMode] = None,
        mandatory: bool = False,
    ) -> "Observers":
        self._entries.append(_Entry(observer, mode or ObserverMode.always(), mandatory))
        return self

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Observer]:
        return (entry.observer for entry in self._entries)

    def _dispatch(self, entry: _Entry, hook: str, *args: Any) -> None:
        try:
            getattr(entry.observer, hook)(*args)
        except InterruptRequested:
            self.interrupt_requested = True
        except Exception as exc:
            if entry.mandatory:
                raise ObserverError(
                    f"mandatory observer {type(entry.observer).__name__} failed in {hook}"
                ) from exc
            logger.warning(
                "observer %s failed in %s: %s", type(entry.observer).__name__, hook, exc
            )
            self.failures.append((entry.observer, exc))

    def observe_init(self, name: str, state: Any, kv: Optional[KV]) -> None:
        view = StateView(state)
        for entry in self._entries:
            if entry.mode.periodic:
                self._dispatch(entry, "observe_init", name, view, dict(kv or {}))

    def observe_iter(self, state: Any, kv: Optional[KV]) -> None:
        view = StateView(state)
        for entry in self._entries:
            if entry.mode.fires_at(state.iteration):
                self._dispatch(entry, "observe_iter", view, dict(kv or {}))

    def observe_final(self, state: Any, kv: Optional[KV]) -> None:
        view = StateView(state)
        for entry in self._entries:
            if entry.mode.active:
                self._dispatch(entry, "observe_final", view, dict(kv or {}))

    def close(self) -> None:
        for entry in self._entries:
            try:
                entry.observer.close()
            except Exception as exc:
                logger.warning(
                    "observer %s failed to close: %s", type(entry.observer).__name__, exc
                )
                self.failures.append((entry.observer, exc))


__all__ = ["Observer", "ObserverMode", "Observers", "StateView"]
