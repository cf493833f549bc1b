"""Progress observers and the observer registry."""

from .base import Observer, ObserverMode, Observers, StateView
from .history import ParamHistory
from .logger import DEFAULT_DATA, LogObserver, StateData
from .plot import HAS_MATPLOTLIB, PlotObserver

__all__ = [
    "DEFAULT_DATA",
    "HAS_MATPLOTLIB",
    "LogObserver",
    "Observer",
    "ObserverMode",
    "Observers",
    "ParamHistory",
    "PlotObserver",
    "StateData",
    "StateView",
]
