"""Matplotlib sink plotting cost and best cost over iterations.

Matplotlib is an optional dependency; constructing a :class:`PlotObserver`
without it raises ``RuntimeError``.
"""

from __future__ import annotations

import math
from typing import List, Optional

# Type hints for matplotlib (optional dependency)
try:
    from matplotlib.backends.backend_agg import FigureCanvasAgg
    from matplotlib.figure import Figure
    HAS_MATPLOTLIB = True
except ImportError:
    HAS_MATPLOTLIB = False

from ..core.solver import KV
from .base import Observer, StateView


class PlotObserver(Observer):
    """
    Record ``(iteration, cost, best_cost)`` and render them at the end.

    Parameters
    ----------
    path:
        If given, the figure is written there on ``observe_final``.
    log_scale:
        Use a logarithmic y axis (non-positive costs are skipped).
    size:
        Figure size (width, height) in inches.

    Raises
    ------
    RuntimeError
        If matplotlib is not installed.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        log_scale: bool = False,
        size: tuple[float, float] = (6.0, 4.0),
    ) -> None:
        if not HAS_MATPLOTLIB:
            raise RuntimeError(
                "matplotlib required for plotting; install with pip install matplotlib"
            )
        self.path = path
        self.log_scale = log_scale
        self.size = size
        self.iterations: List[int] = []
        self.costs: List[float] = []
        self.best_costs: List[float] = []
        self.figure: Optional["Figure"] = None

    def _record(self, state: StateView) -> None:
        if state.cost is None:
            return
        if self.iterations and self.iterations[-1] == state.iteration:
            return
        self.iterations.append(state.iteration)
        self.costs.append(float(state.cost))
        self.best_costs.append(float(state.best_cost))

    def observe_init(self, name: str, state: StateView, kv: KV) -> None:
        self._record(state)

    def observe_iter(self, state: StateView, kv: KV) -> None:
        self._record(state)

    def observe_final(self, state: StateView, kv: KV) -> None:
        self._record(state)
        self.figure = self.render()
        if self.path is not None:
            self.figure.savefig(self.path)

    def render(self) -> "Figure":
        """Build the figure from the recorded series."""
        fig = Figure(figsize=self.size)
        FigureCanvasAgg(fig)
        ax = fig.add_subplot(1, 1, 1)
        iters, costs, bests = self.iterations, self.costs, self.best_costs
        if self.log_scale:
            keep = [i for i, c in enumerate(costs) if c > 0 and math.isfinite(c)]
            iters = [iters[i] for i in keep]
            costs = [costs[i] for i in keep]
            bests = [bests[i] for i in keep]
            ax.set_yscale("log")
        ax.plot(iters, costs, label="cost", linewidth=1.0)
        ax.plot(iters, bests, label="best cost", linestyle="--", linewidth=1.5)
        ax.set_xlabel("iteration", fontsize=10)
        ax.set_ylabel("cost", fontsize=10)
        ax.grid(True, alpha=0.3)
        ax.legend()
        fig.tight_layout()
        return fig


__all__ = ["HAS_MATPLOTLIB", "PlotObserver"]
