"""Run configuration for the executor."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Mapping, Optional


@dataclass(frozen=True)
class ExecutorConfig:
    """
    Generic limits and switches for a single run.

    Args:
        max_iters: Stop after this many iterations. None means unbounded.
        max_evals: Mapping from a counter name (``"cost_count"``,
            ``"gradient_count"``, ``"hessian_count"``, ...) to the maximum
            number of evaluations allowed.
        timeout: Wall-clock budget in seconds, including observer and
            checkpoint work.
        target_cost: Stop once the best cost is at or below this value.
        cost_tolerance: Stop once two consecutive costs differ by at most
            this much.
        max_no_improvement: Stop after this many iterations without a new
            best.
        timer: Track elapsed time on the state. Required for ``timeout``.
        ctrlc: Map SIGINT to the executor's interrupt flag during ``run()``.
        run_id: Identifier used in log lines and checkpoint file names.
        nested: The run is a child of another executor, which reports its
            failures; the child then logs them at DEBUG.
    """

    max_iters: Optional[int] = None
    max_evals: Mapping[str, int] = field(default_factory=dict)
    timeout: Optional[float] = None
    target_cost: float = -math.inf
    cost_tolerance: Optional[float] = None
    max_no_improvement: Optional[int] = None
    timer: bool = True
    ctrlc: bool = False
    run_id: str = "run"
    nested: bool = False

    def __post_init__(self) -> None:
        if self.max_iters is not None and self.max_iters < 0:
            raise ValueError("max_iters must be non-negative.")
        for name, limit in self.max_evals.items():
            if limit < 0:
                raise ValueError(f"max_evals[{name!r}] must be non-negative.")
        if self.timeout is not None:
            if self.timeout <= 0:
                raise ValueError("timeout must be positive.")
            if not self.timer:
                raise ValueError("timeout requires timer=True.")
        if self.cost_tolerance is not None and self.cost_tolerance < 0:
            raise ValueError("cost_tolerance must be non-negative.")
        if self.max_no_improvement is not None and self.max_no_improvement <= 0:
            raise ValueError("max_no_improvement must be positive.")
        if not self.run_id:
            raise ValueError("run_id must be a non-empty string.")
        object.__setattr__(self, "max_evals", dict(self.max_evals))


__all__ = ["ExecutorConfig"]
