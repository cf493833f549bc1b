"""BFGS on the Rosenbrock function with progress logging and checkpoints.

The run is abandoned after ten steps, then resumed from the newest checkpoint and
finished. The resumed run ends where an uninterrupted run would have.
"""

from __future__ import annotations

import sys
import tempfile

import numpy as np

from stepwise import (
    CheckpointFrequency,
    Executor,
    ExecutorConfig,
    FileCheckpoint,
    IterState,
    LogObserver,
    ObserverMode,
    Problem,
)
from stepwise.solvers import BFGS

def rosenbrock(x: np.ndarray) -> float:
    return float((1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2)

def rosenbrock_grad(x: np.ndarray) -> np.ndarray:
    return np.array(
        [
            -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
            200 * (x[1] - x[0] ** 2),
        ]
    )

def main() -> None:
    """Run BFGS in two halves joined by a checkpoint."""
    x0 = np.array([-1.2, 1.0])

    with tempfile.TemporaryDirectory() as directory:
        checkpoint = FileCheckpoint(
            directory, run_id="rosenbrock", frequency=CheckpointFrequency.every(5), keep_last=2
        )

        # First half: ten manual steps, then the executor is dropped
        first = (
            Executor(
                Problem(fun=rosenbrock, grad=rosenbrock_grad, dim=2),
                BFGS(),
                IterState(param=x0),
                config=ExecutorConfig(max_iters=200),
            )
            .add_observer(LogObserver.term(sys.stdout), ObserverMode.every(5))
            .checkpointing(checkpoint)
        )
        for _ in range(10):
            first.step()
        first.close()
        print(f"First half stopped at iteration {first.state.iteration}, cost {first.state.cost:.3e}")

        # Second half: pick up from the newest checkpoint
        resumed = Executor.resume(
            Problem(fun=rosenbrock, grad=rosenbrock_grad, dim=2),
            checkpoint,
            config=ExecutorConfig(max_iters=200),
        )
        resumed.add_observer(LogObserver.term(sys.stdout), ObserverMode.every(10))
        result = resumed.run()

    print(f"\nFinal best cost: {result.best_cost:.3e}")
    print(f"Final best param: {np.round(result.best_param, 6)}")
    print(f"Evaluations: {result.state.counts}")

if __name__ == "__main__":
    main()
