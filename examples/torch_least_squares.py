"""Least squares on torch tensors with a derivative-free and a gradient solver.

The same problem is solved by Nelder-Mead and by L-BFGS through the torch
math backend; the gradient comes from autograd.
"""

from __future__ import annotations

import torch

from stepwise import Executor, ExecutorConfig, IterState, Problem, TorchBackend
from stepwise.solvers import LBFGS, NelderMead


def main() -> None:
    """Fit a line to noisy samples twice."""
    generator = torch.Generator().manual_seed(0)
    t = torch.linspace(0.0, 1.0, 50, dtype=torch.float64)
    y = 2.0 * t - 0.5 + 0.01 * torch.randn(50, generator=generator, dtype=torch.float64)

    def residual_cost(x: torch.Tensor) -> float:
        return float(((x[0] * t + x[1] - y) ** 2).sum())

    def residual_grad(x: torch.Tensor) -> torch.Tensor:
        x = x.detach().clone().requires_grad_(True)
        ((x[0] * t + x[1] - y) ** 2).sum().backward()
        return x.grad

    backend = TorchBackend()
    x0 = torch.zeros(2, dtype=torch.float64)

    for solver in (NelderMead(sd_tolerance=1e-14, math=backend), LBFGS(math=backend)):
        result = Executor(
            Problem(fun=residual_cost, grad=residual_grad, dim=2),
            solver,
            IterState(param=x0),
            config=ExecutorConfig(max_iters=500),
        ).run()
        slope, intercept = result.best_param.tolist()
        print(
            f"{solver.name}: slope={slope:.4f} intercept={intercept:.4f} "
            f"cost={result.best_cost:.3e} iterations={result.iterations}"
        )

    print("Fitted line recovered")


if __name__ == "__main__":
    main()
