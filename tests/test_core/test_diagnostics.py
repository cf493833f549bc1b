import numpy as np
import pytest
import torch

from stepwise import (
    Executor,
    ExecutorConfig,
    IterState,
    NumericalError,
    Problem,
    Solver,
    debug_context,
    is_debug_enabled,
    set_debug_enabled,
)
from stepwise.diagnostics import all_finite, assert_finite


class Overflow(Solver):
    """Writes an infinite entry into the parameter on the second step."""

    def init(self, problem, state):
        state.cost = problem.cost(state.param)
        return state, None

    def next_iter(self, problem, state):
        x = state.param.copy()
        if state.iteration == 1:
            x[0] = np.inf
        return state.move_to(x, 1.0), None


def test_debug_context_restores_previous_value():
    set_debug_enabled(False)
    with debug_context(True):
        assert is_debug_enabled()
        with debug_context(False):
            assert not is_debug_enabled()
        assert is_debug_enabled()
    assert not is_debug_enabled()


def test_all_finite_on_supported_types():
    assert all_finite(None)
    assert all_finite(1.0)
    assert not all_finite(float("nan"))
    assert all_finite(np.ones(3))
    assert not all_finite(np.array([1.0, np.inf]))
    assert not all_finite(torch.tensor([float("nan")]))
    with pytest.raises(NumericalError, match="gradient"):
        assert_finite(np.array([np.nan]), "gradient")


def test_debug_mode_fails_on_non_finite_parameters():
    problem = Problem(fun=lambda x: 1.0)

    def run():
        return Executor(
            problem, Overflow(), IterState(param=np.zeros(2)), config=ExecutorConfig(max_iters=5)
        ).run()

    with debug_context(False):
        assert run().succeeded
    with debug_context(True):
        result = run()
    assert not result.succeeded
    assert isinstance(result.error.cause, NumericalError)
    assert result.error.iteration == 2
