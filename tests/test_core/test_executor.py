import signal
import time

import numpy as np
import pytest

from stepwise import (
    EvaluationError,
    Executor,
    ExecutorConfig,
    ExecutorPhase,
    FailurePhase,
    InterruptRequested,
    IterState,
    NumericalError,
    Observer,
    ObserverMode,
    Problem,
    Solver,
    TerminationReason,
)
from stepwise.solvers import GradientDescent


class Countdown(Solver):
    """Lower the parameter by one per iteration; cost is the parameter."""

    name = "countdown"

    def init(self, problem, state):
        state.cost = problem.cost(state.param)
        return state, None

    def next_iter(self, problem, state):
        x = state.param - 1.0
        return state.move_to(x, problem.cost(x)), {"x": x}


class Sleepy(Countdown):
    def next_iter(self, problem, state):
        time.sleep(0.02)
        return super().next_iter(problem, state)


class Recorder(Observer):
    def __init__(self):
        self.events = []
        self.best_costs = []

    def observe_init(self, name, state, kv):
        self.events.append(("init", state.iteration))

    def observe_iter(self, state, kv):
        self.events.append(("iter", state.iteration))
        self.best_costs.append(state.best_cost)

    def observe_final(self, state, kv):
        self.events.append(("final", state.iteration))


class StopAt(Observer):
    def __init__(self, iteration):
        self.iteration = iteration

    def observe_iter(self, state, kv):
        if state.iteration == self.iteration:
            raise InterruptRequested("stop requested by test")


def countdown_executor(start=10.0, **config):
    problem = Problem(fun=lambda x: float(x))
    return Executor(problem, Countdown(), IterState(param=start), config=ExecutorConfig(**config))


def test_gradient_descent_reaches_cost_tolerance(shifted_quadratic):
    executor = Executor(
        shifted_quadratic,
        GradientDescent(step_size=0.1),
        IterState(param=np.zeros(1)),
        config=ExecutorConfig(max_iters=100, cost_tolerance=1e-10),
    )
    result = executor.run()
    assert result.succeeded
    assert result.termination_reason is TerminationReason.TARGET_TOLERANCE_REACHED
    assert result.iterations < 100
    assert np.allclose(result.best_param, [3.0], atol=1e-4)
    assert executor.phase is ExecutorPhase.TERMINATED


def test_phases_progress_through_lifecycle():
    executor = countdown_executor(max_iters=3)
    assert executor.phase is ExecutorPhase.CREATED
    with pytest.raises(RuntimeError):
        executor.result()
    assert executor.step()
    assert executor.phase is ExecutorPhase.RUNNING
    assert executor.state.iteration == 1
    executor.run()
    assert executor.phase is ExecutorPhase.TERMINATED
    assert executor.state.iteration == 3


def test_step_after_termination_is_noop():
    executor = countdown_executor(max_iters=2)
    result = executor.run()
    snapshot = (result.state.param, result.state.cost, result.state.iteration)
    assert executor.step() is False
    assert (executor.state.param, executor.state.cost, executor.state.iteration) == snapshot


def test_best_cost_never_increases():
    problem = Problem(fun=lambda x: float(np.sin(3 * x[0]) + 0.1 * x[0] ** 2))
    recorder = Recorder()
    executor = Executor(
        problem,
        GradientDescent(step_size=0.4),
        IterState(param=np.array([2.0])),
        config=ExecutorConfig(max_iters=40),
    ).add_observer(recorder)
    result = executor.run()
    assert all(b <= a for a, b in zip(recorder.best_costs, recorder.best_costs[1:]))
    assert result.best_cost <= result.state.cost


def test_evaluation_error_keeps_best_of_completed_iterations(shifted_quadratic):
    calls = {"n": 0}

    def fun(x):
        calls["n"] += 1
        if calls["n"] == 6:
            raise RuntimeError("simulator crashed")
        return float((x[0] - 3.0) ** 2)

    problem = Problem(fun=fun, grad=shifted_quadratic.grad)
    recorder = Recorder()
    executor = Executor(
        problem,
        GradientDescent(step_size=0.1),
        IterState(param=np.zeros(1)),
        config=ExecutorConfig(max_iters=100),
    ).add_observer(recorder)
    result = executor.run()

    assert not result.succeeded
    assert executor.phase is ExecutorPhase.FAILED
    assert result.termination_reason is TerminationReason.SOLVER_FAILED
    assert result.error.phase is FailurePhase.ITERATION
    assert result.error.iteration == 5
    assert isinstance(result.error.cause, EvaluationError)
    assert result.state.iteration == 4
    expected = 3.0 - 3.0 * 0.8**4
    assert np.allclose(result.best_param, [expected])
    assert recorder.events[-1] == ("final", 4)


def test_failure_during_init_reports_init_phase():
    def fun(x):
        raise ValueError("bad input")

    executor = Executor(
        Problem(fun=fun), Countdown(), IterState(param=1.0), config=ExecutorConfig(max_iters=5)
    )
    result = executor.run()
    assert result.error.phase is FailurePhase.INIT
    assert result.error.iteration == 0
    assert result.iterations == 0


def test_nan_cost_fails_run():
    problem = Problem(fun=lambda x: float("nan") if x < 8 else float(x))
    executor = Executor(
        problem, Countdown(), IterState(param=10.0), config=ExecutorConfig(max_iters=10)
    )
    result = executor.run()
    assert isinstance(result.error.cause, NumericalError)
    assert result.best_cost == 8.0
    assert result.iterations == 2


def test_interrupt_before_start_stops_at_init():
    executor = countdown_executor(max_iters=10)
    executor.interrupt()
    executor.interrupt()
    result = executor.run()
    assert result.succeeded
    assert result.termination_reason is TerminationReason.EXTERNAL_INTERRUPT
    assert result.iterations == 0


def test_observer_interrupt_stops_after_current_iteration():
    executor = countdown_executor(max_iters=50).add_observer(StopAt(4))
    result = executor.run()
    assert result.termination_reason is TerminationReason.EXTERNAL_INTERRUPT
    assert result.iterations == 4
    assert result.best_cost == 6.0


def test_ctrlc_maps_sigint_to_interrupt():
    class RaiseSigint(Observer):
        def observe_iter(self, state, kv):
            if state.iteration == 2:
                signal.raise_signal(signal.SIGINT)

    previous = signal.getsignal(signal.SIGINT)
    executor = countdown_executor(max_iters=50, ctrlc=True).add_observer(RaiseSigint())
    result = executor.run()
    assert result.termination_reason is TerminationReason.EXTERNAL_INTERRUPT
    assert result.iterations == 2
    assert signal.getsignal(signal.SIGINT) is previous


def test_timeout_terminates_slow_solver():
    problem = Problem(fun=lambda x: float(x))
    executor = Executor(
        problem, Sleepy(), IterState(param=0.0), config=ExecutorConfig(timeout=0.05)
    )
    result = executor.run()
    assert result.termination_reason is TerminationReason.TIMED_OUT
    assert result.state.elapsed_time >= 0.05


def test_timer_disabled_leaves_elapsed_time_unset():
    result = countdown_executor(max_iters=2, timer=False).run()
    assert result.state.elapsed_time is None


def test_counts_are_copied_into_state():
    result = countdown_executor(max_iters=4).run()
    assert result.state.counts["cost_count"] == 5
    assert result.state.counts["gradient_count"] == 0


def test_run_result_string_summary():
    result = countdown_executor(max_iters=3).run()
    text = str(result)
    assert "Countdown run" in text
    assert "Maximum number of iterations reached" in text
    assert "Iterations: 3" in text
    assert "cost_count: 4" in text


def test_observers_closed_on_failure():
    class Closing(Observer):
        closed = False

        def close(self):
            self.closed = True

    observer = Closing()
    executor = Executor(
        Problem(fun=lambda x: 1 / 0), Countdown(), IterState(param=1.0)
    ).add_observer(observer, ObserverMode.final())
    result = executor.run()
    assert not result.succeeded
    assert observer.closed
