import numpy as np
import pytest
import torch

from stepwise import (
    Executor,
    ExecutorConfig,
    ExecutorPhase,
    FailurePhase,
    IterState,
    Observer,
    ObserverMode,
    ParamHistory,
    Problem,
    Solver,
    StateView,
)


class Countdown(Solver):
    name = "countdown"

    def init(self, problem, state):
        state.cost = problem.cost(state.param)
        return state, {"start": state.param}

    def next_iter(self, problem, state):
        x = state.param - 1.0
        return state.move_to(x, problem.cost(x)), {"x": x}


class Recorder(Observer):
    def __init__(self, log=None, tag=""):
        self.events = [] if log is None else log
        self.tag = tag

    def observe_init(self, name, state, kv):
        self.events.append((self.tag, "init", state.iteration))

    def observe_iter(self, state, kv):
        self.events.append((self.tag, "iter", state.iteration))

    def observe_final(self, state, kv):
        self.events.append((self.tag, "final", state.iteration))


class Failing(Observer):
    def observe_iter(self, state, kv):
        raise IOError("disk full")


def executor(max_iters=10, start=20.0):
    return Executor(
        Problem(fun=lambda x: float(x)),
        Countdown(),
        IterState(param=start),
        config=ExecutorConfig(max_iters=max_iters),
    )


def test_every_three_over_ten_iterations():
    recorder = Recorder()
    executor().add_observer(recorder, ObserverMode.every(3)).run()
    assert recorder.events == [
        ("", "init", 0),
        ("", "iter", 3),
        ("", "iter", 6),
        ("", "iter", 9),
        ("", "final", 10),
    ]


def test_modes_always_final_never():
    always, final, never = Recorder(), Recorder(), Recorder()
    (
        executor(max_iters=3)
        .add_observer(always, ObserverMode.always())
        .add_observer(final, ObserverMode.final())
        .add_observer(never, ObserverMode.never())
        .run()
    )
    assert [e[1:] for e in always.events] == [("init", 0), ("iter", 1), ("iter", 2), ("final", 3)]
    assert [e[1:] for e in final.events] == [("final", 3)]
    assert never.events == []


def test_notifications_follow_registration_order():
    log = []
    (
        executor(max_iters=1)
        .add_observer(Recorder(log, "a"))
        .add_observer(Recorder(log, "b"))
        .run()
    )
    assert log == [("a", "init", 0), ("b", "init", 0), ("a", "final", 1), ("b", "final", 1)]


def test_optional_observer_failure_is_recorded():
    failing = Failing()
    result = executor(max_iters=4).add_observer(failing).run()
    assert result.succeeded
    assert result.iterations == 4
    assert len(result.observer_failures) == 3
    assert result.observer_failures[0][0] is failing
    assert isinstance(result.observer_failures[0][1], OSError)


def test_mandatory_observer_failure_fails_run():
    ex = executor(max_iters=4).add_observer(Failing(), mandatory=True)
    result = ex.run()
    assert ex.phase is ExecutorPhase.FAILED
    assert result.error.phase is FailurePhase.OBSERVER
    assert result.error.iteration == 1
    assert isinstance(result.error.cause.__cause__, OSError)


def test_state_view_is_read_only():
    x = np.array([1.0, 2.0])
    state = IterState(param=x, cost=1.0, counts={"cost_count": 1})
    state.update()
    view = StateView(state)
    with pytest.raises(AttributeError):
        view.cost = 3.0
    with pytest.raises(ValueError):
        view.param[0] = 5.0
    with pytest.raises(TypeError):
        view.counts["cost_count"] = 2
    with pytest.raises(AttributeError):
        view.move_to(x, 0.0)
    assert view.is_best()
    assert np.array_equal(view.get_best_param(), x)
    assert view.state_type is IterState
    assert state.cost == 1.0


def test_state_view_clones_tensors():
    t = torch.tensor([1.0, 2.0])
    view = StateView(IterState(param=t))
    seen = view.param
    seen[0] = 10.0
    assert float(t[0]) == 1.0


def test_observer_cannot_mutate_run():
    class Meddler(Observer):
        def observe_iter(self, state, kv):
            state.param = 0.0

    result = executor(max_iters=3).add_observer(Meddler()).run()
    assert result.state.param == 17.0
    assert len(result.observer_failures) == 2


def test_param_history_records_each_iteration():
    history = ParamHistory()
    executor(max_iters=3).add_observer(history).run()
    assert history.iterations == [0, 1, 2, 3]
    assert history.params == [20.0, 19.0, 18.0, 17.0]


def test_observer_mode_validation():
    with pytest.raises(ValueError):
        ObserverMode.every(0)
    with pytest.raises(ValueError):
        ObserverMode("sometimes")
    assert ObserverMode.every(2).fires_at(4)
    assert not ObserverMode.final().fires_at(4)
    assert not ObserverMode.never().active
