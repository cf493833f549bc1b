import json
from io import StringIO

import numpy as np

from stepwise import (
    Executor,
    ExecutorConfig,
    IterState,
    LogObserver,
    ObserverMode,
    Problem,
    StateData,
)
from stepwise.solvers import GradientDescent


def run_with(observer, mode=None, max_iters=4):
    problem = Problem(fun=lambda x: float(np.sum(x**2)), grad=lambda x: 2 * x)
    return (
        Executor(
            problem,
            GradientDescent(step_size=0.1),
            IterState(param=np.array([1.0, -1.0])),
            config=ExecutorConfig(max_iters=max_iters),
        )
        .add_observer(observer, mode)
        .run()
    )


def test_term_logger_writes_key_value_lines():
    stream = StringIO()
    run_with(LogObserver.term(stream))
    lines = stream.getvalue().strip().splitlines()
    # init, three iterations, final
    assert len(lines) == 5
    assert lines[0].startswith("Gradient descent")
    assert "iter: 1" in lines[1]
    assert "best_cost: " in lines[1]
    assert "cost_count: " in lines[1]
    assert "grad_norm: " in lines[1]
    assert lines[-1].startswith("final")
    assert "Maximum number of iterations reached" in lines[-1]


def test_file_logger_writes_json_lines(tmp_path):
    path = tmp_path / "progress.jsonl"
    observer = LogObserver.file(str(path)).with_data(
        [StateData.ITER, StateData.COST, StateData.PARAM, StateData.IS_BEST]
    )
    run_with(observer, ObserverMode.every(2), max_iters=5)
    records = [json.loads(line) for line in path.read_text().splitlines()]
    assert [r["message"] for r in records] == ["Gradient descent", "", "", "final"]
    assert [r["iter"] for r in records[1:]] == [2, 4, 5]
    assert records[1]["param"] == [0.64, -0.64] or np.allclose(records[1]["param"], [0.64, -0.64])
    assert records[1]["is_best"] is True
    assert "cost_count" not in records[1]
    assert records[-1]["termination_status"].startswith("Terminated(")


def test_file_logger_truncate_and_append(tmp_path):
    path = tmp_path / "log.jsonl"
    run_with(LogObserver.file(str(path)), max_iters=1)
    first = len(path.read_text().splitlines())
    run_with(LogObserver.file(str(path), truncate=False), max_iters=1)
    assert len(path.read_text().splitlines()) == 2 * first
    run_with(LogObserver.file(str(path)), max_iters=1)
    assert len(path.read_text().splitlines()) == first


def test_loggers_are_independent():
    a, b = StringIO(), StringIO()
    run_with(LogObserver.term(a), max_iters=1)
    run_with(LogObserver.term(b), max_iters=2)
    assert len(a.getvalue().splitlines()) == 2
    assert len(b.getvalue().splitlines()) == 3
