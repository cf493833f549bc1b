import pickle

import numpy as np
import pytest

from stepwise import (
    CHECKPOINT_VERSION,
    CheckpointFrequency,
    CheckpointIOError,
    Executor,
    ExecutorConfig,
    ExecutorPhase,
    FailurePhase,
    FileCheckpoint,
    InterruptRequested,
    IterState,
    Observer,
    PopulationState,
    Problem,
    SerializationFormatError,
    TerminationReason,
)
from stepwise.core.checkpoint import CHECKPOINT_FORMAT
from stepwise.solvers import GradientDescent, ParticleSwarm, SimulatedAnnealing


class StopAt(Observer):
    def __init__(self, iteration):
        self.iteration = iteration

    def observe_iter(self, state, kv):
        if state.iteration == self.iteration:
            raise InterruptRequested


def rosen(x):
    return float((1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2)


def rosen_grad(x):
    return np.array(
        [
            -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
            200 * (x[1] - x[0] ** 2),
        ]
    )


def sphere(x):
    return float(np.sum(np.asarray(x) ** 2))


def neighbour(x, temperature, rng):
    return x + rng.normal(scale=0.5, size=x.shape)


def make_gd():
    return GradientDescent(step_size=1e-3, momentum=True)


def make_pso():
    return ParticleSwarm((-np.ones(3) * 5, np.ones(3) * 5), num_particles=8, seed=42)


def make_sa():
    return SimulatedAnnealing(temperature=2.0, seed=7)


CASES = {
    "gradient_descent": (
        lambda: Problem(fun=rosen, grad=rosen_grad),
        make_gd,
        lambda: IterState(param=np.array([-1.2, 1.0])),
    ),
    "particle_swarm": (
        lambda: Problem(fun=sphere),
        make_pso,
        PopulationState,
    ),
    "simulated_annealing": (
        lambda: Problem(fun=sphere, anneal_fun=neighbour),
        make_sa,
        lambda: IterState(param=np.full(2, 3.0)),
    ),
}


@pytest.mark.parametrize("case", sorted(CASES))
def test_resume_reproduces_uninterrupted_run(case, tmp_path):
    make_problem, make_solver, make_state = CASES[case]
    total, stop = 30, 12

    reference = Executor(
        make_problem(), make_solver(), make_state(), config=ExecutorConfig(max_iters=total)
    ).run()

    checkpoint = FileCheckpoint(tmp_path, run_id=case)
    first = (
        Executor(make_problem(), make_solver(), make_state(), config=ExecutorConfig(max_iters=total))
        .add_observer(StopAt(stop))
        .checkpointing(checkpoint)
        .run()
    )
    assert first.termination_reason is TerminationReason.EXTERNAL_INTERRUPT
    assert first.iterations == stop

    resumed = Executor.resume(make_problem(), checkpoint, config=ExecutorConfig(max_iters=total))
    assert resumed.phase is ExecutorPhase.RUNNING
    assert resumed.state.iteration == stop
    result = resumed.run()

    assert result.termination_reason is reference.termination_reason
    assert result.iterations == reference.iterations
    assert result.best_cost == reference.best_cost
    assert np.array_equal(result.best_param, reference.best_param)
    assert result.state.counts == reference.state.counts


def test_always_rewrites_single_file(tmp_path):
    checkpoint = FileCheckpoint(tmp_path, run_id="single")
    Executor(
        Problem(fun=sphere, grad=lambda x: 2 * x),
        GradientDescent(step_size=0.1),
        IterState(param=np.ones(2)),
        config=ExecutorConfig(max_iters=5),
    ).checkpointing(checkpoint).run()
    assert [p.name for p in checkpoint.files()] == ["single.chkpt"]
    solver, state = checkpoint.load()
    assert isinstance(solver, GradientDescent)
    assert state.iteration == 5
    assert state.terminated


def test_every_n_with_rotation(tmp_path):
    checkpoint = FileCheckpoint(
        tmp_path, run_id="rot", frequency=CheckpointFrequency.every(2), keep_last=2
    )
    Executor(
        Problem(fun=sphere, grad=lambda x: 2 * x),
        GradientDescent(step_size=0.01),
        IterState(param=np.ones(2)),
        config=ExecutorConfig(max_iters=10),
    ).checkpointing(checkpoint).run()
    names = [p.name for p in checkpoint.files()]
    assert names == ["rot_00000008.chkpt", "rot_00000010.chkpt"]
    assert checkpoint.latest().name == "rot_00000010.chkpt"


def test_resume_of_terminated_run_does_no_work(tmp_path):
    checkpoint = FileCheckpoint(tmp_path, run_id="done")
    problem = Problem(fun=sphere, grad=lambda x: 2 * x)
    Executor(
        problem,
        GradientDescent(step_size=0.1),
        IterState(param=np.ones(2)),
        config=ExecutorConfig(max_iters=3),
    ).checkpointing(checkpoint).run()
    fresh = Problem(fun=sphere, grad=lambda x: 2 * x)
    executor = Executor.resume(fresh, checkpoint, config=ExecutorConfig(max_iters=3))
    assert executor.phase is ExecutorPhase.TERMINATED
    assert executor.step() is False
    assert fresh.counts == problem.counts


def test_load_without_checkpoint(tmp_path):
    checkpoint = FileCheckpoint(tmp_path / "missing", run_id="nothing")
    assert checkpoint.latest() is None
    with pytest.raises(CheckpointIOError):
        checkpoint.load()
    with pytest.raises(CheckpointIOError):
        Executor.resume(Problem(fun=sphere), checkpoint)


def test_load_rejects_unknown_version(tmp_path):
    path = tmp_path / "run.chkpt"
    record = {
        "format": CHECKPOINT_FORMAT,
        "version": CHECKPOINT_VERSION + 1,
        "run_id": "run",
        "iteration": 0,
        "solver": None,
        "state": None,
    }
    path.write_bytes(pickle.dumps(record))
    with pytest.raises(SerializationFormatError, match="version"):
        FileCheckpoint(tmp_path).load()


def test_load_rejects_foreign_pickle(tmp_path):
    path = tmp_path / "run.chkpt"
    path.write_bytes(pickle.dumps({"hello": "world"}))
    with pytest.raises(SerializationFormatError):
        FileCheckpoint(tmp_path).load(path)


def test_optional_checkpoint_failure_is_skipped(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    result = (
        Executor(
            Problem(fun=sphere, grad=lambda x: 2 * x),
            GradientDescent(step_size=0.1),
            IterState(param=np.ones(2)),
            config=ExecutorConfig(max_iters=3),
        )
        .checkpointing(FileCheckpoint(blocker))
        .run()
    )
    assert result.succeeded
    assert result.termination_reason is TerminationReason.MAX_ITERATIONS_REACHED


def test_mandatory_checkpoint_failure_fails_run(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    result = (
        Executor(
            Problem(fun=sphere, grad=lambda x: 2 * x),
            GradientDescent(step_size=0.1),
            IterState(param=np.ones(2)),
            config=ExecutorConfig(max_iters=3),
        )
        .checkpointing(FileCheckpoint(blocker, mandatory=True))
        .run()
    )
    assert not result.succeeded
    assert result.error.phase is FailurePhase.CHECKPOINT
    assert isinstance(result.error.cause, CheckpointIOError)


@pytest.mark.parametrize("run_id", ["", "a/b", "with space"])
def test_invalid_run_id(run_id, tmp_path):
    with pytest.raises(ValueError):
        FileCheckpoint(tmp_path, run_id=run_id)


def test_invalid_frequency():
    with pytest.raises(ValueError):
        CheckpointFrequency.every(0)
    with pytest.raises(ValueError):
        CheckpointFrequency("sometimes")
    assert not CheckpointFrequency.never().due(0)
    assert CheckpointFrequency.every(3).due(6)
    assert not CheckpointFrequency.every(3).due(7)


class InterruptingDescent(GradientDescent):
    """Requests an interrupt from inside ``next_iter``, like a mid-step Ctrl-C."""

    def __init__(self, at, **kwargs):
        super().__init__(**kwargs)
        self.at = at
        self.executor = None

    def __getstate__(self):
        state = dict(self.__dict__)
        state["executor"] = None
        return state

    def next_iter(self, problem, state):
        if self.executor is not None and state.iteration + 1 == self.at:
            self.executor.interrupt()
        return super().next_iter(problem, state)


def test_interrupt_during_next_iter_is_resumable(tmp_path):
    total = 20
    reference = Executor(
        Problem(fun=rosen, grad=rosen_grad),
        GradientDescent(step_size=1e-3),
        IterState(param=np.array([-1.2, 1.0])),
        config=ExecutorConfig(max_iters=total),
    ).run()

    solver = InterruptingDescent(5, step_size=1e-3)
    checkpoint = FileCheckpoint(tmp_path, run_id="midstep")
    first = Executor(
        Problem(fun=rosen, grad=rosen_grad),
        solver,
        IterState(param=np.array([-1.2, 1.0])),
        config=ExecutorConfig(max_iters=total),
    ).checkpointing(checkpoint)
    solver.executor = first
    interrupted = first.run()
    assert interrupted.termination_reason is TerminationReason.EXTERNAL_INTERRUPT
    assert interrupted.iterations == 5

    resumed = Executor.resume(Problem(fun=rosen, grad=rosen_grad), checkpoint)
    assert resumed.phase is ExecutorPhase.RUNNING
    assert resumed.state.iteration == 5
    assert not resumed.state.terminated
    result = resumed.run()
    assert result.termination_reason is TerminationReason.MAX_ITERATIONS_REACHED
    assert result.iterations == total
    assert result.best_cost == reference.best_cost
    assert result.state.counts == reference.state.counts


def test_resume_uses_stored_configuration(tmp_path):
    checkpoint = FileCheckpoint(tmp_path, run_id="limits")
    config = ExecutorConfig(max_iters=12, run_id="limits")
    Executor(
        Problem(fun=sphere, grad=lambda x: 2 * x),
        GradientDescent(step_size=0.01),
        IterState(param=np.ones(2)),
        config=config,
    ).add_observer(StopAt(4)).checkpointing(checkpoint).run()

    record = checkpoint.load_record()
    assert record["config"] == config

    resumed = Executor.resume(Problem(fun=sphere, grad=lambda x: 2 * x), checkpoint)
    assert resumed.config == config
    result = resumed.run()
    assert result.termination_reason is TerminationReason.MAX_ITERATIONS_REACHED
    assert result.iterations == 12

    override = Executor.resume(
        Problem(fun=sphere, grad=lambda x: 2 * x), checkpoint, config=ExecutorConfig(max_iters=6)
    )
    assert override.config.max_iters == 6
