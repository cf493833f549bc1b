"""The executor drives a solver against a state until termination.

Phases: ``CREATED -> INITIALIZING -> RUNNING -> {TERMINATED, FAILED}``.

Every iteration runs, in order: interrupt check, ``solver.next_iter``,
iteration counter increment, counter/timer bookkeeping, best tracking,
termination policy, observers, checkpoint. Nothing overlaps: an iteration
starts only after the previous one's observers and checkpoint are done.
"""

from __future__ import annotations

import signal
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from .. import diagnostics
from ..logging import get_logger
from ..observers.base import Observer, ObserverMode, Observers
from .checkpoint import FileCheckpoint
from .config import ExecutorConfig
from .errors import (
    CheckpointIOError,
    FailurePhase,
    InterruptRequested,
    LineSearchFailed,
    NumericalError,
    ObserverError,
    OptimizationError,
)
from .problem import Problem
from .solver import KV, Solver
from .state import IterState
from .termination import NOT_TERMINATED, TerminationPolicy, TerminationReason

logger = get_logger(__name__)


class ExecutorPhase(Enum):
    """Lifecycle of an executor."""

    CREATED = "created"
    INITIALIZING = "initializing"
    RUNNING = "running"
    TERMINATED = "terminated"
    FAILED = "failed"


@dataclass
class RunResult:
    """
    Outcome of a run.

    Attributes:
        solver: The solver after the last step.
        state: The final state; its best candidate is valid even on failure.
        termination_reason: Why the run stopped.
        error: Structured failure, or None if the run terminated normally.
        observer_failures: Exceptions raised by optional observers.
    """

    solver: Solver
    state: Any
    termination_reason: Optional[TerminationReason]
    error: Optional[OptimizationError] = None
    observer_failures: List[Tuple[Observer, BaseException]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def best_param(self) -> Any:
        return self.state.get_best_param()

    @property
    def best_cost(self) -> float:
        return self.state.best_cost

    @property
    def iterations(self) -> int:
        return self.state.iteration

    def __str__(self) -> str:
        lines = [
            f"{type(self.solver).__name__} run",
            "=" * 50,
            f"Status: {'terminated' if self.succeeded else 'failed'}",
            f"Reason: {self.termination_reason.text if self.termination_reason else 'None'}",
            f"Iterations: {self.iterations}",
            f"Best cost: {self.best_cost}",
            f"Best param: {self.best_param}",
        ]
        if self.state.elapsed_time is not None:
            lines.append(f"Time: {self.state.elapsed_time:.6f}s")
        for name, value in sorted(self.state.counts.items()):
            if value:
                lines.append(f"  {name}: {value}")
        if self.error is not None:
            lines.append(f"Error: {self.error}")
        return "\n".join(lines)


class Executor:
    """
    Run one solver on one state under a termination policy.

    Example:
        >>> import numpy as np
        >>> from stepwise import Executor, ExecutorConfig, IterState, Problem
        >>> from stepwise.solvers import GradientDescent
        >>> problem = Problem(fun=lambda x: float((x[0] - 3) ** 2),
        ...                   grad=lambda x: 2 * (x - 3))
        >>> result = Executor(
        ...     problem,
        ...     GradientDescent(step_size=0.1),
        ...     IterState(param=np.zeros(1)),
        ...     config=ExecutorConfig(max_iters=100, cost_tolerance=1e-10),
        ... ).run()
        >>> result.termination_reason.name
        'TARGET_TOLERANCE_REACHED'
    """

    def __init__(
        self,
        problem: Problem,
        solver: Solver,
        state: Any = None,
        config: Optional[ExecutorConfig] = None,
    ) -> None:
        self.problem = problem
        self.solver = solver
        self.state = state if state is not None else IterState()
        self.config = config if config is not None else ExecutorConfig()
        self.policy = TerminationPolicy(self.config)
        self.observers = Observers()
        self.checkpoint: Optional[FileCheckpoint] = None
        self._phase = ExecutorPhase.CREATED
        self._interrupt = threading.Event()
        self._error: Optional[OptimizationError] = None
        self._t0: Optional[float] = None
        self._in_progress = self.state.iteration
        self._time_offset = self.state.elapsed_time or 0.0

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------

    def add_observer(
        self,
        observer: Observer,
        mode: Optional[ObserverMode] = None,
        mandatory: bool = False,
    ) -> "Executor":
        self.observers.add(observer, mode, mandatory)
        return self

    def checkpointing(self, checkpoint: FileCheckpoint) -> "Executor":
        self.checkpoint = checkpoint
        return self

    @classmethod
    def resume(
        cls,
        problem: Problem,
        checkpoint: FileCheckpoint,
        config: Optional[ExecutorConfig] = None,
        path: Optional[str] = None,
    ) -> "Executor":
        """
        Rebuild an executor from the newest checkpoint (or ``path``).

        The problem's counters are restored from the state and the executor
        continues with the iteration after the checkpointed one. ``config``
        defaults to the configuration stored with the checkpoint. A run that
        was stopped by an external interrupt is resumable; any other
        termination yields an executor that does no further work. Format
        errors propagate before anything is constructed.
        """
        record = checkpoint.load_record(path)
        solver, state = record["solver"], record["state"]
        if config is None:
            config = record.get("config")
            if config is None:
                logger.warning("checkpoint carries no run configuration; resuming without limits")
        if state.termination_reason is TerminationReason.EXTERNAL_INTERRUPT:
            state.termination_status = NOT_TERMINATED
        problem.restore_counts(state.counts)
        executor = cls(problem, solver, state, config=config)
        executor.checkpointing(checkpoint)
        executor._phase = (
            ExecutorPhase.TERMINATED if state.terminated else ExecutorPhase.RUNNING
        )
        logger.info(
            "resuming %s at iteration %d from checkpoint", type(solver).__name__, state.iteration
        )
        return executor

    # ------------------------------------------------------------------
    # control
    # ------------------------------------------------------------------

    @property
    def phase(self) -> ExecutorPhase:
        return self._phase

    @property
    def finished(self) -> bool:
        return self._phase in (ExecutorPhase.TERMINATED, ExecutorPhase.FAILED)

    def interrupt(self) -> None:
        """Request a stop at the next iteration boundary. Safe to call repeatedly."""
        if not self._interrupt.is_set():
            logger.info("interrupt requested for run %s", self.config.run_id)
        self._interrupt.set()

    @property
    def interrupted(self) -> bool:
        return self._interrupt.is_set()

    def step(self) -> bool:
        """
        Advance by one iteration, initializing first if needed.

        Returns False without touching the state once the executor has
        terminated or failed.
        """
        if self.finished:
            logger.debug("step() on a finished executor is a no-op")
            return False
        if self._t0 is None:
            self._t0 = time.perf_counter()
        if self._phase is ExecutorPhase.CREATED:
            self._initialize()
            if self.finished:
                return True
        self._iterate()
        return True

    def run(self) -> RunResult:
        """Drive the loop to completion and return the result."""
        previous_handler = self._install_ctrlc() if self.config.ctrlc else None
        try:
            while self.step():
                pass
        finally:
            if previous_handler is not None:
                signal.signal(signal.SIGINT, previous_handler)
            self.close()
        return self.result()

    def close(self) -> None:
        """Close all observers."""
        self.observers.close()

    def result(self) -> RunResult:
        if not self.finished:
            raise RuntimeError(f"run has not finished (phase: {self._phase.value})")
        return RunResult(
            solver=self.solver,
            state=self.state,
            termination_reason=self.state.termination_reason,
            error=self._error,
            observer_failures=list(self.observers.failures),
        )

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _install_ctrlc(self) -> Any:
        if threading.current_thread() is not threading.main_thread():
            logger.warning("ctrlc=True ignored: run() is not on the main thread")
            return None
        previous = signal.getsignal(signal.SIGINT)

        def _handler(signum: int, frame: Any) -> None:
            self.interrupt()

        signal.signal(signal.SIGINT, _handler)
        return previous if previous is not None else signal.SIG_DFL

    def _elapsed(self) -> Optional[float]:
        if not self.config.timer:
            return None
        return self._time_offset + (time.perf_counter() - (self._t0 or time.perf_counter()))

    def _bookkeep(self, state: Any) -> None:
        state.set_counts(self.problem.counts)
        state.elapsed_time = self._elapsed()
        if state.cost is not None and state.cost != state.cost:
            raise NumericalError("state cost is NaN.")
        if diagnostics.is_debug_enabled():
            diagnostics.assert_finite(state.get_param(), "parameter vector")
            diagnostics.assert_finite(getattr(state, "grad", None), "gradient")
        state.update()

    def _check_termination(self) -> None:
        if self.state.terminated:
            return
        status = self.policy.evaluate(self.solver, self.state, self._interrupt.is_set())
        if status.terminated:
            self.state.terminate_with(status.reason, status.detail)

    def _save_checkpoint(self) -> None:
        if self.checkpoint is None:
            return
        try:
            self.checkpoint.maybe_save(self.solver, self.state, self.config)
        except CheckpointIOError as exc:
            if self.checkpoint.mandatory:
                raise
            logger.warning("skipping checkpoint at iteration %d: %s", self.state.iteration, exc)

    def _sync_interrupt(self) -> None:
        if self.observers.interrupt_requested:
            self.interrupt()

    def _initialize(self) -> None:
        self._phase = ExecutorPhase.INITIALIZING
        logger.debug("initializing %s (run %s)", self.solver.name, self.config.run_id)
        try:
            state, kv = self.solver.init(self.problem, self.state)
            self.state = state
            self._bookkeep(state)
            self._check_termination()
            self.observers.observe_init(self.solver.name, state, kv)
            if state.terminated:
                self._terminate(kv)
                return
            self._sync_interrupt()
            self._save_checkpoint()
        except InterruptRequested:
            self.state.terminate_with(TerminationReason.EXTERNAL_INTERRUPT)
            self._terminate(None)
            return
        except Exception as exc:
            phase = self._phase_of(exc)
            self._fail(FailurePhase.INIT if phase is FailurePhase.ITERATION else phase, exc)
            return
        self._phase = ExecutorPhase.RUNNING

    def _iterate(self) -> None:
        self._in_progress = self.state.iteration + 1
        if self._interrupt.is_set() or self.observers.interrupt_requested:
            self.state.terminate_with(TerminationReason.EXTERNAL_INTERRUPT)
            self._terminate(None)
            return
        try:
            state, kv = self.solver.next_iter(self.problem, self.state)
            self.state = state
            state.increment_iter()
            self._bookkeep(state)
            self._check_termination()
            if state.terminated:
                self._save_checkpoint()
                self._terminate(kv)
                return
            self.observers.observe_iter(state, kv)
            self._sync_interrupt()
            self._save_checkpoint()
        except InterruptRequested:
            self.state.terminate_with(TerminationReason.EXTERNAL_INTERRUPT)
            self._terminate(None)
        except Exception as exc:
            self._fail(self._phase_of(exc), exc)

    @staticmethod
    def _phase_of(exc: BaseException) -> FailurePhase:
        if isinstance(exc, ObserverError):
            return FailurePhase.OBSERVER
        if isinstance(exc, CheckpointIOError):
            return FailurePhase.CHECKPOINT
        if isinstance(exc, LineSearchFailed):
            return FailurePhase.NESTED
        return FailurePhase.ITERATION

    def _terminate(self, kv: Optional[KV]) -> None:
        self._phase = ExecutorPhase.TERMINATED
        logger.info(
            "run %s terminated after %d iterations: %s (best cost %s)",
            self.config.run_id,
            self.state.iteration,
            self.state.termination_status,
            self.state.best_cost,
        )
        try:
            self.observers.observe_final(self.state, kv)
        except ObserverError as exc:
            self._fail(FailurePhase.OBSERVER, exc)

    def _fail(self, phase: FailurePhase, exc: BaseException) -> None:
        iteration = 0 if self._phase is ExecutorPhase.INITIALIZING else self._in_progress
        reason = (
            TerminationReason.LINE_SEARCH_FAILED
            if isinstance(exc, LineSearchFailed)
            else TerminationReason.SOLVER_FAILED
        )
        self.state.set_counts(self.problem.counts)
        self.state.terminate_with(reason, str(exc))
        self._error = OptimizationError(phase, iteration, exc)
        already_failed = self._phase is ExecutorPhase.FAILED
        self._phase = ExecutorPhase.FAILED
        log = logger.debug if self.config.nested else logger.error
        log("run %s: %s", self.config.run_id, self._error)
        if already_failed:
            return
        try:
            self.observers.observe_final(self.state, {"error": str(self._error)})
        except ObserverError as final_exc:
            logger.error("observer failed while reporting failure: %s", final_exc)


__all__ = ["Executor", "ExecutorPhase", "RunResult"]
