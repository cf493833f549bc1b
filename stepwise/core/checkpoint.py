"""Checkpointing of (solver, state) pairs for exact resumption.

A checkpoint file is a pickled dict::

    {
        "format": "stepwise-checkpoint",
        "version": 1,
        "run_id": <str>,
        "iteration": <int>,
        "solver": <Solver>,
        "state": <State>,
        "config": <ExecutorConfig or None>,
    }

Files are written to a temporary file in the target directory and moved into
place with ``os.replace``, so a crash mid-write leaves the previous
checkpoint intact.
"""

from __future__ import annotations

import os
import pickle
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..logging import get_logger
from .errors import CheckpointIOError, SerializationFormatError

logger = get_logger(__name__)

CHECKPOINT_FORMAT = "stepwise-checkpoint"
CHECKPOINT_VERSION = 1
_SUFFIX = ".chkpt"


@dataclass(frozen=True)
class CheckpointFrequency:
    """How often a checkpoint is written. Use :meth:`never`, :meth:`every`, :meth:`always`."""

    kind: str = "never"
    n: int = 1

    def __post_init__(self) -> None:
        if self.kind not in ("never", "every", "always"):
            raise ValueError(f"Unknown checkpoint frequency {self.kind!r}.")
        if self.n < 1:
            raise ValueError("Checkpoint frequency must be at least 1.")

    @classmethod
    def never(cls) -> "CheckpointFrequency":
        return cls("never")

    @classmethod
    def every(cls, n: int) -> "CheckpointFrequency":
        return cls("every", n)

    @classmethod
    def always(cls) -> "CheckpointFrequency":
        return cls("always")

    def due(self, iteration: int) -> bool:
        if self.kind == "always":
            return True
        if self.kind == "every":
            return iteration % self.n == 0
        return False


class FileCheckpoint:
    """
    Write and read checkpoints in a directory.

    Args:
        directory: Target directory; created on first write.
        run_id: Identifier used in file names.
        frequency: When to write.
        keep_last: With ``every(n)``, keep only the newest ``keep_last``
            files. None keeps all of them.
        mandatory: A failed write fails the run instead of being logged and
            skipped.

    Naming: ``always`` rewrites ``<run_id>.chkpt``; ``every(n)`` writes
    ``<run_id>_<iteration:08d>.chkpt``.
    """

    def __init__(
        self,
        directory: Union[str, os.PathLike] = ".checkpoints",
        run_id: str = "run",
        frequency: Optional[CheckpointFrequency] = None,
        keep_last: Optional[int] = None,
        mandatory: bool = False,
    ) -> None:
        if keep_last is not None and keep_last < 1:
            raise ValueError("keep_last must be at least 1.")
        if not run_id or not re.fullmatch(r"[A-Za-z0-9_.-]+", run_id):
            raise ValueError(f"run_id {run_id!r} must be a non-empty file-name-safe string.")
        self.directory = Path(directory)
        self.run_id = run_id
        self.frequency = frequency if frequency is not None else CheckpointFrequency.always()
        self.keep_last = keep_last
        self.mandatory = mandatory
        self._pattern = re.compile(rf"^{re.escape(run_id)}_(\d+){re.escape(_SUFFIX)}$")

    def __repr__(self) -> str:
        return (
            f"FileCheckpoint(directory={str(self.directory)!r}, run_id={self.run_id!r}, "
            f"frequency={self.frequency}, keep_last={self.keep_last})"
        )

    def _path_for(self, iteration: int) -> Path:
        if self.frequency.kind == "every":
            return self.directory / f"{self.run_id}_{iteration:08d}{_SUFFIX}"
        return self.directory / f"{self.run_id}{_SUFFIX}"

    def _numbered(self) -> List[Tuple[int, Path]]:
        if not self.directory.is_dir():
            return []
        found = []
        for path in self.directory.iterdir():
            match = self._pattern.match(path.name)
            if match:
                found.append((int(match.group(1)), path))
        return sorted(found)

    def files(self) -> List[Path]:
        """Existing checkpoint files of this run, oldest first."""
        paths = [p for _, p in self._numbered()]
        single = self.directory / f"{self.run_id}{_SUFFIX}"
        if single.is_file():
            paths.append(single)
        return paths

    def maybe_save(self, solver: Any, state: Any, config: Any = None) -> bool:
        """Save if the frequency says so; return whether a file was written."""
        if not self.frequency.due(state.iteration):
            return False
        self.save(solver, state, config)
        return True

    def save(self, solver: Any, state: Any, config: Any = None) -> Path:
        """Atomically write a checkpoint for ``state.iteration``.

        ``config`` is the run's :class:`~stepwise.core.config.ExecutorConfig`;
        it is stored so a resumed run keeps the same limits.
        """
        record = {
            "format": CHECKPOINT_FORMAT,
            "version": CHECKPOINT_VERSION,
            "run_id": self.run_id,
            "iteration": state.iteration,
            "solver": solver,
            "state": state,
            "config": config,
        }
        target = self._path_for(state.iteration)
        tmp_path: Optional[str] = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.run_id}.", suffix=".tmp", dir=self.directory
            )
            with os.fdopen(fd, "wb") as f:
                pickle.dump(record, f, protocol=pickle.HIGHEST_PROTOCOL)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
            tmp_path = None
        except (OSError, pickle.PicklingError, TypeError, AttributeError) as exc:
            raise CheckpointIOError(f"could not write checkpoint {target}: {exc}") from exc
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
        logger.debug("wrote checkpoint %s", target)
        self._rotate()
        return target

    def _rotate(self) -> None:
        if self.keep_last is None or self.frequency.kind != "every":
            return
        numbered = self._numbered()
        for _, path in numbered[: max(len(numbered) - self.keep_last, 0)]:
            try:
                path.unlink()
            except OSError as exc:
                raise CheckpointIOError(f"could not remove old checkpoint {path}: {exc}") from exc

    def latest(self) -> Optional[Path]:
        """Path of the newest checkpoint, or None."""
        numbered = self._numbered()
        single = self.directory / f"{self.run_id}{_SUFFIX}"
        if self.frequency.kind == "every" and numbered:
            return numbered[-1][1]
        if single.is_file():
            return single
        if numbered:
            return numbered[-1][1]
        return None

    def load(self, path: Optional[Union[str, os.PathLike]] = None) -> Tuple[Any, Any]:
        """Read ``(solver, state)`` from ``path`` or from the newest checkpoint."""
        record = self.load_record(path)
        return record["solver"], record["state"]

    def load_record(self, path: Optional[Union[str, os.PathLike]] = None) -> Dict[str, Any]:
        """
        Read and validate the whole checkpoint record.

        Raises:
            CheckpointIOError: No checkpoint exists or it cannot be read.
            SerializationFormatError: Unknown format tag or version.
        """
        target = Path(path) if path is not None else self.latest()
        if target is None:
            raise CheckpointIOError(
                f"no checkpoint for run {self.run_id!r} in {self.directory}"
            )
        try:
            with open(target, "rb") as f:
                record = pickle.load(f)
        except FileNotFoundError as exc:
            raise CheckpointIOError(f"checkpoint file not found: {target}") from exc
        except OSError as exc:
            raise CheckpointIOError(f"could not read checkpoint {target}: {exc}") from exc
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as exc:
            raise SerializationFormatError(f"corrupt checkpoint {target}: {exc}") from exc
        validate_record(record, target)
        return record


def validate_record(record: Any, source: Any = "<memory>") -> Tuple[Any, Any]:
    """Check the format tag and version of a checkpoint record."""
    if not isinstance(record, dict) or record.get("format") != CHECKPOINT_FORMAT:
        raise SerializationFormatError(f"{source} is not a stepwise checkpoint.")
    version = record.get("version")
    if version != CHECKPOINT_VERSION:
        raise SerializationFormatError(
            f"{source} has checkpoint version {version!r}; "
            f"this release reads version {CHECKPOINT_VERSION}."
        )
    missing = {"solver", "state", "iteration"} - set(record)
    if missing:
        raise SerializationFormatError(f"{source} is missing fields {sorted(missing)}.")
    return record["solver"], record["state"]


__all__ = [
    "CHECKPOINT_FORMAT",
    "CHECKPOINT_VERSION",
    "CheckpointFrequency",
    "FileCheckpoint",
    "validate_record",
]
