#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Undo-log transactions spanning filesystem and subprocess side effects.

Every step that mutates durable state during an install is recorded here as
a tagged step before the pipeline moves on. ``rollback`` undoes the steps in
reverse order; ``commit`` turns later rollbacks into no-ops.
"""

from __future__ import annotations

import os
import shutil
from contextlib import AbstractContextManager, ExitStack
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, Union

from loguru import logger

from .errors import RollbackError, TransactionError

PathLike = Union[str, Path]


class StepKind(str, Enum):
    """The kinds of reversible side effects a transaction understands."""

    CREATED_FILE = "created_file"
    CREATED_DIR = "created_dir"
    MODIFIED_FILE = "modified_file"
    MOVED_ASIDE = "moved_aside"
    RAN_COMMAND = "ran_command"


@dataclass(frozen=True)
class TransactionStep:
    """
    One recorded side effect and the data needed to undo it.

    Attributes:
        kind: What happened.
        description: Human readable summary used in logs and errors.
        path: The file or directory affected, if any.
        undo_command: Compensating command for RAN_COMMAND steps.
        undo_timeout: Timeout for the compensating command.
        backup: Previous contents for MODIFIED_FILE; None if the file was new.
        moved_to: Where MOVED_ASIDE parked the original path.
    """

    kind: StepKind
    description: str
    path: Optional[Path] = None
    undo_command: Tuple[str, ...] = ()
    undo_timeout: Optional[float] = None
    backup: Optional[bytes] = field(default=None, repr=False)
    moved_to: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "description": self.description,
            "path": str(self.path) if self.path else None,
            "undo_command": list(self.undo_command),
            "moved_to": str(self.moved_to) if self.moved_to else None,
        }


class TransactionManager:
    """
    Records reversible steps for one install or uninstall call.

    Typical use::

        with TransactionManager(runner) as tx:
            record = backend.install(path, opts, tx)
            store.create(record)
            tx.commit()

    Leaving the block always calls ``rollback``, which does nothing once the
    transaction has been committed, and then releases anything passed to
    ``hold``.
    """

    def __init__(self, runner=None) -> None:
        self._runner = runner
        self._steps: List[TransactionStep] = []
        self._committed = False
        self._resources = ExitStack()

    @property
    def steps(self) -> Tuple[TransactionStep, ...]:
        return tuple(self._steps)

    @property
    def committed(self) -> bool:
        return self._committed

    def __len__(self) -> int:
        return len(self._steps)

    def record(self, step: TransactionStep) -> TransactionStep:
        """Push a step onto the undo stack."""
        if self._committed:
            raise TransactionError(
                f"cannot record step after commit: {step.description}"
            )
        if step.kind is StepKind.RAN_COMMAND and not step.undo_command:
            raise TransactionError(
                f"command step without compensator: {step.description}"
            )
        self._steps.append(step)
        logger.debug(f"tx: recorded {step.kind.value}: {step.description}")
        return step

    def created_file(self, path: PathLike, description: str = "") -> TransactionStep:
        path = Path(path)
        return self.record(
            TransactionStep(
                StepKind.CREATED_FILE, description or f"created file {path}", path
            )
        )

    def created_dir(self, path: PathLike, description: str = "") -> TransactionStep:
        path = Path(path)
        return self.record(
            TransactionStep(
                StepKind.CREATED_DIR, description or f"created directory {path}", path
            )
        )

    def modified_file(self, path: PathLike, description: str = "") -> TransactionStep:
        """Snapshot ``path`` before the caller rewrites it."""
        path = Path(path)
        backup = path.read_bytes() if path.is_file() else None
        return self.record(
            TransactionStep(
                StepKind.MODIFIED_FILE,
                description or f"modified file {path}",
                path,
                backup=backup,
            )
        )

    def ran_command(
        self,
        description: str,
        undo_command: Sequence[str],
        timeout: Optional[float] = None,
    ) -> TransactionStep:
        return self.record(
            TransactionStep(
                StepKind.RAN_COMMAND,
                description,
                undo_command=tuple(str(a) for a in undo_command),
                undo_timeout=timeout,
            )
        )

    def move_aside(self, path: PathLike, tag: str, description: str = "") -> Path:
        """
        Rename ``path`` to a sibling ``<name>.upkg-old-<tag>``. Rollback renames
        it back; commit deletes the parked copy.

        Raises:
            OSError: If the rename fails.
        """
        path = Path(path)
        if self._committed:
            raise TransactionError(f"cannot move {path} after commit")
        parked = path.with_name(f"{path.name}.upkg-old-{tag}")
        os.rename(path, parked)
        self.record(
            TransactionStep(
                StepKind.MOVED_ASIDE,
                description or f"moved {path} aside",
                path,
                moved_to=parked,
            )
        )
        return parked

    def hold(self, resource: AbstractContextManager) -> Any:
        """Enter ``resource`` and keep it until the transaction block exits."""
        return self._resources.enter_context(resource)

    def ensure_dir(self, path: PathLike) -> Path:
        """
        Create ``path`` and any missing parents, recording each directory
        actually created so rollback removes exactly those.
        """
        path = Path(path)
        missing: List[Path] = []
        current = path
        while not current.exists():
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent

        for directory in reversed(missing):
            directory.mkdir()
            self.created_dir(directory)
        return path

    def commit(self) -> None:
        """
        Mark the transaction successful and forget the undo stack.

        Paths parked by ``move_aside`` are deleted; a failure there is logged
        and leaves the parked copy behind.
        """
        if self._committed:
            return
        logger.debug(f"tx: committed {len(self._steps)} step(s)")
        self._committed = True
        parked = [s.moved_to for s in self._steps if s.kind is StepKind.MOVED_ASIDE]
        self._steps.clear()
        for path in parked:
            try:
                _remove_path(path)
            except OSError as e:
                logger.warning(f"Could not remove previous installation {path}: {e}")

    def rollback(self) -> None:
        """
        Undo recorded steps, most recent first.

        Every step is attempted even when an earlier undo fails.

        Raises:
            RollbackError: If one or more undo actions failed.
        """
        if self._committed or not self._steps:
            return

        logger.info(f"Rolling back {len(self._steps)} step(s)")
        errors: List[BaseException] = []
        while self._steps:
            step = self._steps.pop()
            try:
                self._undo(step)
            except Exception as e:
                logger.warning(f"tx: undo failed for '{step.description}': {e}")
                errors.append(e)

        if errors:
            raise RollbackError(errors)

    def _undo(self, step: TransactionStep) -> None:
        logger.debug(f"tx: undo {step.kind.value}: {step.description}")
        match step.kind:
            case StepKind.CREATED_FILE:
                if step.path.is_symlink() or step.path.exists():
                    step.path.unlink()
            case StepKind.CREATED_DIR:
                if step.path.is_symlink():
                    step.path.unlink()
                elif step.path.exists():
                    shutil.rmtree(step.path)
            case StepKind.MODIFIED_FILE:
                if step.backup is None:
                    step.path.unlink(missing_ok=True)
                else:
                    step.path.write_bytes(step.backup)
            case StepKind.MOVED_ASIDE:
                if step.path.is_symlink() or step.path.exists():
                    _remove_path(step.path)
                os.rename(step.moved_to, step.path)
            case StepKind.RAN_COMMAND:
                if self._runner is None:
                    raise TransactionError(
                        f"no command runner available to undo: {step.description}"
                    )
                self._runner.run(list(step.undo_command), timeout=step.undo_timeout)

    def __enter__(self) -> TransactionManager:
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        try:
            self.rollback()
        except RollbackError as e:
            if exc is None:
                raise
            logger.error(f"Rollback after failure was incomplete: {e}")
        finally:
            self._resources.close()


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)
