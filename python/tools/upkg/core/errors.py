#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Exception hierarchy for the install engine with structured error context.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Union

from loguru import logger

from .models import ExitCode


@dataclass(frozen=True)
class ErrorContext:
    """Context information for install engine errors."""

    command: Optional[str] = None
    exit_code: Optional[int] = None
    working_directory: Optional[Path] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    execution_time: Optional[float] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for structured logging."""
        return {
            "command": self.command,
            "exit_code": self.exit_code,
            "working_directory": (
                str(self.working_directory) if self.working_directory else None
            ),
            "stdout": self.stdout,
            "stderr": self.stderr,
            "execution_time": self.execution_time,
            "additional_info": self.additional_info,
        }


class UpkgError(Exception):
    """
    Base exception for every failure raised by the install engine.

    Carries an optional ErrorContext, the underlying cause and an actionable
    hint that the CLI prints below the error line.
    """

    exit_code: ClassVar[ExitCode] = ExitCode.GENERAL

    def __init__(
        self,
        message: str,
        *,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.cause = cause
        self.hint = hint
        self.traceback_str = traceback.format_exc() if cause else None

        logger.debug(
            f"{self.__class__.__name__}: {message}",
            extra={
                "error_context": self.context.to_dict(),
                "original_cause": str(cause) if cause else None,
            },
        )

    def __str__(self) -> str:
        """Enhanced string representation with context."""
        base_msg = self.message

        if self.context.command:
            base_msg += f"\nCommand: {self.context.command}"

        if self.context.exit_code is not None:
            base_msg += f"\nExit Code: {self.context.exit_code}"

        if self.context.stderr:
            base_msg += f"\nStderr: {self.context.stderr.strip()}"

        if self.cause:
            base_msg += f"\nCaused by: {self.cause}"

        return base_msg


class NotFoundError(UpkgError):
    """A source package, installed record or backend does not exist."""


class NoBackendError(NotFoundError):
    """No registered backend recognised the package file."""

    def __init__(
        self, message: str, *, path: Union[str, Path], detected_type: str, **kwargs: Any
    ) -> None:
        self.path = Path(path)
        self.detected_type = detected_type
        super().__init__(message, **kwargs)


class InvalidInputError(UpkgError):
    """Unsafe or empty derived name, or a path escaping its expected root."""

    exit_code = ExitCode.INVALID_ARGS


class NoExecutableFoundError(UpkgError):
    """Extraction succeeded but produced no ELF executable candidates."""

    exit_code = ExitCode.INSTALL_FAILED


class NoInstallationMethodError(UpkgError):
    """None of the external toolchains needed for a format are available."""

    exit_code = ExitCode.COMMAND_NOT_FOUND

    def __init__(self, message: str, *, alternatives: Sequence[str], **kwargs: Any) -> None:
        self.alternatives = list(alternatives)
        kwargs.setdefault(
            "hint", "Install one of: " + ", ".join(f"'{a}'" for a in self.alternatives)
        )
        super().__init__(message, **kwargs)


class ExternalToolError(UpkgError):
    """A subprocess exited non-zero or timed out."""

    exit_code = ExitCode.INSTALL_FAILED

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        return_code: Optional[int] = None,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
        timed_out: bool = False,
        execution_time: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        self.command = list(command) if command else []
        self.return_code = return_code
        self.stderr = stderr
        self.timed_out = timed_out
        if "context" not in kwargs:
            kwargs["context"] = ErrorContext(
                command=" ".join(self.command) if self.command else None,
                exit_code=return_code,
                stdout=stdout,
                stderr=stderr,
                execution_time=execution_time,
                additional_info={"timed_out": timed_out},
            )
        super().__init__(message, **kwargs)


class AlreadyInstalledError(UpkgError):
    """The destination already exists and force was not requested."""

    exit_code = ExitCode.INSTALL_FAILED

    def __init__(self, message: str, *, path: Union[str, Path], **kwargs: Any) -> None:
        self.path = Path(path)
        kwargs.setdefault("hint", "Use --force to reinstall")
        super().__init__(message, **kwargs)


class PersistenceError(UpkgError):
    """Reading or writing install records failed."""

    exit_code = ExitCode.DATABASE


class ConfigError(UpkgError):
    """The configuration file or an environment override is invalid."""

    exit_code = ExitCode.INVALID_ARGS

    def __init__(
        self,
        message: str,
        *,
        config_file: Optional[Union[str, Path]] = None,
        invalid_option: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.config_file = Path(config_file) if config_file else None
        self.invalid_option = invalid_option
        super().__init__(message, **kwargs)


class PermissionDeniedError(UpkgError):
    """The current user may not touch a required path."""

    exit_code = ExitCode.PERMISSION


class TransactionError(UpkgError):
    """A transaction was used incorrectly (e.g. recording after commit)."""


class RollbackError(TransactionError):
    """One or more undo steps failed; every other step was still undone."""

    def __init__(self, errors: List[BaseException]) -> None:
        self.errors = list(errors)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(f"rollback completed with errors: {details}")


def handle_os_error(exc: OSError, action: str) -> UpkgError:
    """Translate an OSError raised while performing ``action`` into an UpkgError."""
    match exc:
        case FileNotFoundError():
            return NotFoundError(f"{action}: file not found: {exc.filename}", cause=exc)
        case PermissionError():
            return PermissionDeniedError(
                f"{action}: permission denied: {exc.filename}",
                cause=exc,
                hint="Check file ownership or run with the required privileges",
            )
        case _:
            return UpkgError(f"{action}: {exc}", cause=exc)
