#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Subprocess execution for every external tool the backends call.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from loguru import logger

from ..core.errors import ExternalToolError
from ..core.models import CommandResult

# Timeouts in seconds, scaled to the expected cost of each kind of call.
METADATA_TIMEOUT = 10
CACHE_TIMEOUT = 30
EXTRACT_TIMEOUT = 5 * 60
SYSTEM_INSTALL_TIMEOUT = 10 * 60
CONVERT_TIMEOUT = 30 * 60


class CommandRunner:
    """
    Runs external commands with bounded timeouts.

    Backends receive a runner instance instead of calling ``subprocess``
    directly, so tests can inject a fake that records calls.
    """

    def __init__(self) -> None:
        self._exists_cache: Dict[str, bool] = {}

    def command_exists(self, name: str) -> bool:
        """Return True if ``name`` resolves on PATH. Results are cached."""
        if name not in self._exists_cache:
            self._exists_cache[name] = shutil.which(name) is not None
        return self._exists_cache[name]

    def sudo_prefix(self) -> List[str]:
        """Return ``["sudo"]`` unless already running as root."""
        if os.geteuid() == 0:
            return []
        return ["sudo"]

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = METADATA_TIMEOUT,
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """
        Execute a command and capture its output.

        Args:
            command: The command to execute as a list of strings
            cwd: Working directory for the command
            timeout: Seconds before the command is killed
            check: Raise ExternalToolError on a non-zero exit code
            env: Extra environment variables merged over the current ones

        Returns:
            CommandResult with execution results

        Raises:
            ExternalToolError: If the command cannot be started, times out, or
                exits non-zero while ``check`` is set
        """
        argv = [str(part) for part in command]
        logger.debug(f"Executing command: {' '.join(argv)}")
        started = time.monotonic()

        try:
            process = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                check=False,
                text=True,
                capture_output=True,
                timeout=timeout,
                env={**os.environ, **env} if env else None,
            )
        except subprocess.TimeoutExpired as e:
            raise ExternalToolError(
                f"command timed out after {timeout}s: {argv[0]}",
                command=argv,
                timed_out=True,
                execution_time=time.monotonic() - started,
                cause=e,
            ) from e
        except OSError as e:
            raise ExternalToolError(
                f"failed to start {argv[0]}: {e}", command=argv, cause=e
            ) from e

        result: CommandResult = {
            "success": process.returncode == 0,
            "stdout": process.stdout or "",
            "stderr": process.stderr or "",
            "command": argv,
            "return_code": process.returncode,
        }
        elapsed = time.monotonic() - started

        if process.returncode != 0:
            logger.debug(
                f"Command {' '.join(argv)} failed with code {process.returncode}",
                extra={"stderr": result["stderr"], "elapsed": elapsed},
            )
            if check:
                raise ExternalToolError(
                    f"{argv[0]} failed",
                    command=argv,
                    return_code=process.returncode,
                    stdout=result["stdout"],
                    stderr=result["stderr"],
                    execution_time=elapsed,
                )
        return result

    def run_output(self, command: Sequence[str], **kwargs) -> str:
        """Run a command and return its stripped stdout."""
        return self.run(command, **kwargs)["stdout"].strip()
