#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Per-name advisory file locks that serialise installs of the same package.
"""

from __future__ import annotations

import fcntl
import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from .errors import AlreadyInstalledError


@contextmanager
def install_lock(locks_dir: Path, name: str) -> Generator[Path, None, None]:
    """
    Hold an exclusive, non-blocking lock on ``<locks_dir>/<name>.lock``.

    Raises:
        AlreadyInstalledError: If another process holds the lock for ``name``.
    """
    locks_dir.mkdir(parents=True, exist_ok=True)
    lock_path = locks_dir / f"{name}.lock"
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise AlreadyInstalledError(
                f"installation in progress for: {name}",
                path=lock_path,
                hint="Wait for the other upkg process to finish",
                cause=e,
            ) from e
        logger.debug(f"Acquired install lock {lock_path}")
        try:
            yield lock_path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
