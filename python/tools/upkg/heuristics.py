#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Discovery and ranking of executables inside an extracted package tree.

Every backend that extracts a directory tree uses ``find_executables`` and
``choose_best_executable`` to decide what the wrapper script should launch.
"""

from __future__ import annotations

import os
import stat
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Union

from loguru import logger

from .core.errors import NoExecutableFoundError
from .helpers.detection import ELF_MAGIC

PathLike = Union[str, Path]

ET_EXEC = 2
ET_DYN = 3

PENALTY_PATTERNS = (
    "chrome-sandbox", "crashpad", "minidump", "update", "uninstall", "helper",
    "crash", "debugger", "sandbox", "nacl", "xdg", "installer", "setup",
    "config", "daemon", "service", "agent", "monitor", "reporter",
)
PENALTY_SCORE = 200

EXACT_MATCH_BONUS = 100
PARTIAL_MATCH_BONUS = 50
BIN_DIR_BONUS = 20
DEEP_PATH_PENALTY = 50
MAX_DEPTH = 10

LARGE_SIZE = 10 * 1024 * 1024
MEDIUM_SIZE = 1024 * 1024
SMALL_SIZE = 100 * 1024


@dataclass(frozen=True)
class ExecCandidate:
    """A scored executable; ``order`` is its position in discovery order."""

    path: Path
    score: int
    order: int


def is_elf_executable(path: PathLike) -> bool:
    """True for ELF files whose type is EXEC or DYN (PIE executables)."""
    try:
        with open(path, "rb") as f:
            header = f.read(18)
    except OSError:
        return False
    if len(header) < 18 or not header.startswith(ELF_MAGIC):
        return False
    endian = "<" if header[5] == 1 else ">"
    (e_type,) = struct.unpack_from(endian + "H", header, 16)
    return e_type in (ET_EXEC, ET_DYN)


def _is_shared_library(name: str) -> bool:
    return name.endswith(".so") or ".so." in name


def find_executables(root: PathLike) -> List[Path]:
    """
    Return ELF executables below ``root`` in a reproducible order.

    Directories and files are visited in sorted order; symlinks, shared
    libraries and files without an execute bit are skipped.
    """
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath, filename)
            try:
                st = path.lstat()
            except OSError:
                continue
            if not stat.S_ISREG(st.st_mode) or not st.st_mode & 0o111:
                continue
            if _is_shared_library(filename):
                continue
            if is_elf_executable(path):
                found.append(path)
    logger.debug(f"Found {len(found)} executable(s) under {root}")
    return found


def score_executable(path: PathLike, base_name: str, root: PathLike) -> int:
    """Score how likely ``path`` is the main executable of ``base_name``."""
    path = Path(path)
    filename = path.name.lower()
    base = base_name.lower()

    rel_path = os.path.relpath(path, root).replace(os.sep, "/").strip("/")
    depth = len(rel_path.split("/"))

    score = (MAX_DEPTH + 1 - depth) * 10
    if depth > MAX_DEPTH:
        score -= DEEP_PATH_PENALTY

    if base and filename in (base, f"{base}.exe"):
        score += EXACT_MATCH_BONUS
    elif base and base in filename:
        score += PARTIAL_MATCH_BONUS

    for pattern in PENALTY_PATTERNS:
        if pattern in filename:
            score -= PENALTY_SCORE

    try:
        size = path.stat().st_size
    except OSError:
        size = None
    if size is not None:
        if size > LARGE_SIZE:
            score += 30
        elif size > MEDIUM_SIZE:
            score += 10
        elif size < SMALL_SIZE:
            score -= 20

    if "/bin/" in rel_path.lower():
        score += BIN_DIR_BONUS

    return score


def rank_executables(
    candidates: Sequence[PathLike], base_name: str, root: PathLike
) -> List[ExecCandidate]:
    """Score every candidate and return them best first, ties in input order."""
    scored = [
        ExecCandidate(Path(p), score_executable(p, base_name, root), i)
        for i, p in enumerate(candidates)
    ]
    for candidate in scored:
        logger.debug(f"scored executable candidate {candidate.path}: {candidate.score}")
    return sorted(scored, key=lambda c: (-c.score, c.order))


def choose_best_executable(
    candidates: Sequence[PathLike], base_name: str, root: PathLike
) -> Path:
    """
    Pick the main executable among ``candidates``.

    Raises:
        NoExecutableFoundError: If there are no candidates.
    """
    if not candidates:
        raise NoExecutableFoundError(
            f"no executables found in {root}",
            hint="The package must contain at least one ELF executable",
        )
    if len(candidates) == 1:
        return Path(candidates[0])

    best = rank_executables(candidates, base_name, root)[0]
    logger.debug(
        f"selected primary executable {best.path} "
        f"(score {best.score}, {len(candidates)} candidates)"
    )
    return best.path
