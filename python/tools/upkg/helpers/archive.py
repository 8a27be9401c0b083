#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Native tar and zip extraction with path traversal and archive-bomb guards.
"""

from __future__ import annotations

import os
import shutil
import stat
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Union

from loguru import logger

from ..core.errors import InvalidInputError, UpkgError
from .detection import FileType
from .security import validate_extract_path, validate_symlink

PathLike = Union[str, Path]

_COPY_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class ExtractionLimits:
    """Upper bounds applied while extracting untrusted archives."""

    max_total_size: int = 10 * 1024**3
    max_files: int = 100_000
    max_file_size: int = 5 * 1024**3
    max_ratio: int = 1000


class ArchiveError(UpkgError):
    """The archive is corrupt, unsupported or exceeds extraction limits."""


class _Budget:
    def __init__(self, archive_size: int, limits: ExtractionLimits) -> None:
        self.archive_size = max(archive_size, 1)
        self.limits = limits
        self.files = 0
        self.total = 0

    def add_entry(self, name: str) -> None:
        self.files += 1
        if self.files > self.limits.max_files:
            raise ArchiveError(f"archive has too many entries (max {self.limits.max_files})")

    def add_bytes(self, name: str, written: int, count: int) -> None:
        self.total += count
        if written > self.limits.max_file_size:
            raise ArchiveError(f"archive entry too large: {name}")
        if self.total > self.limits.max_total_size:
            raise ArchiveError("archive expands beyond the total size limit")
        if self.total / self.archive_size > self.limits.max_ratio:
            raise ArchiveError(
                f"suspicious compression ratio (> {self.limits.max_ratio}:1), "
                "possible archive bomb"
            )


def _copy_stream(src: IO[bytes], dest: Path, name: str, budget: _Budget, mode: int) -> None:
    written = 0
    with open(dest, "wb") as out:
        while True:
            chunk = src.read(_COPY_CHUNK)
            if not chunk:
                break
            written += len(chunk)
            budget.add_bytes(name, written, len(chunk))
            out.write(chunk)
    os.chmod(dest, (mode & 0o777) or 0o644)


def extract_tar(
    archive: PathLike,
    dest_dir: PathLike,
    compression: str = "",
    limits: ExtractionLimits = ExtractionLimits(),
) -> None:
    """
    Extract a tar archive member by member into ``dest_dir``.

    Args:
        archive: The tarball path
        dest_dir: Existing destination directory
        compression: "", "gz", "xz" or "bz2"
        limits: Extraction bounds

    Raises:
        ArchiveError: If the archive is unreadable or exceeds a limit
        InvalidInputError: If a member escapes ``dest_dir``
    """
    dest_dir = Path(dest_dir)
    budget = _Budget(Path(archive).stat().st_size, limits)
    mode = f"r:{compression}" if compression else "r:"

    try:
        with tarfile.open(archive, mode) as tar:
            for member in tar:
                budget.add_entry(member.name)
                target = validate_extract_path(dest_dir, member.name)

                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    os.chmod(target, (member.mode & 0o777) | 0o700)
                elif member.issym():
                    validate_symlink(dest_dir, target, member.linkname)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    if target.is_symlink() or target.exists():
                        target.unlink()
                    os.symlink(member.linkname, target)
                elif member.islnk():
                    source = validate_extract_path(dest_dir, member.linkname)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(source, target)
                elif member.isfile():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    src = tar.extractfile(member)
                    if src is None:
                        continue
                    with src:
                        _copy_stream(src, target, member.name, budget, member.mode)
                else:
                    logger.debug(f"Skipping special tar member: {member.name}")
    except (tarfile.TarError, EOFError) as e:
        raise ArchiveError(f"failed to read tar archive {archive}: {e}", cause=e) from e


def extract_zip(
    archive: PathLike,
    dest_dir: PathLike,
    limits: ExtractionLimits = ExtractionLimits(),
) -> None:
    """Extract a zip archive into ``dest_dir`` with the same guards as extract_tar."""
    dest_dir = Path(dest_dir)
    budget = _Budget(Path(archive).stat().st_size, limits)

    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                budget.add_entry(info.filename)
                target = validate_extract_path(dest_dir, info.filename)
                unix_mode = info.external_attr >> 16

                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                elif stat.S_ISLNK(unix_mode):
                    link_target = zf.read(info).decode("utf-8")
                    validate_symlink(dest_dir, target, link_target)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    os.symlink(link_target, target)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src:
                        _copy_stream(src, target, info.filename, budget, unix_mode)
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ArchiveError(f"failed to read zip archive {archive}: {e}", cause=e) from e


def extract_archive(archive: PathLike, dest_dir: PathLike, archive_type: str) -> None:
    """Dispatch extraction on an archive ``FileType`` value."""
    logger.debug(f"Extracting {archive_type} archive {archive} -> {dest_dir}")
    match archive_type:
        case FileType.TAR_GZ.value:
            extract_tar(archive, dest_dir, "gz")
        case FileType.TAR_XZ.value:
            extract_tar(archive, dest_dir, "xz")
        case FileType.TAR_BZ2.value:
            extract_tar(archive, dest_dir, "bz2")
        case FileType.TAR.value:
            extract_tar(archive, dest_dir)
        case FileType.ZIP.value:
            extract_zip(archive, dest_dir)
        case _:
            raise InvalidInputError(f"unsupported archive type: {archive_type or archive}")
