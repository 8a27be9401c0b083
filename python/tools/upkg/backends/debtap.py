#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
debtap conversion support shared by the DEB and RPM backends.

debtap turns a foreign package into an Arch ``.pkg.tar.*`` that pacman can
install. Its dependency translation is imperfect, so converted packages get
their ``.PKGINFO`` repaired before installation.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from ..core.errors import ErrorContext, ExternalToolError, UpkgError
from ..helpers.runner import CONVERT_TIMEOUT, EXTRACT_TIMEOUT, METADATA_TIMEOUT, CommandRunner

PathLike = Union[str, Path]

DEBTAP_CACHE_DIR = Path("/var/cache/debtap")
DEBTAP_CACHE_FILES = ("debian-main-packages-files", "ubuntu-packages-files", "virtual-packages")

DEPEND_PREFIX = "depend = "
VERSION_OPERATORS = (">=", "<=", "=", ">", "<")
INVALID_DEPENDENCIES = ("anaconda", "apparmor.d-git", "cura-bin")
# Names debtap fuses with an epoch-stripped version, e.g. libx111.4.99.1
FUSED_VERSION_DEPENDENCIES = ("libx11", "libxcomposite", "libxdamage", "libxkbfile", "nspr")


@dataclass
class PkgInfo:
    name: str = ""
    version: str = ""


def is_debtap_initialized(cache_dir: PathLike = DEBTAP_CACHE_DIR) -> bool:
    """debtap is usable once ``debtap -u`` has fetched at least two of its package lists."""
    cache_dir = Path(cache_dir)
    if not cache_dir.is_dir():
        return False
    found = sum(1 for name in DEBTAP_CACHE_FILES if (cache_dir / name).exists())
    return found >= 2


def convert(runner: CommandRunner, package: PathLike, output_dir: PathLike) -> Path:
    """
    Convert ``package`` with ``debtap -q -Q`` inside ``output_dir``.

    Raises:
        ExternalToolError: If debtap fails or times out
        UpkgError: If debtap produced no package
    """
    source = Path(package).resolve()
    logger.info(f"Converting {source.name} with debtap (this may take a while)")
    runner.run(["debtap", "-q", "-Q", str(source)], cwd=output_dir, timeout=CONVERT_TIMEOUT)

    generated = sorted(Path(output_dir).glob("*.pkg.tar.*"))
    if not generated:
        raise UpkgError(
            f"no arch package generated by debtap for {source.name}",
            context=ErrorContext(working_directory=Path(output_dir)),
        )
    logger.debug(f"debtap produced {generated[0].name}")
    return generated[0]


def dependency_name(dep: str) -> str:
    for op in VERSION_OPERATORS:
        idx = dep.find(op)
        if idx != -1:
            return dep[:idx]
    return dep


def fix_dependency_line(line: str) -> Optional[str]:
    """
    Repair one ``depend = ...`` line of a ``.PKGINFO``.

    Returns None when the dependency is a debtap artifact and must be dropped.

    >>> fix_dependency_line("depend = c>=2.17")
    'depend = glibc>=2.17'
    >>> fix_dependency_line("depend = libx111.4.99.1")
    'depend = libx11>=1.4.99.1'
    """
    if not line.startswith(DEPEND_PREFIX):
        return line
    dep = line[len(DEPEND_PREFIX):]

    if dependency_name(dep).startswith(INVALID_DEPENDENCIES):
        return None

    if len(dep) > 1 and dep[0] == "c" and dep[1] in "<>=":
        return f"{DEPEND_PREFIX}glibc{dep[1:]}"

    for name in FUSED_VERSION_DEPENDENCIES:
        rest = dep[len(name):]
        if dep.startswith(name) and rest[:1].isdigit():
            return f"{DEPEND_PREFIX}{name}>={rest}"
    return line


def fix_pkginfo(content: str) -> Optional[str]:
    """Return the repaired ``.PKGINFO`` text, or None when nothing needed fixing."""
    fixed: List[str] = []
    changed = False
    for line in content.split("\n"):
        repaired = fix_dependency_line(line)
        if repaired != line:
            changed = True
        if repaired is not None:
            fixed.append(repaired)
    return "\n".join(fixed) if changed else None


def fix_malformed_dependencies(runner: CommandRunner, pkg_file: PathLike) -> bool:
    """
    Unpack ``pkg_file`` with bsdtar, repair its ``.PKGINFO`` and repack it
    in place with zstd. Returns True if the package was rewritten.

    Raises:
        ExternalToolError: If bsdtar fails
        OSError: If the unpacked ``.PKGINFO`` cannot be read or written
    """
    with tempfile.TemporaryDirectory(prefix="upkg-fix-deps-") as tmp:
        runner.run(["bsdtar", "-xf", str(pkg_file), "-C", tmp], timeout=EXTRACT_TIMEOUT)
        pkginfo = Path(tmp, ".PKGINFO")
        repaired = fix_pkginfo(pkginfo.read_text(encoding="utf-8"))
        if repaired is None:
            return False
        pkginfo.write_text(repaired, encoding="utf-8")

        # explicit member list keeps bsdtar from writing a ./ prefix pacman rejects
        members = sorted(os.listdir(tmp))
        runner.run(
            ["bsdtar", "--zstd", "-cf", str(pkg_file), "-C", tmp, *members],
            timeout=EXTRACT_TIMEOUT,
        )
    logger.info(f"Repaired malformed dependencies in {Path(pkg_file).name}")
    return True


def read_pkginfo(runner: CommandRunner, pkg_file: PathLike) -> PkgInfo:
    """
    Read pkgname and pkgver from the ``.PKGINFO`` inside an Arch package.

    Raises:
        ExternalToolError: If bsdtar fails or the package has no pkgname
    """
    output = runner.run_output(["bsdtar", "-xOf", str(pkg_file), ".PKGINFO"], timeout=METADATA_TIMEOUT)
    info = PkgInfo()
    for line in output.splitlines():
        if line.startswith("pkgname = "):
            info.name = line[len("pkgname = "):].strip()
        elif line.startswith("pkgver = "):
            info.version = line[len("pkgver = "):].strip()
    if not info.name:
        raise ExternalToolError(
            f"pkgname not found in .PKGINFO of {Path(pkg_file).name}",
            command=["bsdtar", "-xOf", str(pkg_file), ".PKGINFO"],
        )
    return info
