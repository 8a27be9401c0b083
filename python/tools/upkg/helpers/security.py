#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Validation of names, paths and environment variables derived from untrusted packages.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union

from ..core.errors import InvalidInputError

PathLike = Union[str, Path]

VALID_PACKAGE_NAME = re.compile(r"^[a-zA-Z0-9._-]+$")
VALID_ENV_NAME = re.compile(r"^[A-Z_][A-Z0-9_]*$")
MAX_NAME_LENGTH = 255
MAX_PATH_LENGTH = 4096

SUSPICIOUS_NAME_PATTERNS = (
    "../", "..\\", "~/", "/etc/", "/bin/", "/sbin/", "/usr/bin/", "/usr/sbin/",
)


def validate_package_name(name: str) -> None:
    """
    Reject names that are empty, too long, or could escape a directory.

    Raises:
        InvalidInputError: If the name is unsafe.
    """
    if not name:
        raise InvalidInputError("package name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidInputError(f"package name too long (max {MAX_NAME_LENGTH} characters)")
    if not VALID_PACKAGE_NAME.match(name):
        raise InvalidInputError(
            f"invalid package name {name!r}: must contain only alphanumeric, "
            "dash, underscore, or dot characters"
        )
    if name in (".", "..") or name.startswith(("-", ".")):
        raise InvalidInputError(f"invalid package name {name!r}: unsafe leading character")
    lowered = name.lower()
    for pattern in SUSPICIOUS_NAME_PATTERNS:
        if pattern in lowered:
            raise InvalidInputError(f"package name contains suspicious pattern: {pattern}")


def validate_path(path: PathLike) -> None:
    value = str(path)
    if "\x00" in value:
        raise InvalidInputError(f"path contains null bytes: {value!r}")
    if len(value) > MAX_PATH_LENGTH:
        raise InvalidInputError(f"path too long: {len(value)} characters")


def is_within_directory(target: PathLike, base: PathLike) -> bool:
    base_abs = os.path.abspath(base)
    target_abs = os.path.abspath(target)
    return target_abs == base_abs or target_abs.startswith(base_abs + os.sep)


def validate_extract_path(target_dir: PathLike, member: str) -> Path:
    """
    Resolve an archive member name inside ``target_dir``.

    Raises:
        InvalidInputError: If the member is absolute or escapes the directory.
    """
    cleaned = os.path.normpath(member)
    if os.path.isabs(member) or cleaned.startswith(".."):
        raise InvalidInputError(f"archive entry escapes destination: {member}")
    if ".." in Path(cleaned).parts:
        raise InvalidInputError(f"archive entry contains '..': {member}")
    destination = Path(target_dir, cleaned)
    if not is_within_directory(destination, target_dir):
        raise InvalidInputError(f"archive entry escapes destination: {member}")
    return destination


def validate_symlink(target_dir: PathLike, link_path: PathLike, link_target: str) -> None:
    """
    Raises:
        InvalidInputError: If the symlink would point outside ``target_dir``.
    """
    resolved = os.path.join(os.path.dirname(link_path), link_target)
    if os.path.isabs(link_target) or not is_within_directory(resolved, target_dir):
        raise InvalidInputError(
            f"symlink target escapes destination: {link_path} -> {link_target}"
        )


def validate_environment_variable(name: str, value: str) -> None:
    if not name:
        raise InvalidInputError("environment variable name cannot be empty")
    if not VALID_ENV_NAME.match(name):
        raise InvalidInputError(f"invalid environment variable name: {name}")
    if "\x00" in value or "\n" in value or "\r" in value:
        raise InvalidInputError(f"environment variable {name} contains control characters")
