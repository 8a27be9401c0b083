#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Application name derivation: filename cleanup, normalisation and display names.
"""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Optional, Union

ARCH_SUFFIX_TOKENS = frozenset(
    {
        "x86", "x64", "x86_64", "x86-64", "amd64", "arm", "arm64", "aarch64",
        "armhf", "armv7", "armv7l", "armv6", "armel", "riscv64", "ppc64le",
        "s390x", "i386", "i686", "ia32", "sparc",
    }
)

PLATFORM_SUFFIX_TOKENS = frozenset(
    {
        "linux", "win", "windows", "mac", "macos", "osx", "darwin", "unix",
        "gnu", "glibc", "musl", "appimage", "portable", "release", "cli", "gtk",
        "qt", "flatpak", "tarball", "tar",
    }
)

RELEASE_SUFFIX_PREFIXES = ("rc", "beta", "alpha", "nightly", "snapshot", "preview")

COMMON_ACRONYMS = frozenset(
    {
        "API", "SDK", "IDE", "CLI", "GUI", "UI", "UX", "HTML", "CSS", "JS",
        "JSON", "XML", "SQL", "HTTP", "HTTPS", "FTP", "SSH", "VPN", "DNS", "URL",
        "ESR", "LTS", "RC", "DVD", "CD", "USB", "RAM", "CPU", "GPU", "AI", "ML",
        "AR", "VR", "OS", "DB", "VM",
    }
)

# Longest first so ".tar.gz" wins over ".gz".
PACKAGE_EXTENSIONS = (
    ".tar.gz", ".tar.xz", ".tar.bz2", ".appimage", ".tgz", ".txz", ".tbz2",
    ".tar", ".zip", ".deb", ".rpm",
)

RPM_ARCH_SUFFIXES = (
    ".x86_64", ".aarch64", ".i686", ".i386", ".noarch", ".armv7hl", ".ppc64le",
    ".s390x",
)

_VERSION_PATTERNS = (
    re.compile(r"v?(\d+\.\d+\.\d+(?:\.\d+)?(?:-(?:alpha|beta|rc|dev)\d*)?(?:\+[a-z0-9]+)?)"),
    re.compile(r"v?(\d+\.\d+)(?:[^0-9]|$)"),
    re.compile(r"v?(\d+)(?:[^0-9]|$)"),
)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9._-]")


def strip_package_extension(filename: Union[str, Path]) -> str:
    """Return the basename of ``filename`` without a known package extension."""
    name = Path(filename).name
    lowered = name.lower()
    for ext in PACKAGE_EXTENSIONS:
        if lowered.endswith(ext):
            return name[: -len(ext)]
    return name


def _looks_numeric(token: str) -> bool:
    return any(c.isdigit() for c in token) and all(c.isdigit() or c == "." for c in token)


def _is_suffix_token(token: str) -> bool:
    token = token.strip("-_.")
    if not token:
        return False
    if _looks_numeric(token) or (token[0] == "v" and _looks_numeric(token[1:])):
        return True
    if token in ARCH_SUFFIX_TOKENS or token.replace("_", "-") in ARCH_SUFFIX_TOKENS:
        return True
    if token in PLATFORM_SUFFIX_TOKENS:
        return True
    return token.startswith(RELEASE_SUFFIX_PREFIXES)


def clean_app_name(base_name: str) -> str:
    """
    Strip trailing version, architecture, platform and release tokens.

    >>> clean_app_name("Obsidian-1.5.3-x86_64")
    'Obsidian'
    """
    tokens = base_name.split("-")
    while len(tokens) > 1 and _is_suffix_token(tokens[-1].strip(" ._").lower()):
        tokens.pop()
    return "-".join(tokens)


def format_display_name(name: str) -> str:
    """Humanise a name: separators become spaces, words are title-cased, acronyms kept."""
    words = name.replace("-", " ").replace("_", " ").split()
    formatted = []
    for word in words:
        upper = word.upper()
        formatted.append(upper if upper in COMMON_ACRONYMS else word[0].upper() + word[1:].lower())
    return " ".join(formatted)


def normalize_filename(name: str) -> str:
    """Lowercase, map spaces and underscores to hyphens and drop unsafe characters."""
    name = name.lower().replace(" ", "-").replace("_", "-")
    return _UNSAFE_CHARS.sub("", name)


def generate_install_id(name: str, now: Optional[float] = None) -> str:
    return f"{name}-{int(now if now is not None else time.time())}"


def extract_rpm_base_name(filename: str) -> str:
    """
    Derive a package name from an RPM filename.

    >>> extract_rpm_base_name("GitButler_Nightly-0.5.1650-1.x86_64.rpm")
    'GitButler_Nightly'
    """
    name = Path(filename).name
    if name.endswith(".rpm"):
        name = name[: -len(".rpm")]
    for arch in RPM_ARCH_SUFFIXES:
        if name.endswith(arch):
            name = name[: -len(arch)]

    parts = name.split("-")
    if len(parts) < 2:
        return name
    for i in range(len(parts) - 1, 0, -1):
        if parts[i] and parts[i][0].isdigit():
            continue
        return "-".join(parts[: i + 1])
    return parts[0]


def extract_version_from_filename(filename: Union[str, Path]) -> str:
    """Best-effort version string embedded in a package filename."""
    name = strip_package_extension(str(filename).lower())
    for pattern in _VERSION_PATTERNS:
        match = pattern.search(name)
        if match and match.group(1):
            return match.group(1)
    return ""
