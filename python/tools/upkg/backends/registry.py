#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Backend registry: fixed-priority format detection and lookup by name.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Type, Union

from loguru import logger

from ..cache import CacheManager
from ..config import Config
from ..core.errors import NoBackendError, NotFoundError, UpkgError
from ..core.models import PackageType
from ..helpers.detection import describe_header, read_header
from ..helpers.runner import CommandRunner
from ..paths import Paths
from ..syspkg import PacmanProvider
from .appimage import AppImageBackend
from .base import Backend
from .binary import BinaryBackend
from .deb import DebBackend
from .rpm import RpmBackend
from .tarball import TarballBackend

# Detection order. AppImages are ELF files too, so AppImage must precede Binary.
BACKEND_ORDER: Tuple[Tuple[PackageType, Type[Backend]], ...] = (
    (PackageType.DEB, DebBackend),
    (PackageType.RPM, RpmBackend),
    (PackageType.APPIMAGE, AppImageBackend),
    (PackageType.BINARY, BinaryBackend),
    (PackageType.TARBALL, TarballBackend),
)

SUPPORTED_TYPES = (
    "AppImage (.AppImage)",
    "DEB (.deb)",
    "RPM (.rpm)",
    "Tarball (.tar.gz, .tar.xz, .tar.bz2, .tgz)",
    "Zip (.zip)",
    "ELF Binary (executable files)",
)

# (note appended to the message, hint) keyed by detected type or extension
_TYPE_NOTES: Dict[str, Tuple[str, str]] = {
    "shell script": (
        "Shell scripts and text files are not supported as standalone packages.",
        "Package your script in a tarball (.tar.gz) with any required assets.",
    ),
    "text": (
        "Shell scripts and text files are not supported as standalone packages.",
        "Package your script in a tarball (.tar.gz) with any required assets.",
    ),
}
_EXTENSION_NOTES: Dict[str, Tuple[str, str]] = {
    ".flatpak": ("This looks like a Flatpak package.", "Use: flatpak install <file-or-ref>"),
    ".flatpakref": ("This looks like a Flatpak package.", "Use: flatpak install <file-or-ref>"),
    ".flatpakrepo": ("This looks like a Flatpak package.", "Use: flatpak install <file-or-ref>"),
    ".snap": ("This looks like a Snap package.", "Use: sudo snap install <file.snap>"),
}


class BackendRegistry:
    """
    Owns one instance of every backend, sharing a runner, cache manager and
    system package provider between them.
    """

    def __init__(
        self,
        config: Config,
        paths: Paths,
        runner: Optional[CommandRunner] = None,
    ) -> None:
        self.runner = runner or CommandRunner()
        cache = CacheManager(self.runner)
        syspkg = PacmanProvider(self.runner)
        self._backends: List[Tuple[PackageType, Backend]] = [
            (ptype, cls(config, paths, runner=self.runner, cache=cache, syspkg=syspkg))
            for ptype, cls in BACKEND_ORDER
        ]

    def detect_backend(self, path: Union[str, Path]) -> Backend:
        """
        Return the first backend, in priority order, that accepts ``path``.

        Raises:
            NoBackendError: If no backend accepts the file
        """
        logger.debug(f"Detecting backend for {path}")
        for _, backend in self._backends:
            try:
                matched = backend.detect(path)
            except (OSError, UpkgError) as e:
                logger.warning(f"Backend {backend.name} detection failed for {path}: {e}")
                continue
            if matched:
                logger.info(f"Detected {backend.name} package: {path}")
                return backend
        raise self._detection_error(Path(path))

    @staticmethod
    def _detection_error(path: Path) -> NoBackendError:
        try:
            detected = describe_header(read_header(path))
        except OSError as e:
            logger.debug(f"Cannot read {path} for diagnostics: {e}")
            detected = "unknown"

        lines = [
            f"cannot detect package type for: {path}",
            "",
            f"Detected file type: {detected}",
            "",
            "Supported package types:",
            *(f"  • {t}" for t in SUPPORTED_TYPES),
        ]
        hints: List[str] = []
        for note in (_TYPE_NOTES.get(detected), _EXTENSION_NOTES.get(path.suffix.lower())):
            if note is not None:
                lines.extend(["", f"Note: {note[0]}"])
                hints.append(note[1])

        return NoBackendError(
            "\n".join(lines),
            path=path,
            detected_type=detected,
            hint="\n".join(hints) or None,
        )

    def get_backend(self, name: str) -> Backend:
        """
        Look a backend up by name. ``zip`` resolves to the tarball backend.

        Raises:
            NotFoundError: If no backend has that name
        """
        if name == PackageType.ZIP.value:
            name = PackageType.TARBALL.value
        for _, backend in self._backends:
            if backend.name == name:
                return backend
        raise NotFoundError(f"backend not found: {name}")

    def list_backends(self) -> List[str]:
        return [backend.name for _, backend in self._backends]
