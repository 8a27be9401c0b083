#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Data models shared by the backends, the record store and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, TypedDict

METADATA_SCHEMA_VERSION = 1


class PackageType(str, Enum):
    """Package formats understood by the engine."""

    DEB = "deb"
    RPM = "rpm"
    APPIMAGE = "appimage"
    TARBALL = "tarball"
    ZIP = "zip"
    BINARY = "binary"


class InstallMethod(str, Enum):
    """How the package's files ended up on disk."""

    LOCAL = "local"
    PACMAN = "pacman"


class WaylandSupport(str, Enum):
    """Detected Wayland compatibility of an installed application."""

    UNKNOWN = "unknown"
    NATIVE = "native"
    XWAYLAND = "xwayland"
    HYBRID = "hybrid"


class ExitCode(IntEnum):
    """Process exit codes used by the CLI."""

    SUCCESS = 0
    GENERAL = 1
    INVALID_ARGS = 2
    INSTALL_FAILED = 3
    UNINSTALL_FAILED = 4
    DATABASE = 5
    PERMISSION = 6
    NETWORK = 7
    COMMAND_NOT_FOUND = 8
    INTERRUPTED = 130


class CommandResult(TypedDict):
    """Type definition for command execution results"""

    success: bool
    stdout: str
    stderr: str
    command: List[str]
    return_code: int


@dataclass
class InstallOptions:
    """Options recognised by every backend's install."""

    force: bool = False
    skip_desktop: bool = False
    custom_name: str = ""
    skip_wayland_env: bool = False
    overwrite: bool = False


@dataclass
class IconFile:
    """An icon discovered in an extracted package tree."""

    path: Path
    size: str
    ext: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": str(self.path), "size": self.size, "ext": self.ext}


@dataclass
class ExtractedMeta:
    """Fields harvested from a .desktop file bundled inside a package."""

    categories: List[str] = field(default_factory=list)
    comment: str = ""
    startup_wm_class: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories": list(self.categories),
            "comment": self.comment,
            "startup_wm_class": self.startup_wm_class,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> ExtractedMeta:
        data = data or {}
        return cls(
            categories=list(data.get("categories") or []),
            comment=data.get("comment") or "",
            startup_wm_class=data.get("startup_wm_class") or "",
        )


@dataclass
class Metadata:
    """
    Typed per-record metadata.

    Persisted as JSON tagged with ``schema_version`` so older payloads can be
    decoded by ``from_dict``.
    """

    icon_files: List[str] = field(default_factory=list)
    wrapper_script: str = ""
    wayland_support: WaylandSupport = WaylandSupport.UNKNOWN
    install_method: InstallMethod = InstallMethod.LOCAL
    desktop_files: List[str] = field(default_factory=list)
    extracted_meta: Optional[ExtractedMeta] = None
    original_desktop_file: str = ""

    def add_icon(self, path: str | Path) -> None:
        """Append an icon path, keeping the list ordered and free of duplicates."""
        value = str(path)
        if value not in self.icon_files:
            self.icon_files.append(value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": METADATA_SCHEMA_VERSION,
            "icon_files": list(self.icon_files),
            "wrapper_script": self.wrapper_script,
            "wayland_support": self.wayland_support.value,
            "install_method": self.install_method.value,
            "desktop_files": list(self.desktop_files),
            "extracted_meta": (
                self.extracted_meta.to_dict() if self.extracted_meta else None
            ),
            "original_desktop_file": self.original_desktop_file,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Metadata:
        """Decode a stored payload, accepting unversioned legacy maps."""
        data = data or {}
        version = data.get("schema_version", 0)
        if version > METADATA_SCHEMA_VERSION:
            raise ValueError(f"unsupported metadata schema version: {version}")

        icons: List[str] = []
        for item in data.get("icon_files") or []:
            # legacy payloads stored full icon objects
            value = item.get("path", "") if isinstance(item, dict) else str(item)
            if value and value not in icons:
                icons.append(value)

        extracted = data.get("extracted_meta")
        return cls(
            icon_files=icons,
            wrapper_script=data.get("wrapper_script") or "",
            wayland_support=_enum_or_default(
                WaylandSupport, data.get("wayland_support"), WaylandSupport.UNKNOWN
            ),
            install_method=_enum_or_default(
                InstallMethod, data.get("install_method"), InstallMethod.LOCAL
            ),
            desktop_files=[str(p) for p in data.get("desktop_files") or []],
            extracted_meta=(
                ExtractedMeta.from_dict(extracted) if isinstance(extracted, dict) else None
            ),
            original_desktop_file=data.get("original_desktop_file") or "",
        )


def _enum_or_default(enum_cls, value, default):
    try:
        return enum_cls(value) if value else default
    except ValueError:
        return default


@dataclass
class InstallRecord:
    """The durable description of one installed package."""

    install_id: str
    package_type: PackageType
    name: str
    version: str = ""
    install_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    original_file: str = ""
    install_path: str = ""
    desktop_file: str = ""
    metadata: Metadata = field(default_factory=Metadata)

    def artifact_paths(self) -> List[Path]:
        """Every filesystem artifact this record claims to own."""
        paths = [
            self.install_path,
            self.metadata.wrapper_script,
            self.desktop_file,
            *self.metadata.desktop_files,
            *self.metadata.icon_files,
        ]
        seen: List[Path] = []
        for value in paths:
            if value and Path(value) not in seen:
                seen.append(Path(value))
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "install_id": self.install_id,
            "package_type": self.package_type.value,
            "name": self.name,
            "version": self.version,
            "install_date": self.install_date.isoformat(),
            "original_file": self.original_file,
            "install_path": self.install_path,
            "desktop_file": self.desktop_file,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InstallRecord:
        install_date = data.get("install_date")
        if isinstance(install_date, str):
            install_date = datetime.fromisoformat(install_date)
        return cls(
            install_id=data["install_id"],
            package_type=PackageType(data["package_type"]),
            name=data["name"],
            version=data.get("version") or "",
            install_date=install_date or datetime.now(timezone.utc),
            original_file=data.get("original_file") or "",
            install_path=data.get("install_path") or "",
            desktop_file=data.get("desktop_file") or "",
            metadata=Metadata.from_dict(data.get("metadata")),
        )
