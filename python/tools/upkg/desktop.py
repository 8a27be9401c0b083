#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Reading, writing and rewriting freedesktop ``.desktop`` entries.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from loguru import logger

from .core.errors import InvalidInputError
from .helpers.security import validate_environment_variable

PathLike = Union[str, Path]

DESKTOP_ENTRY_GROUP = "[Desktop Entry]"

DEFAULT_WAYLAND_ENV = (
    "GDK_BACKEND=wayland,x11",
    "QT_QPA_PLATFORM=wayland:xcb",
    "MOZ_ENABLE_WAYLAND=1",
    "ELECTRON_OZONE_PLATFORM_HINT=auto",
)

_NEEDS_QUOTING = (" ", ";", '"', "'")


@dataclass
class DesktopEntry:
    """The ``[Desktop Entry]`` group of a .desktop file."""

    type: str = ""
    version: str = ""
    name: str = ""
    generic_name: str = ""
    comment: str = ""
    icon: str = ""
    exec: str = ""
    path: str = ""
    terminal: bool = False
    categories: List[str] = field(default_factory=list)
    mime_type: List[str] = field(default_factory=list)
    startup_wm_class: str = ""
    no_display: bool = False
    keywords: List[str] = field(default_factory=list)
    startup_notify: Optional[bool] = None


_STRING_KEYS = {
    "Type": "type",
    "Version": "version",
    "Name": "name",
    "GenericName": "generic_name",
    "Comment": "comment",
    "Icon": "icon",
    "Exec": "exec",
    "Path": "path",
    "StartupWMClass": "startup_wm_class",
}
_LIST_KEYS = {"Categories": "categories", "MimeType": "mime_type", "Keywords": "keywords"}
_BOOL_KEYS = {"Terminal": "terminal", "NoDisplay": "no_display", "StartupNotify": "startup_notify"}


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(";") if item.strip()]


def parse(text: str) -> DesktopEntry:
    """
    Parse the ``[Desktop Entry]`` group of a .desktop file.

    Localised keys (``Name[de]=``) and other groups are ignored.
    """
    entry = DesktopEntry()
    in_group = False
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            in_group = line == DESKTOP_ENTRY_GROUP
            continue
        if not in_group or "=" not in line:
            continue

        key, value = (part.strip() for part in line.split("=", 1))
        if key in _STRING_KEYS:
            setattr(entry, _STRING_KEYS[key], value)
        elif key in _LIST_KEYS:
            setattr(entry, _LIST_KEYS[key], _split_list(value))
        elif key in _BOOL_KEYS:
            setattr(entry, _BOOL_KEYS[key], value.lower() == "true")
    return entry


def parse_file(path: PathLike) -> DesktopEntry:
    return parse(Path(path).read_text(encoding="utf-8", errors="replace"))


def write(entry: DesktopEntry) -> str:
    """Serialise an entry; Type, Name and Exec always come first."""
    lines = [
        DESKTOP_ENTRY_GROUP,
        f"Type={entry.type}",
        f"Name={entry.name}",
        f"Exec={entry.exec}",
    ]
    optional = (
        ("Version", entry.version),
        ("GenericName", entry.generic_name),
        ("Comment", entry.comment),
        ("Icon", entry.icon),
        ("Path", entry.path),
    )
    lines.extend(f"{key}={value}" for key, value in optional if value)
    for key, attr in _LIST_KEYS.items():
        values = getattr(entry, attr)
        if values:
            lines.append(f"{key}={';'.join(values)};")
    if entry.terminal:
        lines.append("Terminal=true")
    if entry.no_display:
        lines.append("NoDisplay=true")
    if entry.startup_notify is not None:
        lines.append(f"StartupNotify={'true' if entry.startup_notify else 'false'}")
    if entry.startup_wm_class:
        lines.append(f"StartupWMClass={entry.startup_wm_class}")
    return "\n".join(lines) + "\n"


def validate(entry: DesktopEntry) -> None:
    """
    Raises:
        InvalidInputError: If Type, Name or Exec is missing.
    """
    for key, value in (("Type", entry.type), ("Name", entry.name), ("Exec", entry.exec)):
        if not value:
            raise InvalidInputError(f"{key} field is required in desktop entry")


def escape_exec_token(token: str) -> str:
    """Escape one ``KEY=value`` token for use on an Exec line."""
    key, sep, value = token.partition("=")
    if not sep:
        key, value = "", token
    quote = any(c in value for c in _NEEDS_QUOTING)
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("'", "\\'")
    if quote:
        escaped = f'"{escaped}"'
    return f"{key}={escaped}" if sep else escaped


def inject_wayland_env_vars(
    entry: DesktopEntry, custom_vars: Optional[Sequence[str]] = None
) -> None:
    """
    Prefix ``entry.exec`` with an ``env`` block of Wayland compatibility variables.

    An Exec line that already starts with ``env`` is left alone.

    Raises:
        InvalidInputError: If any custom variable is malformed; the entry is
            not modified in that case.
    """
    invalid = []
    valid_custom = []
    for raw in custom_vars or ():
        name, sep, value = raw.partition("=")
        if not sep:
            invalid.append(raw)
            continue
        try:
            validate_environment_variable(name, value)
        except InvalidInputError:
            invalid.append(raw)
            continue
        valid_custom.append(raw)
    if invalid:
        raise InvalidInputError(f"invalid custom env vars: {invalid}")

    if entry.exec.startswith("env "):
        return
    tokens = [escape_exec_token(v) for v in (*DEFAULT_WAYLAND_ENV, *valid_custom)]
    entry.exec = "env " + " ".join(tokens) + " " + entry.exec


def apply_wayland_env(
    entry: DesktopEntry, custom_vars: Optional[Sequence[str]], app_name: str = ""
) -> None:
    """Inject custom and default variables, falling back to defaults only if the custom ones are invalid."""
    try:
        inject_wayland_env_vars(entry, custom_vars)
    except InvalidInputError as e:
        logger.warning(f"{e}; injecting default Wayland env vars only for {app_name or entry.name}")
        inject_wayland_env_vars(entry, None)


def is_tauri_app(entry: DesktopEntry) -> bool:
    return "tauri" in entry.startup_wm_class.lower()


def write_desktop_file(path: PathLike, entry: DesktopEntry, tx=None) -> Path:
    """
    Validate ``entry`` and write it to ``path`` with mode 0644.

    When a transaction is given the write is recorded, as a new file or as a
    modification of an existing one.
    """
    validate(entry)
    path = Path(path)
    if tx is not None:
        if path.exists():
            tx.modified_file(path, f"rewrote desktop file {path}")
        else:
            tx.created_file(path, f"created desktop file {path}")
    path.write_text(write(entry), encoding="utf-8")
    os.chmod(path, 0o644)
    return path
