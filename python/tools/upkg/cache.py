#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Best-effort refresh of the desktop database and the GTK icon cache.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from .core.errors import ExternalToolError
from .helpers.runner import CACHE_TIMEOUT, CommandRunner

PathLike = Union[str, Path]

SYSTEM_PREFIXES = ("/usr", "/opt", "/var", "/etc")
ICON_CACHE_COMMANDS = ("gtk4-update-icon-cache", "gtk-update-icon-cache")


def needs_sudo(path: PathLike) -> bool:
    """True for paths under a system prefix that a normal user cannot write."""
    cleaned = os.path.normpath(str(path))
    return any(cleaned == p or cleaned.startswith(p + "/") for p in SYSTEM_PREFIXES)


class CacheManager:
    """
    Runs the cache refresh tools after an install or uninstall.

    Failures never propagate: a stale cache only delays the menu entry or
    icon appearing, it does not invalidate the install.
    """

    def __init__(self, runner: Optional[CommandRunner] = None) -> None:
        self.runner = runner or CommandRunner()

    def icon_cache_command(self) -> Optional[str]:
        for name in ICON_CACHE_COMMANDS:
            if self.runner.command_exists(name):
                return name
        return None

    def _run(self, command: List[str], target: PathLike, what: str) -> bool:
        if needs_sudo(target):
            command = [*self.runner.sudo_prefix(), *command]
        try:
            self.runner.run(command, timeout=CACHE_TIMEOUT)
        except ExternalToolError as e:
            logger.warning(f"{what} update failed (non-fatal): {e.message}")
            return False
        logger.debug(f"{what} updated for {target}")
        return True

    def update_desktop_database(self, apps_dir: PathLike) -> bool:
        if not self.runner.command_exists("update-desktop-database"):
            logger.warning("update-desktop-database not found, skipping desktop database update")
            return False
        return self._run(["update-desktop-database", str(apps_dir)], apps_dir, "desktop database")

    def update_icon_cache(self, hicolor_dir: PathLike) -> bool:
        command = self.icon_cache_command()
        if command is None:
            logger.warning("gtk-update-icon-cache not found, skipping icon cache update")
            return False
        return self._run([command, "-f", "-t", str(hicolor_dir)], hicolor_dir, "icon cache")

    def refresh(self, apps_dir: PathLike, hicolor_dir: PathLike) -> None:
        """Refresh both caches; directories that do not exist are skipped."""
        if Path(apps_dir).is_dir():
            self.update_desktop_database(apps_dir)
        if Path(hicolor_dir).is_dir():
            self.update_icon_cache(hicolor_dir)
