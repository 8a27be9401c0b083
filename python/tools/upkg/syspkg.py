#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
System package manager integration for packages converted with debtap.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from .core.errors import ExternalToolError
from .helpers.runner import METADATA_TIMEOUT, SYSTEM_INSTALL_TIMEOUT, CommandRunner

NOT_FOUND_MARKERS = ("target not found", "was not found")


@dataclass
class SystemPackageInfo:
    name: str
    version: str = ""


class PacmanProvider:
    """
    Thin wrapper around ``pacman`` for installing and removing local package files.
    """

    name = "pacman"

    def __init__(self, runner: Optional[CommandRunner] = None) -> None:
        self.runner = runner or CommandRunner()

    def available(self) -> bool:
        return self.runner.command_exists("pacman")

    def install_command(self, pkg_file: Union[str, Path], overwrite: bool = False) -> List[str]:
        cmd = [*self.runner.sudo_prefix(), "pacman", "-U", "--noconfirm"]
        if overwrite:
            cmd.extend(["--overwrite", "*"])
        cmd.append(str(pkg_file))
        return cmd

    def remove_command(self, package_name: str) -> List[str]:
        return [*self.runner.sudo_prefix(), "pacman", "-R", "--noconfirm", package_name]

    def install(self, pkg_file: Union[str, Path], overwrite: bool = False) -> None:
        """
        Install a local package file.

        Raises:
            ExternalToolError: If pacman fails or times out
        """
        logger.info(f"Installing {pkg_file} with pacman")
        self.runner.run(
            self.install_command(pkg_file, overwrite), timeout=SYSTEM_INSTALL_TIMEOUT
        )

    def remove(self, package_name: str) -> bool:
        """
        Remove a package. A package that is already gone counts as removed.

        Returns:
            True if pacman removed the package, False if it was not installed

        Raises:
            ExternalToolError: For any other pacman failure
        """
        try:
            self.runner.run(self.remove_command(package_name), timeout=SYSTEM_INSTALL_TIMEOUT)
        except ExternalToolError as e:
            output = f"{e.stderr or ''}\n{e.context.stdout or ''}".lower()
            if any(marker in output for marker in NOT_FOUND_MARKERS):
                logger.info(f"Package {package_name} is not installed, nothing to remove")
                return False
            raise
        return True

    def is_installed(self, package_name: str) -> bool:
        result = self.runner.run(
            ["pacman", "-Qi", package_name], timeout=METADATA_TIMEOUT, check=False
        )
        return result["success"]

    def get_info(self, package_name: str) -> SystemPackageInfo:
        """
        Query ``pacman -Qi`` for an installed package.

        Raises:
            ExternalToolError: If the package is not installed
        """
        output = self.runner.run_output(["pacman", "-Qi", package_name], timeout=METADATA_TIMEOUT)
        info = SystemPackageInfo(name=package_name)
        for line in output.splitlines():
            if ":" not in line:
                continue
            key, value = line.split(":", 1)
            if key.strip() == "Version":
                info.version = value.strip()
        return info

    def list_files(self, package_name: str) -> List[str]:
        output = self.runner.run_output(["pacman", "-Ql", package_name], timeout=METADATA_TIMEOUT)
        files: List[str] = []
        for line in output.splitlines():
            parts = line.split(None, 1)
            if len(parts) > 1:
                files.append(parts[1].strip())
        return files
