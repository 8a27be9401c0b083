#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DEB backend: ``dpkg-deb -x`` into a private tree, or debtap conversion
installed through pacman.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import List

from loguru import logger

from ..core.errors import ExternalToolError, NoInstallationMethodError, UpkgError
from ..core.models import InstallOptions, InstallRecord, PackageType
from ..core.transaction import TransactionManager
from ..desktop import apply_wayland_env, is_tauri_app, parse_file, write
from ..helpers.detection import FileType, detect_file_type
from ..helpers.naming import (
    clean_app_name,
    extract_version_from_filename,
    format_display_name,
    strip_package_extension,
)
from ..helpers.runner import EXTRACT_TIMEOUT, METADATA_TIMEOUT
from . import debtap
from .base import Backend, InstallContext, PathLike

DESKTOP_GLOBS = (
    "usr/share/applications/*.desktop",
    "usr/local/share/applications/*.desktop",
    "opt/*/share/applications/*.desktop",
)


class DebBackend(Backend):
    name = "deb"
    package_type = PackageType.DEB

    def detect(self, path: PathLike) -> bool:
        return detect_file_type(path) == FileType.DEB

    def install(
        self, path: PathLike, opts: InstallOptions, tx: TransactionManager
    ) -> InstallRecord:
        return self.run_pipeline(path, opts, tx)

    def uninstall(self, record: InstallRecord) -> None:
        self.uninstall_managed(record)

    def query_name(self, ctx: InstallContext) -> str:
        """The ``Package`` field of the control file, via ``dpkg-deb --field``."""
        if not self.runner.command_exists("dpkg-deb"):
            return ""
        return self.runner.run_output(
            ["dpkg-deb", "--field", str(ctx.source.resolve()), "Package"],
            timeout=METADATA_TIMEOUT,
        )

    def fallback_name(self, ctx: InstallContext) -> str:
        return clean_app_name(strip_package_extension(ctx.source))

    def materialize(self, ctx: InstallContext) -> InstallRecord:
        if self.runner.command_exists("dpkg-deb"):
            return self.materialize_tree(
                ctx,
                lambda install_dir: self._extract(ctx, install_dir),
                record_name=ctx.normalized,
                display_name=format_display_name(ctx.normalized),
                version=extract_version_from_filename(ctx.source),
                desktop_globs=DESKTOP_GLOBS,
            )

        if self.runner.command_exists("debtap") and self.syspkg.available():
            if not debtap.is_debtap_initialized():
                raise UpkgError(
                    "debtap is not initialized",
                    hint="Initialize it with: sudo debtap -u",
                )
            return self._install_converted(ctx)

        raise NoInstallationMethodError(
            "no suitable DEB installation method found",
            alternatives=["dpkg-deb", "debtap"],
        )

    def _extract(self, ctx: InstallContext, install_dir: Path) -> None:
        logger.info(f"Extracting {ctx.source.name} with dpkg-deb")
        self.runner.run(
            ["dpkg-deb", "-x", str(ctx.source.resolve()), str(install_dir)],
            timeout=EXTRACT_TIMEOUT,
        )

    def _install_converted(self, ctx: InstallContext) -> InstallRecord:
        pkg_file = debtap.convert(self.runner, ctx.source, ctx.work_dir)

        try:
            debtap.fix_malformed_dependencies(self.runner, pkg_file)
        except (ExternalToolError, OSError) as e:
            logger.warning(f"Could not repair dependencies of {pkg_file.name}, proceeding anyway: {e}")

        package_name, version = ctx.normalized, ""
        try:
            info = debtap.read_pkginfo(self.runner, pkg_file)
            package_name, version = info.name, info.version
            logger.debug(f"Resolved pacman package name {package_name} from .PKGINFO")
        except ExternalToolError as e:
            logger.warning(f"Failed to read package metadata, using {package_name}: {e.message}")

        record = self.materialize_pacman(ctx, pkg_file, package_name, version_hint=version)
        if record.metadata.desktop_files and self._wants_wayland(ctx):
            self._patch_system_desktop_files(record.metadata.desktop_files)
        return record

    def _wants_wayland(self, ctx: InstallContext) -> bool:
        return self.config.desktop.wayland_env_vars and not ctx.opts.skip_wayland_env

    def _patch_system_desktop_files(self, desktop_files: List[str]) -> None:
        """
        Inject Wayland variables into desktop files owned by the pacman
        package. They are rewritten through ``sudo mv``; removing the package
        removes them again.
        """
        for desktop_file in desktop_files:
            try:
                entry = parse_file(desktop_file)
            except OSError as e:
                logger.warning(f"Cannot read {desktop_file}: {e}")
                continue
            if is_tauri_app(entry):
                continue
            apply_wayland_env(entry, self.config.desktop.custom_env_vars, entry.name)
            with tempfile.NamedTemporaryFile(
                "w", suffix=".desktop", prefix="upkg-desktop-", delete=False, encoding="utf-8"
            ) as tmp:
                tmp.write(write(entry))
            try:
                self.runner.run(
                    [*self.runner.sudo_prefix(), "mv", tmp.name, desktop_file],
                    timeout=METADATA_TIMEOUT,
                )
            except ExternalToolError as e:
                logger.warning(f"Failed to update {desktop_file} with Wayland vars: {e.message}")
                Path(tmp.name).unlink(missing_ok=True)
