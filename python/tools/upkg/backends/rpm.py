#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
RPM backend: ``rpmextract.sh`` into a private tree, or debtap conversion
installed through pacman.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from loguru import logger

from ..core.errors import NoInstallationMethodError, handle_os_error
from ..core.models import InstallOptions, InstallRecord, PackageType
from ..core.transaction import TransactionManager
from ..helpers.detection import FileType, detect_file_type
from ..helpers.naming import extract_rpm_base_name, extract_version_from_filename, format_display_name
from ..helpers.runner import EXTRACT_TIMEOUT, METADATA_TIMEOUT
from . import debtap
from .base import Backend, InstallContext, PathLike

EXTRACTED_ROOTS = ("usr", "opt", "etc")
DESKTOP_GLOBS = (
    "usr/share/applications/*.desktop",
    "usr/local/share/applications/*.desktop",
    "opt/*/share/applications/*.desktop",
)


class RpmBackend(Backend):
    name = "rpm"
    package_type = PackageType.RPM

    def detect(self, path: PathLike) -> bool:
        return detect_file_type(path) == FileType.RPM

    def install(
        self, path: PathLike, opts: InstallOptions, tx: TransactionManager
    ) -> InstallRecord:
        return self.run_pipeline(path, opts, tx)

    def uninstall(self, record: InstallRecord) -> None:
        self.uninstall_managed(record)

    def query_name(self, ctx: InstallContext) -> str:
        """The NAME tag of the RPM header, via ``rpm -qp``."""
        if not self.runner.command_exists("rpm"):
            return ""
        return self.runner.run_output(
            ["rpm", "-qp", "--queryformat", "%{NAME}", str(ctx.source.resolve())],
            timeout=METADATA_TIMEOUT,
        )

    def fallback_name(self, ctx: InstallContext) -> str:
        return extract_rpm_base_name(ctx.source.name)

    def materialize(self, ctx: InstallContext) -> InstallRecord:
        if self.runner.command_exists("rpmextract.sh"):
            return self.materialize_tree(
                ctx,
                lambda install_dir: self._extract(ctx, install_dir),
                record_name=ctx.normalized,
                display_name=format_display_name(ctx.normalized),
                version=extract_version_from_filename(ctx.source),
                desktop_globs=DESKTOP_GLOBS,
            )

        if self.runner.command_exists("debtap") and self.syspkg.available():
            pkg_file = debtap.convert(self.runner, ctx.source, ctx.work_dir)
            return self.materialize_pacman(ctx, pkg_file, ctx.normalized)

        raise NoInstallationMethodError(
            "no suitable RPM installation method found",
            alternatives=["rpmextract.sh", "debtap"],
        )

    def _extract(self, ctx: InstallContext, install_dir: Path) -> None:
        logger.info(f"Extracting {ctx.source.name} with rpmextract.sh")
        self.runner.run(
            ["rpmextract.sh", str(ctx.source.resolve())],
            cwd=ctx.work_dir,
            timeout=EXTRACT_TIMEOUT,
        )
        for root in EXTRACTED_ROOTS:
            src = ctx.work_dir / root
            if not src.is_dir():
                continue
            try:
                shutil.move(str(src), str(install_dir / root))
            except OSError as e:
                raise handle_os_error(e, f"move extracted {root}/ into {install_dir}") from e
