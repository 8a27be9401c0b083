#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Standalone ELF executables, copied to ``<bin_dir>/<name>``.
"""

from __future__ import annotations

from ..core.models import InstallMethod, InstallOptions, InstallRecord, Metadata, PackageType
from ..core.transaction import TransactionManager
from ..desktop import DesktopEntry
from ..helpers.detection import FileType, detect_file_type
from ..helpers.naming import clean_app_name, format_display_name
from .base import Backend, InstallContext, PathLike

GENERIC_ICON = "application-x-executable"


class BinaryBackend(Backend):
    name = "binary"
    package_type = PackageType.BINARY

    def detect(self, path: PathLike) -> bool:
        return detect_file_type(path) == FileType.ELF

    def install(
        self, path: PathLike, opts: InstallOptions, tx: TransactionManager
    ) -> InstallRecord:
        return self.run_pipeline(path, opts, tx)

    def uninstall(self, record: InstallRecord) -> None:
        self.uninstall_local(record)

    def fallback_name(self, ctx: InstallContext) -> str:
        return clean_app_name(ctx.source.stem)

    def materialize(self, ctx: InstallContext) -> InstallRecord:
        dest = self.paths.bin_dir / ctx.normalized
        self.check_destination(ctx, dest)
        self.copy_executable(ctx.tx, ctx.source, dest)

        desktop_file = ""
        if not ctx.opts.skip_desktop:
            display = format_display_name(ctx.name)
            entry = DesktopEntry(
                type="Application",
                version="1.5",
                name=display,
                generic_name=display,
                comment=f"{display} application",
                icon=GENERIC_ICON,
                exec=str(dest),
                categories=["Utility"],
                keywords=[ctx.name],
            )
            desktop_file = str(self.install_desktop_entry(ctx, entry))
            self.refresh_caches()

        return InstallRecord(
            install_id=ctx.install_id,
            package_type=self.package_type,
            name=ctx.name,
            original_file=str(ctx.source),
            install_path=str(dest),
            desktop_file=desktop_file,
            metadata=Metadata(
                install_method=InstallMethod.LOCAL,
                desktop_files=[desktop_file] if desktop_file else [],
            ),
        )
