#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tarball and zip backend: native extraction into ``<data_dir>/apps/<name>``.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import List

from loguru import logger

from ..core.errors import ExternalToolError
from ..core.models import IconFile, InstallOptions, InstallRecord, PackageType
from ..core.transaction import TransactionManager
from ..helpers.archive import extract_archive
from ..helpers.asar import AsarArchive, AsarError
from ..helpers.detection import FileType, detect_file_type
from ..helpers.naming import (
    clean_app_name,
    extract_version_from_filename,
    format_display_name,
    strip_package_extension,
)
from ..helpers.runner import CACHE_TIMEOUT
from ..icons import discover_icons
from .base import Backend, InstallContext, PathLike

ASAR_ICONS_DIR = ".upkg-asar-icons"
ASAR_ICON_EXTENSIONS = (".png", ".svg")
MIN_ASAR_ICON_BYTES = 100

ARCHIVE_TYPES = frozenset(
    {FileType.TAR, FileType.TAR_GZ, FileType.TAR_XZ, FileType.TAR_BZ2, FileType.ZIP}
)


class TarballBackend(Backend):
    """
    Installs ``.tar.gz``, ``.tar.xz``, ``.tar.bz2``, ``.tar`` and ``.zip``
    archives. The archive is kept as-is under the install directory and a
    wrapper script launches the selected executable.
    """

    name = "tarball"
    package_type = PackageType.TARBALL

    def detect(self, path: PathLike) -> bool:
        return detect_file_type(path) in ARCHIVE_TYPES

    def install(
        self, path: PathLike, opts: InstallOptions, tx: TransactionManager
    ) -> InstallRecord:
        return self.run_pipeline(path, opts, tx)

    def uninstall(self, record: InstallRecord) -> None:
        self.uninstall_local(record)

    def fallback_name(self, ctx: InstallContext) -> str:
        return format_display_name(clean_app_name(strip_package_extension(ctx.source)))

    def materialize(self, ctx: InstallContext) -> InstallRecord:
        archive_type = detect_file_type(ctx.source).value
        return self.materialize_tree(
            ctx,
            lambda install_dir: extract_archive(ctx.source, install_dir, archive_type),
            record_name=ctx.name,
            display_name=ctx.name,
            version=extract_version_from_filename(ctx.source),
            desktop_globs=("*.desktop", "*/*.desktop", "share/applications/*.desktop"),
            collect_icons=self.collect_asar_icons,
        )

    # asar icons

    def collect_asar_icons(self, ctx: InstallContext, install_dir: Path) -> List[IconFile]:
        """
        Copy icons packed inside Electron ``.asar`` archives to
        ``<install_dir>/.upkg-asar-icons`` so they can be installed like any
        other icon. Failures only cost the icons.
        """
        archives = sorted(
            p for p in install_dir.rglob("*.asar")
            if p.is_file() and ".asar.unpacked" not in str(p)
        )
        icons: List[IconFile] = []
        for archive in archives:
            target = install_dir / ASAR_ICONS_DIR
            try:
                count = self._extract_asar_icons(archive, target)
            except AsarError as e:
                logger.debug(f"Native asar read failed for {archive.name}: {e.message}")
                count = self._extract_asar_icons_npx(archive, target)
            except OSError as e:
                logger.warning(f"Failed to copy icons out of {archive.name}: {e}")
                continue
            if count:
                logger.info(f"Extracted {count} icon(s) from {archive.name}")
        if (install_dir / ASAR_ICONS_DIR).is_dir():
            icons.extend(discover_icons(install_dir / ASAR_ICONS_DIR))
        return icons

    @staticmethod
    def _unique_target(target_dir: Path, entry_path: str) -> Path:
        parts = entry_path.strip("/").split("/")
        target = target_dir / parts[-1]
        if target.exists() and len(parts) > 1:
            target = target_dir / f"{parts[-2]}_{parts[-1]}"
        return target

    def _extract_asar_icons(self, archive_path: Path, target_dir: Path) -> int:
        archive = AsarArchive(archive_path)
        count = 0
        for entry in archive.entries():
            if not entry.path.lower().endswith(ASAR_ICON_EXTENSIONS):
                continue
            if entry.size < MIN_ASAR_ICON_BYTES:
                continue
            try:
                data = archive.read(entry)
            except (OSError, AsarError) as e:
                logger.warning(f"Skipping asar entry {entry.path}: {e}")
                continue
            target_dir.mkdir(parents=True, exist_ok=True)
            target = self._unique_target(target_dir, entry.path)
            target.write_bytes(data)
            count += 1
        return count

    def _extract_asar_icons_npx(self, archive_path: Path, target_dir: Path) -> int:
        if not self.runner.command_exists("npx"):
            return 0
        with tempfile.TemporaryDirectory(prefix="upkg-asar-") as tmp:
            try:
                self.runner.run(
                    ["npx", "--yes", "asar", "extract", str(archive_path), tmp],
                    timeout=CACHE_TIMEOUT,
                )
            except ExternalToolError as e:
                logger.warning(f"npx asar extract failed for {archive_path.name}: {e.message}")
                return 0
            count = 0
            for icon in discover_icons(tmp):
                if icon.path.stat().st_size < MIN_ASAR_ICON_BYTES:
                    continue
                target_dir.mkdir(parents=True, exist_ok=True)
                target = self._unique_target(target_dir, str(icon.path.relative_to(tmp)))
                target.write_bytes(icon.path.read_bytes())
                count += 1
            return count
