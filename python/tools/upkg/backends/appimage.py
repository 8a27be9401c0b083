#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
AppImage backend: the image itself is installed to ``<bin_dir>/<name>.appimage``;
its extracted contents only supply the name, icons and desktop entry.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..core.errors import ExternalToolError, UpkgError, handle_os_error
from ..core.models import IconFile, InstallMethod, InstallOptions, InstallRecord, Metadata, PackageType
from ..core.transaction import TransactionManager
from ..desktop import DesktopEntry
from ..helpers.detection import elf_end_offset, is_appimage, is_elf, read_header
from ..helpers.naming import clean_app_name, format_display_name
from ..helpers.runner import EXTRACT_TIMEOUT
from ..icons import discover_icons
from .base import Backend, InstallContext, PathLike

SQUASHFS_ROOT = "squashfs-root"


class AppImageBackend(Backend):
    name = "appimage"
    package_type = PackageType.APPIMAGE

    def detect(self, path: PathLike) -> bool:
        if Path(path).name.lower().endswith(".appimage") and is_elf(read_header(path, 4)):
            return True
        return is_appimage(path)

    def install(
        self, path: PathLike, opts: InstallOptions, tx: TransactionManager
    ) -> InstallRecord:
        return self.run_pipeline(path, opts, tx)

    def uninstall(self, record: InstallRecord) -> None:
        self.uninstall_local(record)

    def prepare(self, ctx: InstallContext) -> None:
        """Extract the image into the work dir and read its bundled desktop entry."""
        try:
            os.chmod(ctx.source, 0o755)
        except OSError as e:
            raise handle_os_error(e, f"make {ctx.source} executable") from e

        root = self.extract(ctx.source, ctx.work_dir)
        ctx.state["root"] = root

        desktop_path, entry = self.load_bundled_entry(sorted(root.glob("*.desktop")))
        ctx.state["desktop_path"] = desktop_path
        ctx.state["entry"] = entry
        if entry is not None:
            logger.debug(f"Found bundled desktop file {desktop_path.name}")

    def extract(self, source: Path, work_dir: Path) -> Path:
        """
        Run ``<image> --appimage-extract`` in ``work_dir``, falling back to
        ``unsquashfs`` at the payload offset.

        Raises:
            ExternalToolError: If both methods fail
            UpkgError: If extraction produced no squashfs-root
        """
        image = str(source.resolve())
        try:
            self.runner.run([image, "--appimage-extract"], cwd=work_dir, timeout=EXTRACT_TIMEOUT)
        except ExternalToolError as e:
            if not self.runner.command_exists("unsquashfs"):
                raise
            logger.warning(f"--appimage-extract failed, trying unsquashfs: {e.message}")
            cmd = ["unsquashfs"]
            offset = elf_end_offset(source)
            if offset:
                cmd.extend(["-o", str(offset)])
            cmd.extend(["-d", SQUASHFS_ROOT, image])
            self.runner.run(cmd, cwd=work_dir, timeout=EXTRACT_TIMEOUT)

        root = work_dir / SQUASHFS_ROOT
        if not root.is_dir():
            raise UpkgError(f"squashfs-root not found after extracting {source.name}")
        return root

    def query_name(self, ctx: InstallContext) -> str:
        """The application ID, i.e. the bundled desktop file's name, not its Name= key."""
        desktop_path = ctx.state.get("desktop_path")
        if desktop_path is None:
            return ""
        return format_display_name(desktop_path.stem)

    def fallback_name(self, ctx: InstallContext) -> str:
        stem = ctx.source.name
        if stem.lower().endswith(".appimage"):
            stem = stem[: -len(".appimage")]
        return format_display_name(clean_app_name(stem))

    @staticmethod
    def icon_theme_name(root: Path, entry: Optional[DesktopEntry]) -> str:
        """The bundled Icon= value, else the icon name ``.DirIcon`` points at."""
        if entry is not None and entry.icon:
            return Path(entry.icon).stem
        dir_icon = root / ".DirIcon"
        if not dir_icon.is_symlink():
            return ""
        return Path(os.readlink(dir_icon)).stem

    def app_icons(self, root: Path, entry: Optional[DesktopEntry]) -> List[IconFile]:
        """Icons named after the app's theme icon, or every icon if none match."""
        icons = discover_icons(root)
        theme_name = self.icon_theme_name(root, entry)
        matching = [i for i in icons if theme_name and i.path.stem == theme_name]
        return matching or icons

    def materialize(self, ctx: InstallContext) -> InstallRecord:
        root: Path = ctx.state["root"]
        dest = self.paths.bin_dir / f"{ctx.normalized}.appimage"
        self.check_destination(ctx, dest)
        self.copy_executable(ctx.tx, ctx.source, dest)

        icon_paths = self.install_icons(ctx, self.app_icons(root, ctx.state.get("entry")))

        bundled = ctx.state.get("entry")
        desktop_file = ""
        if not ctx.opts.skip_desktop:
            entry = bundled or self.synthesize_entry(ctx.name, ctx.normalized)
            exec_line = str(dest)
            if (
                self.config.desktop.electron_disable_sandbox
                and (root / "resources" / "app.asar").exists()
            ):
                exec_line += " --no-sandbox"
            entry.exec = f"{exec_line} %U"
            entry.icon = ctx.normalized
            desktop_file = str(self.install_desktop_entry(ctx, entry))

        self.refresh_caches()
        desktop_path = ctx.state.get("desktop_path")
        return InstallRecord(
            install_id=ctx.install_id,
            package_type=self.package_type,
            name=ctx.name,
            original_file=str(ctx.source),
            install_path=str(dest),
            desktop_file=desktop_file,
            metadata=Metadata(
                icon_files=icon_paths,
                install_method=InstallMethod.LOCAL,
                desktop_files=[desktop_file] if desktop_file else [],
                extracted_meta=self.extracted_meta(bundled),
                original_desktop_file=desktop_path.name if desktop_path else "",
            ),
        )
