#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Backend interface and the install pipeline shared by every package format.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from loguru import logger

from ..cache import CacheManager
from ..config import Config
from ..core.errors import (
    AlreadyInstalledError,
    ExternalToolError,
    InvalidInputError,
    NotFoundError,
    UpkgError,
    handle_os_error,
)
from ..core.locking import install_lock
from ..core.models import (
    ExtractedMeta,
    IconFile,
    InstallMethod,
    InstallOptions,
    InstallRecord,
    Metadata,
    PackageType,
)
from ..core.transaction import TransactionManager
from ..desktop import DesktopEntry, apply_wayland_env, is_tauri_app, parse_file, write_desktop_file
from ..helpers.naming import generate_install_id, normalize_filename
from ..helpers.runner import SYSTEM_INSTALL_TIMEOUT, CommandRunner
from ..helpers.security import is_within_directory, validate_package_name, validate_path
from ..heuristics import choose_best_executable, find_executables
from ..icons import IconManager, discover_icons
from ..paths import Paths
from ..syspkg import PacmanProvider

PathLike = Union[str, Path]

DESKTOP_VALIDATE_TIMEOUT = 5
SYSTEM_APPS_DIR = Path("/usr/share/applications")
SYSTEM_HICOLOR_DIR = Path("/usr/share/icons/hicolor")
PACMAN_ICON_EXTENSIONS = (".png", ".svg", ".ico", ".xpm")
PACMAN_PATH_PREFIX = "/usr (managed by pacman: "

PLAIN_WRAPPER = '#!/bin/bash\n# upkg wrapper script\nexec "{exec_path}" "$@"\n'
ELECTRON_WRAPPER = (
    "#!/bin/bash\n"
    "# upkg wrapper script for Electron app\n"
    'cd "{exec_dir}"\n'
    'exec "./{exec_name}"{flags} "$@"\n'
)


@dataclass
class InstallContext:
    """
    State carried through one run of the install pipeline.

    ``work_dir`` is a private temporary directory that disappears when the
    pipeline returns; ``state`` holds backend-specific values between hooks.
    """

    source: Path
    opts: InstallOptions
    tx: TransactionManager
    work_dir: Path
    name: str = ""
    normalized: str = ""
    install_id: str = ""
    state: Dict[str, Any] = field(default_factory=dict)


class Backend(ABC):
    """
    A package-format-specific install/uninstall strategy.

    Subclasses implement ``detect``, ``install`` and ``uninstall``. Installs
    normally delegate to ``run_pipeline``, which validates the source,
    resolves and validates the name, takes the per-name lock and then calls
    ``materialize``.
    """

    name: ClassVar[str] = ""
    package_type: ClassVar[PackageType]

    def __init__(
        self,
        config: Config,
        paths: Paths,
        runner: Optional[CommandRunner] = None,
        cache: Optional[CacheManager] = None,
        syspkg: Optional[PacmanProvider] = None,
    ) -> None:
        self.config = config
        self.paths = paths
        self.runner = runner or CommandRunner()
        self.cache = cache or CacheManager(self.runner)
        self.syspkg = syspkg or PacmanProvider(self.runner)
        self.icons = IconManager(paths.icon_dir)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"

    @abstractmethod
    def detect(self, path: PathLike) -> bool:
        """Return True if this backend can install the file at ``path``."""

    @abstractmethod
    def install(
        self, path: PathLike, opts: InstallOptions, tx: TransactionManager
    ) -> InstallRecord:
        """Install ``path`` recording every side effect in ``tx``."""

    @abstractmethod
    def uninstall(self, record: InstallRecord) -> None:
        """Remove everything ``record`` describes. Missing artifacts are not an error."""

    # pipeline hooks

    def prepare(self, ctx: InstallContext) -> None:
        """Runs before naming; backends that need extracted content to name a package do it here."""

    def query_name(self, ctx: InstallContext) -> str:
        """Authoritative name from package metadata, or "" if unavailable."""
        return ""

    @abstractmethod
    def fallback_name(self, ctx: InstallContext) -> str:
        """Name derived from the file name."""

    def materialize(self, ctx: InstallContext) -> InstallRecord:
        raise NotImplementedError(f"{self.name} backend does not use the shared pipeline")

    def run_pipeline(
        self, path: PathLike, opts: InstallOptions, tx: TransactionManager
    ) -> InstallRecord:
        source = Path(path)
        validate_path(source)
        if not source.is_file():
            raise NotFoundError(f"package not found: {source}")

        with tempfile.TemporaryDirectory(prefix=f"upkg-{self.name}-") as work_dir:
            ctx = InstallContext(source=source, opts=opts, tx=tx, work_dir=Path(work_dir))
            self.prepare(ctx)
            ctx.name = self.resolve_name(ctx)
            ctx.normalized = self.normalize_name(ctx.name)
            ctx.install_id = generate_install_id(ctx.normalized)
            logger.info(f"Installing {source.name} as {ctx.normalized} ({self.name})")

            tx.hold(install_lock(self.paths.locks_dir, ctx.normalized))
            return self.materialize(ctx)

    def resolve_name(self, ctx: InstallContext) -> str:
        if ctx.opts.custom_name:
            return ctx.opts.custom_name
        try:
            queried = self.query_name(ctx)
        except ExternalToolError as e:
            logger.debug(f"Metadata name query failed, using file name: {e.message}")
            queried = ""
        if queried:
            logger.debug(f"Using package name from metadata: {queried}")
            return queried
        return self.fallback_name(ctx)

    @staticmethod
    def normalize_name(name: str) -> str:
        """
        Raises:
            InvalidInputError: If the normalized name is empty or unsafe.
        """
        normalized = normalize_filename(name)
        try:
            validate_package_name(normalized)
        except InvalidInputError as e:
            raise InvalidInputError(
                f"invalid normalized name {normalized!r} (from {name!r}): {e.message}",
                hint="Pass a different name with --name",
            ) from e
        return normalized

    # shared steps

    def wrapper_path(self, normalized: str) -> Path:
        return self.paths.bin_dir / normalized

    def desktop_path(self, normalized: str) -> Path:
        return self.paths.apps_dir / f"{normalized}.desktop"

    def check_destination(self, ctx: InstallContext, dest: Path) -> None:
        """
        Refuse to overwrite an existing install unless ``force`` is set, in
        which case the previous install dir, wrapper and desktop file are moved
        aside until the transaction commits.
        """
        if not (dest.exists() or dest.is_symlink()):
            return
        if not ctx.opts.force:
            raise AlreadyInstalledError(
                f"package already installed at: {dest} (use --force to reinstall)", path=dest
            )
        logger.info(f"Replacing previous installation at {dest}")
        for path in (dest, self.wrapper_path(ctx.normalized), self.desktop_path(ctx.normalized)):
            if not (path.exists() or path.is_symlink()):
                continue
            try:
                ctx.tx.move_aside(path, ctx.install_id, f"replaced {path}")
            except OSError as e:
                raise handle_os_error(e, f"move previous installation {path}") from e

    def copy_executable(self, tx: TransactionManager, src: Path, dest: Path) -> Path:
        tx.ensure_dir(dest.parent)
        tx.created_file(dest, f"installed {dest}")
        try:
            shutil.copyfile(src, dest)
            os.chmod(dest, 0o755)
        except OSError as e:
            raise handle_os_error(e, f"copy {src} to {dest}") from e
        return dest

    def is_electron_app(self, exec_path: Path, root: Optional[Path] = None) -> bool:
        """An app.asar next to the executable, or any .asar in its parent tree."""
        exec_dir = exec_path.parent
        if (exec_dir / "resources" / "app.asar").exists():
            return True
        search = exec_dir.parent
        if root is not None and not is_within_directory(search, root):
            search = root
        for _, _, filenames in os.walk(search):
            if any(f.lower().endswith(".asar") for f in filenames):
                return True
        return False

    def write_wrapper(
        self, ctx: InstallContext, exec_path: Path, root: Optional[Path] = None
    ) -> Path:
        """Write the launcher script ``<bin_dir>/<name>`` (mode 0755)."""
        wrapper = self.wrapper_path(ctx.normalized)
        if self.is_electron_app(exec_path, root):
            flags = " --no-sandbox" if self.config.desktop.electron_disable_sandbox else ""
            content = ELECTRON_WRAPPER.format(
                exec_dir=exec_path.parent, exec_name=exec_path.name, flags=flags
            )
        else:
            content = PLAIN_WRAPPER.format(exec_path=exec_path)

        ctx.tx.ensure_dir(wrapper.parent)
        if wrapper.exists():
            ctx.tx.modified_file(wrapper, f"rewrote wrapper {wrapper}")
        else:
            ctx.tx.created_file(wrapper, f"created wrapper {wrapper}")
        wrapper.write_text(content, encoding="utf-8")
        os.chmod(wrapper, 0o755)
        logger.debug(f"Wrote wrapper {wrapper} -> {exec_path}")
        return wrapper

    def install_icons(
        self, ctx: InstallContext, icons: Sequence[IconFile], icon_name: str = ""
    ) -> List[str]:
        installed = self.icons.install_icons(list(icons), icon_name or ctx.normalized, ctx.tx)
        logger.debug(f"Installed {len(installed)} icon(s) for {ctx.normalized}")
        return [str(p) for p in installed]

    @staticmethod
    def load_bundled_entry(
        candidates: Iterable[Path],
    ) -> Tuple[Optional[Path], Optional[DesktopEntry]]:
        """Parse the first readable .desktop file among ``candidates``."""
        for candidate in candidates:
            try:
                return candidate, parse_file(candidate)
            except OSError as e:
                logger.debug(f"Cannot read bundled desktop file {candidate}: {e}")
        return None, None

    @staticmethod
    def extracted_meta(entry: Optional[DesktopEntry]) -> Optional[ExtractedMeta]:
        if entry is None:
            return None
        return ExtractedMeta(
            categories=list(entry.categories),
            comment=entry.comment,
            startup_wm_class=entry.startup_wm_class,
        )

    def synthesize_entry(self, display_name: str, icon: str) -> DesktopEntry:
        return DesktopEntry(
            type="Application",
            version="1.5",
            name=display_name,
            comment=f"{display_name} application",
            icon=icon,
            categories=["Utility"],
        )

    def install_desktop_entry(self, ctx: InstallContext, entry: DesktopEntry) -> Path:
        """
        Finish and write ``<apps_dir>/<name>.desktop``.

        Wayland variables are injected unless disabled in the config, skipped
        for this install, or the app is a Tauri app.
        """
        if not entry.type:
            entry.type = "Application"
        if not entry.categories:
            entry.categories = ["Utility"]

        if not self.config.desktop.wayland_env_vars or ctx.opts.skip_wayland_env:
            logger.debug("Skipping Wayland environment injection")
        elif is_tauri_app(entry):
            logger.debug(f"Tauri app detected ({entry.startup_wm_class}), skipping Wayland env")
        else:
            apply_wayland_env(entry, self.config.desktop.custom_env_vars, ctx.name)

        path = self.desktop_path(ctx.normalized)
        ctx.tx.ensure_dir(path.parent)
        write_desktop_file(path, entry, ctx.tx)
        self.validate_desktop_file(path)
        return path

    def validate_desktop_file(self, path: Path) -> None:
        if not self.runner.command_exists("desktop-file-validate"):
            return
        try:
            result = self.runner.run(
                ["desktop-file-validate", str(path)],
                timeout=DESKTOP_VALIDATE_TIMEOUT,
                check=False,
            )
        except ExternalToolError as e:
            logger.warning(f"desktop-file-validate did not run: {e.message}")
            return
        if not result["success"]:
            logger.warning(
                f"desktop-file-validate reported problems for {path}: "
                f"{(result['stderr'] or result['stdout']).strip()}"
            )

    def refresh_caches(self, system: bool = False) -> None:
        if system:
            self.cache.refresh(SYSTEM_APPS_DIR, SYSTEM_HICOLOR_DIR)
        else:
            self.cache.refresh(self.paths.apps_dir, self.paths.hicolor_dir)

    def materialize_tree(
        self,
        ctx: InstallContext,
        populate: Callable[[Path], None],
        *,
        record_name: str,
        display_name: str,
        version: str = "",
        desktop_globs: Sequence[str] = ("*.desktop",),
        collect_icons: Optional[Callable[[InstallContext, Path], List[IconFile]]] = None,
    ) -> InstallRecord:
        """
        Shared tail of every backend that unpacks into ``<data_dir>/apps/<name>``.

        ``populate`` fills the (already created) install directory; everything
        after that is common: executable selection, wrapper, icons, desktop
        entry and cache refresh.
        """
        install_dir = self.paths.upkg_apps_dir / ctx.normalized
        self.check_destination(ctx, install_dir)
        ctx.tx.ensure_dir(install_dir)
        populate(install_dir)

        candidates = find_executables(install_dir)
        exec_path = choose_best_executable(candidates, ctx.normalized, install_dir)
        wrapper = self.write_wrapper(ctx, exec_path, install_dir)

        icons = discover_icons(install_dir)
        if collect_icons is not None:
            icons.extend(collect_icons(ctx, install_dir))
        icon_paths = self.install_icons(ctx, icons)

        bundled_path, bundled = self.load_bundled_entry(
            sorted(p for pattern in desktop_globs for p in install_dir.glob(pattern))
        )
        desktop_file = ""
        if not ctx.opts.skip_desktop:
            entry = bundled or self.synthesize_entry(display_name, ctx.normalized)
            entry.exec = f"{wrapper} %U"
            entry.icon = ctx.normalized
            desktop_file = str(self.install_desktop_entry(ctx, entry))

        self.refresh_caches()
        return InstallRecord(
            install_id=ctx.install_id,
            package_type=self.package_type,
            name=record_name,
            version=version,
            original_file=str(ctx.source),
            install_path=str(install_dir),
            desktop_file=desktop_file,
            metadata=Metadata(
                icon_files=icon_paths,
                wrapper_script=str(wrapper),
                install_method=InstallMethod.LOCAL,
                desktop_files=[desktop_file] if desktop_file else [],
                extracted_meta=self.extracted_meta(bundled),
                original_desktop_file=str(bundled_path) if bundled_path else "",
            ),
        )

    # uninstall strategies

    def uninstall_local(self, record: InstallRecord) -> None:
        """
        Delete the install dir, wrapper, desktop files and icons of ``record``.

        Raises:
            UpkgError: If an artifact exists but could not be removed; every
                other artifact is still attempted.
        """
        failures: List[str] = []
        for path in record.artifact_paths():
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
                logger.debug(f"Removed {path}")
            except FileNotFoundError:
                logger.debug(f"Already gone: {path}")
            except OSError as e:
                logger.warning(f"Failed to remove {path}: {e}")
                failures.append(str(path))

        self.refresh_caches()
        if failures:
            raise UpkgError(
                f"failed to remove {len(failures)} artifact(s) of {record.name}: "
                + ", ".join(failures)
            )

    def uninstall_pacman(self, record: InstallRecord, package_name: str) -> None:
        if not self.syspkg.is_installed(package_name):
            logger.warning(f"Package {package_name} is not installed in pacman, nothing to remove")
            return
        self.syspkg.remove(package_name)
        self.refresh_caches(system=True)

    def uninstall_managed(self, record: InstallRecord) -> None:
        """Dispatch to pacman removal for converted packages, local removal otherwise."""
        if is_pacman_managed(record):
            self.uninstall_pacman(record, pacman_package_name(record))
        else:
            self.uninstall_local(record)

    # system package installs

    def pacman_install(
        self, ctx: InstallContext, pkg_file: Path, package_name: str
    ) -> None:
        """Install a converted package and register its removal as the undo step."""
        self.syspkg.install(pkg_file, overwrite=ctx.opts.overwrite)
        ctx.tx.ran_command(
            f"pacman install of {package_name}",
            self.syspkg.remove_command(package_name),
            timeout=SYSTEM_INSTALL_TIMEOUT,
        )

    def materialize_pacman(
        self,
        ctx: InstallContext,
        pkg_file: Path,
        package_name: str,
        version_hint: str = "",
    ) -> InstallRecord:
        """
        Install a debtap-converted package with pacman and describe the result.

        Version, desktop files and icons come from pacman's view of the
        installed package; lookups that fail only cost the metadata.
        """
        self.pacman_install(ctx, pkg_file, package_name)

        version = version_hint or "unknown"
        try:
            version = self.syspkg.get_info(package_name).version or version
        except ExternalToolError as e:
            logger.warning(f"Failed to get package info for {package_name}: {e.message}")

        try:
            files = self.syspkg.list_files(package_name)
        except ExternalToolError as e:
            logger.warning(f"Failed to list files of {package_name}: {e.message}")
            files = []
        desktop_files = [f for f in files if f.endswith(".desktop")]
        icon_files = [
            f for f in files
            if "icons" in f and os.path.splitext(f)[1].lower() in PACMAN_ICON_EXTENSIONS
        ]

        if desktop_files or icon_files:
            self.refresh_caches(system=True)

        return InstallRecord(
            install_id=ctx.install_id,
            package_type=self.package_type,
            name=package_name,
            version=version,
            original_file=str(ctx.source),
            install_path=f"{PACMAN_PATH_PREFIX}{package_name})",
            desktop_file=desktop_files[0] if desktop_files else "",
            metadata=Metadata(
                icon_files=icon_files,
                install_method=InstallMethod.PACMAN,
                desktop_files=desktop_files,
            ),
        )


def is_pacman_managed(record: InstallRecord) -> bool:
    return (
        record.metadata.install_method == InstallMethod.PACMAN
        or record.install_path.startswith(PACMAN_PATH_PREFIX)
    )


def pacman_package_name(record: InstallRecord) -> str:
    """The pacman package name recorded in ``install_path``, else the record name."""
    if record.install_path.startswith(PACMAN_PATH_PREFIX):
        return record.install_path[len(PACMAN_PATH_PREFIX):].rstrip(")").strip() or record.name
    return record.name
