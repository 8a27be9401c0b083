#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command-line interface for upkg.

Commands: install, uninstall, list, info, doctor and backends. Every command
returns an ExitCode; UpkgError subclasses carry their own.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, TextIO, Tuple

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from . import __version__
from .backends.base import Backend, is_pacman_managed
from .backends.registry import BackendRegistry
from .config import Config, load_config
from .core.errors import (
    ConfigError,
    InvalidInputError,
    NotFoundError,
    UpkgError,
    handle_os_error,
)
from .core.models import ExitCode, InstallOptions, InstallRecord, PackageType
from .core.transaction import TransactionManager
from .db import InstallStore
from .helpers.runner import CommandRunner
from .paths import Paths

STDERR_LEVELS = ("WARNING", "INFO", "DEBUG")
SORT_KEYS = ("name", "type", "date", "version")

# (command, purpose)
REQUIRED_TOOLS = (
    ("tar", "Extract tarball packages"),
    ("unsquashfs", "Extract AppImage packages"),
)
OPTIONAL_TOOLS = (
    ("dpkg-deb", "Install DEB packages"),
    ("rpmextract.sh", "Install RPM packages"),
    ("debtap", "Convert DEB/RPM packages for pacman"),
    ("pacman", "Install converted packages"),
    ("bsdtar", "Repair converted package metadata"),
    ("gtk4-update-icon-cache", "Update icon cache"),
    ("update-desktop-database", "Update desktop database"),
    ("desktop-file-validate", "Validate desktop files"),
    ("npx", "Extract icons from Electron asar archives"),
)
ENVIRONMENT_VARS = (
    "XDG_DATA_HOME",
    "XDG_CONFIG_HOME",
    "XDG_CACHE_HOME",
    "WAYLAND_DISPLAY",
)

TYPE_STYLES = {
    PackageType.APPIMAGE: "cyan",
    PackageType.BINARY: "green",
    PackageType.TARBALL: "yellow",
    PackageType.ZIP: "yellow",
    PackageType.DEB: "magenta",
    PackageType.RPM: "red",
}


def format_bytes(size: int) -> str:
    """
    >>> format_bytes(512)
    '512 B'
    >>> format_bytes(1536)
    '1.5 KiB'
    """
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KiB", "MiB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


def path_size(path: Path) -> int:
    """Size of a file, or the total size of the files below a directory."""
    if path.is_symlink() or path.is_file():
        return path.lstat().st_size
    total = 0
    for dirpath, _, filenames in os.walk(path):
        for name in filenames:
            try:
                total += (Path(dirpath) / name).lstat().st_size
            except OSError:
                continue
    return total


def missing_artifacts(record: InstallRecord) -> List[str]:
    """Artifacts a local install claims to own that are no longer on disk."""
    if is_pacman_managed(record):
        return []
    return [
        str(path)
        for path in record.artifact_paths()
        if not (path.exists() or path.is_symlink())
    ]


def sort_records(records: List[InstallRecord], key: str) -> List[InstallRecord]:
    def by_name(r: InstallRecord) -> str:
        return r.name.lower()

    match key:
        case "type":
            return sorted(records, key=lambda r: (r.package_type.value, by_name(r)))
        case "date":
            return sorted(records, key=lambda r: r.install_date, reverse=True)
        case "version":
            return sorted(records, key=lambda r: (r.version, by_name(r)))
        case _:
            return sorted(records, key=by_name)


def filter_records(
    records: Sequence[InstallRecord], package_type: str = "", name: str = ""
) -> List[InstallRecord]:
    package_type, name = package_type.lower(), name.lower()
    return [
        r
        for r in records
        if (not package_type or r.package_type.value == package_type)
        and (not name or name in r.name.lower())
    ]


def superseded_records(
    records: Sequence[InstallRecord], record: InstallRecord
) -> List[InstallRecord]:
    """Existing records that own the install path or desktop file ``record`` now owns."""
    return [
        r
        for r in records
        if r.install_path == record.install_path
        or (record.desktop_file and r.desktop_file == record.desktop_file)
    ]


class RichOutput:
    """Rich console output for the upkg commands."""

    def __init__(
        self, console: Optional[Console] = None, err_console: Optional[Console] = None
    ) -> None:
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]ℹ[/blue] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def error(self, err: UpkgError) -> None:
        self.err_console.print(f"[red]Error:[/red] {escape(str(err))}")
        if err.hint:
            self.err_console.print(f"[yellow]Hint:[/yellow] {escape(err.hint)}")

    def print_json(self, data: Any) -> None:
        self.console.print(
            json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True
        )

    @staticmethod
    def styled_type(package_type: PackageType) -> str:
        style = TYPE_STYLES.get(package_type, "white")
        return f"[{style}]{package_type.value}[/{style}]"

    def print_install_summary(self, record: InstallRecord) -> None:
        table = Table(show_header=False, box=None)
        table.add_column("Property", style="cyan")
        table.add_column("Value")
        table.add_row("Name", escape(record.name))
        table.add_row("Type", self.styled_type(record.package_type))
        table.add_row("Install ID", record.install_id)
        if record.version:
            table.add_row("Version", escape(record.version))
        if record.install_path:
            table.add_row("Path", escape(record.install_path))
        if record.desktop_file:
            table.add_row("Desktop file", escape(record.desktop_file))
        self.console.print(
            Panel(table, title="[green]Package installed successfully[/green]", expand=False)
        )

    def print_records(self, records: Sequence[InstallRecord], details: bool = False) -> None:
        table = Table(title="Installed Packages", show_header=True)
        table.add_column("Name", style="bold")
        table.add_column("Type")
        table.add_column("Version", style="green")
        table.add_column("Installed", style="blue")
        if details:
            table.add_column("Install ID", style="dim")
            table.add_column("Path")
            table.add_column("Desktop file")

        for record in records:
            row = [
                escape(record.name),
                self.styled_type(record.package_type),
                escape(record.version or "-"),
                record.install_date.strftime("%Y-%m-%d %H:%M"),
            ]
            if details:
                row.extend(
                    [
                        record.install_id,
                        escape(record.install_path),
                        escape(record.desktop_file or "(none)"),
                    ]
                )
            table.add_row(*row)
        self.console.print(table)

    def print_list_summary(
        self,
        all_records: Sequence[InstallRecord],
        shown: Sequence[InstallRecord],
        filters: Mapping[str, str],
    ) -> None:
        total = f"Total: {len(all_records)} packages"
        if len(shown) != len(all_records):
            total += f" (showing {len(shown)} filtered)"
        self.console.print(total)

        counts = Counter(r.package_type for r in all_records)
        if counts:
            self.console.print(
                "  "
                + " | ".join(
                    f"{self.styled_type(t)}: {n}"
                    for t, n in sorted(counts.items(), key=lambda item: item[0].value)
                )
            )
        active = {k: v for k, v in filters.items() if v}
        if active:
            self.info("Active filters:")
            for key, value in active.items():
                self.console.print(f"  • {key.title()}: {escape(value)}")

    def print_record_info(self, record: InstallRecord) -> None:
        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="cyan", no_wrap=True)
        grid.add_column()

        grid.add_row("Name", escape(record.name))
        grid.add_row("Type", self.styled_type(record.package_type))
        grid.add_row("Version", escape(record.version or "(unknown)"))
        grid.add_row("Install ID", record.install_id)
        grid.add_row("Install Date", record.install_date.strftime("%Y-%m-%d %H:%M:%S"))
        grid.add_row("", "")
        grid.add_row("Install Path", escape(record.install_path))
        grid.add_row("Original File", escape(record.original_file))
        grid.add_row("Desktop File", escape(record.desktop_file or "(none)"))

        meta = record.metadata
        grid.add_row("", "")
        grid.add_row("Install Method", meta.install_method.value)
        grid.add_row("Wayland Support", meta.wayland_support.value)
        if meta.wrapper_script:
            grid.add_row("Wrapper Script", escape(meta.wrapper_script))
        if meta.icon_files:
            grid.add_row("Icon Files", escape("\n".join(meta.icon_files)))
        if len(meta.desktop_files) > 1:
            grid.add_row("Desktop Files", escape("\n".join(meta.desktop_files)))
        if meta.original_desktop_file:
            grid.add_row("Bundled Desktop File", escape(meta.original_desktop_file))
        if meta.extracted_meta is not None:
            extracted = meta.extracted_meta
            if extracted.categories:
                grid.add_row("Categories", escape(";".join(extracted.categories)))
            if extracted.comment:
                grid.add_row("Comment", escape(extracted.comment))
            if extracted.startup_wm_class:
                grid.add_row("StartupWMClass", escape(extracted.startup_wm_class))

        self.console.print(
            Panel(grid, title=f"Package Information: {escape(record.name)}", expand=False)
        )

    def print_uninstall_plan(self, records: Sequence[InstallRecord]) -> None:
        table = Table(title="Would remove", show_header=True)
        table.add_column("Package", style="bold")
        table.add_column("Artifact")
        table.add_column("Size", justify="right", style="green")

        for record in records:
            label = f"{escape(record.name)} ({record.install_id})"
            if is_pacman_managed(record):
                table.add_row(label, escape(record.install_path), "-")
                continue
            for path in record.artifact_paths():
                exists = path.exists() or path.is_symlink()
                size = format_bytes(path_size(path)) if exists else "[dim]missing[/dim]"
                table.add_row(label, escape(str(path)), size)
                label = ""
        self.console.print(table)


class CLI:
    """Command-line interface for the upkg install engine."""

    def __init__(
        self,
        console: Optional[Console] = None,
        runner: Optional[CommandRunner] = None,
        env: Optional[Mapping[str, str]] = None,
        stdin: Optional[TextIO] = None,
    ) -> None:
        self.parser = self._create_parser()
        self.output = RichOutput(console, console)
        self._runner = runner
        self._env = env
        self._stdin = stdin or sys.stdin

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="upkg",
            description="Install AppImage, DEB, RPM, tarball, zip and binary packages",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  %(prog)s install ./MyApp-1.2.0.AppImage     # Install an AppImage
  %(prog)s install app.tar.gz --name myapp    # Install under a custom name
  %(prog)s list --type deb --sort date        # List DEB installs, newest first
  %(prog)s uninstall myapp --dry-run          # Show what would be removed
  %(prog)s doctor                             # Check tools and directories
            """,
        )

        parser.add_argument("--version", action="version", version=f"upkg {__version__}")
        parser.add_argument(
            "--verbose",
            "-v",
            action="count",
            default=0,
            help="Increase verbosity (use -vv for debug)",
        )
        parser.add_argument("--config", type=Path, help="Custom config file path")

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        install_parser = subparsers.add_parser("install", help="Install a package file")
        install_parser.add_argument("package", type=Path, help="Package file to install")
        install_parser.add_argument(
            "--force", "-f", action="store_true", help="Reinstall over an existing install"
        )
        install_parser.add_argument(
            "--skip-desktop", action="store_true", help="Do not create a .desktop entry"
        )
        install_parser.add_argument("--name", "-n", default="", help="Custom application name")
        install_parser.add_argument(
            "--skip-wayland-env",
            action="store_true",
            help="Do not inject Wayland environment variables",
        )
        install_parser.add_argument(
            "--overwrite",
            action="store_true",
            help="Let pacman overwrite conflicting files (converted packages)",
        )

        uninstall_parser = subparsers.add_parser("uninstall", help="Uninstall packages")
        uninstall_parser.add_argument(
            "targets", nargs="*", metavar="NAME_OR_ID", help="Package names or install IDs"
        )
        uninstall_parser.add_argument(
            "--yes", "-y", action="store_true", help="Do not ask for confirmation"
        )
        uninstall_parser.add_argument(
            "--dry-run", action="store_true", help="Show what would be removed"
        )
        uninstall_parser.add_argument(
            "--all", action="store_true", help="Uninstall every installed package"
        )

        list_parser = subparsers.add_parser("list", help="List installed packages")
        list_parser.add_argument(
            "--type",
            default="",
            choices=[t.value for t in PackageType],
            help="Filter by package type",
        )
        list_parser.add_argument("--name", default="", help="Filter by name (substring)")
        list_parser.add_argument("--sort", default="name", choices=SORT_KEYS, help="Sort order")
        list_parser.add_argument("--json", action="store_true", help="Output JSON")
        list_parser.add_argument(
            "--details", "-d", action="store_true", help="Show install IDs and paths"
        )

        info_parser = subparsers.add_parser("info", help="Show details of an installed package")
        info_parser.add_argument("target", metavar="NAME_OR_ID", help="Package name or install ID")

        subparsers.add_parser("doctor", help="Check the system for problems")
        subparsers.add_parser("backends", help="List backends in detection order")

        return parser

    def run(self, argv: Optional[Sequence[str]] = None) -> int:
        args = self.parser.parse_args(argv)
        self._configure_logging(args.verbose)

        if not args.command:
            self.parser.print_help()
            return ExitCode.GENERAL

        try:
            config = load_config(args.config, self._env)
        except ConfigError as e:
            self.output.error(e)
            return e.exit_code

        paths = Paths.from_config(config)
        self._configure_logging(args.verbose, config, paths)

        try:
            return self._handle_command(args, config, paths)
        except UpkgError as e:
            logger.debug(f"{args.command} failed: {e.message}")
            self.output.error(e)
            return e.exit_code
        except OSError as e:
            err = handle_os_error(e, args.command)
            self.output.error(err)
            return err.exit_code

    def _configure_logging(
        self, verbose: int, config: Optional[Config] = None, paths: Optional[Paths] = None
    ) -> None:
        """Stderr verbosity follows -v; the log file gets the configured level."""
        logger.remove()

        colorize = None
        if config is not None:
            colorize = {"always": True, "never": False}.get(config.logging.color)

        logger.add(
            sys.stderr,
            level=STDERR_LEVELS[min(verbose, len(STDERR_LEVELS) - 1)],
            format="<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<level>{message}</level>",
            colorize=colorize,
        )

        if config is None or paths is None:
            return
        try:
            logger.add(
                paths.log_file,
                level=config.logging.level.upper(),
                format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                "{name}:{function}:{line} | {message} | {extra}",
                rotation="10 MB",
                retention="1 week",
            )
        except OSError as e:
            logger.warning(f"Cannot write log file {paths.log_file}: {e}")

    def _registry(self, config: Config, paths: Paths) -> BackendRegistry:
        return BackendRegistry(config, paths, runner=self._runner)

    def _handle_command(self, args: argparse.Namespace, config: Config, paths: Paths) -> int:
        match args.command:
            case "install":
                return self._cmd_install(args, config, paths)
            case "uninstall":
                return self._cmd_uninstall(args, config, paths)
            case "list":
                return self._cmd_list(args, paths)
            case "info":
                return self._cmd_info(args, paths)
            case "doctor":
                return self._cmd_doctor(paths)
            case "backends":
                return self._cmd_backends(config, paths)
            case _:
                self.parser.print_help()
                return ExitCode.GENERAL

    def _cmd_install(self, args: argparse.Namespace, config: Config, paths: Paths) -> int:
        package = args.package.expanduser()
        if not package.exists():
            raise NotFoundError(f"package not found: {package}")
        if args.name:
            Backend.normalize_name(args.name)

        opts = InstallOptions(
            force=args.force,
            skip_desktop=args.skip_desktop,
            custom_name=args.name,
            skip_wayland_env=args.skip_wayland_env,
            overwrite=args.overwrite,
        )
        paths.ensure()
        registry = self._registry(config, paths)
        backend = registry.detect_backend(package)
        self.output.info(f"Detected package type: {backend.name}")

        with InstallStore(paths.db_file) as store, TransactionManager(
            runner=registry.runner
        ) as tx:
            record = backend.install(package, opts, tx)
            superseded = superseded_records(store.list(), record)
            store.create(record, superseded=[r.install_id for r in superseded])
            tx.commit()

        for stale in superseded:
            logger.info(f"Replaced previous install record {stale.install_id}")

        logger.info(
            f"Installed {record.name} ({record.install_id})",
            extra={"install_id": record.install_id, "type": record.package_type.value},
        )
        self.output.print_install_summary(record)
        return ExitCode.SUCCESS

    @staticmethod
    def _lookup(store: InstallStore, identifier: str) -> Optional[InstallRecord]:
        """By install ID first, then by case-insensitive name (newest match)."""
        try:
            return store.get(identifier)
        except NotFoundError:
            logger.debug(f"{identifier} is not an install ID, trying by name")
        matches = store.find_by_name(identifier)
        return matches[0] if matches else None

    def _resolve_targets(
        self, store: InstallStore, targets: Sequence[str]
    ) -> Tuple[List[InstallRecord], List[str]]:
        found: Dict[str, InstallRecord] = {}
        missing: List[str] = []
        for identifier in targets:
            record = self._lookup(store, identifier)
            if record is None:
                missing.append(identifier)
            else:
                found.setdefault(record.install_id, record)
        return list(found.values()), missing

    def _confirm(self, records: Sequence[InstallRecord]) -> bool:
        if not self._stdin.isatty():
            raise InvalidInputError(
                "refusing to uninstall without confirmation in non-interactive mode",
                hint="Pass --yes to confirm, or --dry-run to preview",
            )
        names = ", ".join(r.name for r in records)
        return Confirm.ask(
            f"Uninstall {len(records)} package(s): {escape(names)}?",
            console=self.output.console,
            default=False,
        )

    def _cmd_uninstall(self, args: argparse.Namespace, config: Config, paths: Paths) -> int:
        if not args.all and not args.targets:
            raise InvalidInputError(
                "nothing to uninstall",
                hint="Pass package names or install IDs, or --all",
            )

        with InstallStore(paths.db_file) as store:
            if args.all:
                records, missing = store.list(), []
            else:
                records, missing = self._resolve_targets(store, args.targets)

            for identifier in missing:
                self.output.warning(f"Package not found: {escape(identifier)}")
            if not records:
                if missing:
                    raise NotFoundError(
                        "no matching packages installed",
                        hint="Use 'upkg list' to see installed packages",
                    )
                self.output.info("No packages installed")
                return ExitCode.SUCCESS

            if args.dry_run:
                self.output.print_uninstall_plan(records)
                self.output.info(f"Dry run: {len(records)} package(s) would be removed")
                return ExitCode.SUCCESS

            if not args.yes and not self._confirm(records):
                self.output.info("Uninstall cancelled")
                return ExitCode.SUCCESS

            registry = self._registry(config, paths)
            failed: List[str] = []
            for index, record in enumerate(records, start=1):
                prefix = f"[{index}/{len(records)}]"
                self.output.console.print(f"{prefix} Uninstalling {escape(record.name)}...")
                try:
                    registry.get_backend(record.package_type.value).uninstall(record)
                except UpkgError as e:
                    logger.error(f"Failed to uninstall {record.name}: {e.message}")
                    self.output.warning(f"{prefix} Failed: {escape(e.message)}")
                    failed.append(record.name)
                    continue
                try:
                    store.delete(record.install_id)
                except UpkgError as e:
                    logger.warning(f"Removed {record.name} but could not delete its record: {e}")
                self.output.success(f"{prefix} Uninstalled {escape(record.name)}")

        succeeded = len(records) - len(failed)
        self.output.console.print()
        self.output.console.print(f"Uninstalled {succeeded} of {len(records)} package(s)")
        if failed:
            self.output.warning(f"Failed: {escape(', '.join(failed))}")
            return ExitCode.UNINSTALL_FAILED
        return ExitCode.SUCCESS

    def _cmd_list(self, args: argparse.Namespace, paths: Paths) -> int:
        with InstallStore(paths.db_file) as store:
            records = store.list()

        shown = sort_records(filter_records(records, args.type, args.name), args.sort)
        if args.json:
            self.output.print_json([r.to_dict() for r in shown])
            return ExitCode.SUCCESS

        if not shown:
            if args.type or args.name:
                self.output.warning("No packages found matching filters")
            else:
                self.output.info("No packages installed")
            return ExitCode.SUCCESS

        self.output.print_list_summary(records, shown, {"type": args.type, "name": args.name})
        self.output.print_records(shown, details=args.details)
        return ExitCode.SUCCESS

    def _cmd_info(self, args: argparse.Namespace, paths: Paths) -> int:
        with InstallStore(paths.db_file) as store:
            record = self._lookup(store, args.target)
        if record is None:
            raise NotFoundError(
                f"package not found: {args.target}",
                hint="Use 'upkg list' to see installed packages",
            )
        self.output.print_record_info(record)
        return ExitCode.SUCCESS

    def _cmd_doctor(self, paths: Paths) -> int:
        runner = self._runner or CommandRunner()
        console = self.output.console
        issues: List[str] = []
        warnings: List[str] = []

        console.rule("Required Dependencies")
        for command, purpose in REQUIRED_TOOLS:
            if runner.command_exists(command):
                self.output.success(f"{command}: found")
            else:
                console.print(f"[red]✗[/red] {command}: NOT FOUND")
                issues.append(f"Missing required dependency: {command} ({purpose})")

        console.rule("Optional Dependencies")
        for command, purpose in OPTIONAL_TOOLS:
            if runner.command_exists(command):
                self.output.success(f"{command}: found")
            else:
                self.output.warning(f"{command}: not found (optional - {purpose})")
                warnings.append(f"Optional dependency missing: {command}")

        console.rule("Directories")
        for label, directory in (
            ("Data directory", paths.data_dir),
            ("Binary directory", paths.bin_dir),
            ("Applications directory", paths.apps_dir),
            ("Icon directory", paths.icon_dir),
        ):
            if self._writable(directory):
                self.output.success(f"{label}: {escape(str(directory))}")
            else:
                console.print(f"[red]✗[/red] {label}: NOT WRITABLE ({escape(str(directory))})")
                issues.append(f"Directory not writable: {directory}")

        console.rule("Database")
        try:
            with InstallStore(paths.db_file) as store:
                records = store.list()
        except UpkgError as e:
            console.print(f"[red]✗[/red] Database: NOT ACCESSIBLE ({escape(e.message)})")
            issues.append(f"Cannot open database: {e.message}")
        else:
            self.output.success(f"Database: accessible ({escape(str(paths.db_file))})")
            self.output.info(f"Installed packages: {len(records)}")
            broken = [(r, missing_artifacts(r)) for r in records]
            broken = [(r, m) for r, m in broken if m]
            if broken:
                self.output.warning(f"Found {len(broken)} package(s) with missing files:")
                for record, missing in broken:
                    console.print(f"  • {escape(record.name)} ({record.install_id})")
                    for path in missing:
                        console.print(f"      - {escape(path)}")
                warnings.append(f"{len(broken)} package(s) have missing files")
            elif records:
                self.output.success("All installed packages have intact files")

        console.rule("Environment")
        env = os.environ if self._env is None else self._env
        for name in ENVIRONMENT_VARS:
            value = env.get(name, "")
            if value:
                self.output.success(f"{name}: {escape(value)}")
            else:
                self.output.info(f"{name}: not set (using defaults)")

        console.rule("Summary")
        if issues:
            console.print(f"[red]✗[/red] Found {len(issues)} issue(s):")
            for issue in issues:
                console.print(f"  • {escape(issue)}")
        else:
            self.output.success("All critical checks passed!")
        if warnings:
            self.output.warning(f"Found {len(warnings)} warning(s):")
            for warning in warnings:
                console.print(f"  • {escape(warning)}")

        return ExitCode.GENERAL if issues else ExitCode.SUCCESS

    @staticmethod
    def _writable(directory: Path) -> bool:
        marker = directory / ".upkg-test"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            marker.write_text("", encoding="utf-8")
            marker.unlink()
        except OSError as e:
            logger.debug(f"{directory} is not writable: {e}")
            return False
        return True

    def _cmd_backends(self, config: Config, paths: Paths) -> int:
        registry = self._registry(config, paths)
        table = Table(title="Backends (detection order)", show_header=True)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Backend", style="cyan")
        for index, name in enumerate(registry.list_backends(), start=1):
            table.add_row(str(index), name)
        self.output.console.print(table)
        return ExitCode.SUCCESS


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the ``upkg`` console script."""
    try:
        return CLI().run(argv)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return ExitCode.INTERRUPTED
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return ExitCode.GENERAL
