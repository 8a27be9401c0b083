#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Filesystem layout derived from the configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import Config


@dataclass(frozen=True)
class Paths:
    data_dir: Path
    db_file: Path
    log_file: Path
    bin_dir: Path
    apps_dir: Path
    icon_dir: Path

    @classmethod
    def from_config(cls, config: Config) -> Paths:
        p = config.paths
        return cls(
            data_dir=p.data_dir,
            db_file=p.resolved_db_file(),
            log_file=p.resolved_log_file(),
            bin_dir=p.bin_dir,
            apps_dir=p.apps_dir,
            icon_dir=p.icon_dir,
        )

    @classmethod
    def under(cls, root: Path) -> Paths:
        """A self-contained layout rooted at ``root``, mirroring ``~/.local``."""
        root = Path(root)
        data_dir = root / "share" / "upkg"
        return cls(
            data_dir=data_dir,
            db_file=data_dir / "installed.db",
            log_file=data_dir / "upkg.log",
            bin_dir=root / "bin",
            apps_dir=root / "share" / "applications",
            icon_dir=root / "share" / "icons",
        )

    @property
    def hicolor_dir(self) -> Path:
        return self.icon_dir / "hicolor"

    @property
    def upkg_apps_dir(self) -> Path:
        """Where extracted tarball, deb and rpm trees are kept."""
        return self.data_dir / "apps"

    @property
    def locks_dir(self) -> Path:
        return self.data_dir / "locks"

    def ensure(self) -> None:
        """Create upkg's own state directories. Install targets are created by transactions."""
        for directory in (self.data_dir, self.db_file.parent, self.locks_dir):
            directory.mkdir(parents=True, exist_ok=True)
