#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
upkg: transactional multi-format package installer

Installs AppImage, DEB, RPM, tarball, zip and standalone ELF packages into
the user's home, wiring up wrapper scripts, hicolor icons and desktop
entries. Every install runs inside an undo-log transaction, so a failure
partway through leaves nothing behind.
"""

__version__ = "1.0.0"

from .backends.base import Backend
from .backends.registry import BackendRegistry
from .config import Config, load_config
from .core.errors import UpkgError
from .core.models import InstallOptions, InstallRecord, PackageType
from .core.transaction import TransactionManager
from .db import InstallStore
from .paths import Paths

__all__ = [
    "__version__",
    "Backend",
    "BackendRegistry",
    "Config",
    "InstallOptions",
    "InstallRecord",
    "InstallStore",
    "PackageType",
    "Paths",
    "TransactionManager",
    "UpkgError",
    "load_config",
]
