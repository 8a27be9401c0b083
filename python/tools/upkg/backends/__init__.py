#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Package format backends and the registry that dispatches between them.
"""

from .appimage import AppImageBackend
from .base import Backend, InstallContext
from .binary import BinaryBackend
from .deb import DebBackend
from .registry import BACKEND_ORDER, BackendRegistry
from .rpm import RpmBackend
from .tarball import TarballBackend

__all__ = [
    "AppImageBackend",
    "BACKEND_ORDER",
    "Backend",
    "BackendRegistry",
    "BinaryBackend",
    "DebBackend",
    "InstallContext",
    "RpmBackend",
    "TarballBackend",
]
