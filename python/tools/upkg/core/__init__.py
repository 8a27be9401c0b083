#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core components: data model, errors, transactions and locking.
"""

from .errors import (
    AlreadyInstalledError,
    ExternalToolError,
    NoBackendError,
    NotFoundError,
    UpkgError,
)
from .models import ExitCode, InstallOptions, InstallRecord, Metadata, PackageType
from .transaction import TransactionManager

__all__ = [
    "AlreadyInstalledError",
    "ExitCode",
    "ExternalToolError",
    "InstallOptions",
    "InstallRecord",
    "Metadata",
    "NoBackendError",
    "NotFoundError",
    "PackageType",
    "TransactionManager",
    "UpkgError",
]
