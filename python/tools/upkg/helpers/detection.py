#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Package file type detection from extensions and magic numbers.
"""

from __future__ import annotations

import struct
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from loguru import logger

ELF_MAGIC = b"\x7fELF"
RPM_MAGIC = b"\xed\xab\xee\xdb"
GZIP_MAGIC = b"\x1f\x8b"
BZIP2_MAGIC = b"BZh"
XZ_MAGIC = b"\xfd7zXZ\x00"
ZIP_MAGIC = b"PK"
SHEBANG = b"#!"
SQUASHFS_MAGICS = (b"hsqs", b"sqsh")

HEADER_SIZE = 512
SQUASHFS_SCAN_LIMIT = 2 * 1024 * 1024
SQUASHFS_CHUNK = 8 * 1024

PathLike = Union[str, Path]


class FileType(str, Enum):
    """Coarse classification of a package file."""

    DEB = "deb"
    RPM = "rpm"
    APPIMAGE = "appimage"
    ELF = "elf"
    SCRIPT = "script"
    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_XZ = "tar.xz"
    TAR_BZ2 = "tar.bz2"
    ZIP = "zip"
    UNKNOWN = "unknown"


def read_header(path: PathLike, size: int = HEADER_SIZE) -> bytes:
    with open(path, "rb") as f:
        return f.read(size)


def is_elf(header: bytes) -> bool:
    return header.startswith(ELF_MAGIC)


def is_deb(header: bytes) -> bool:
    return header.startswith(b"!<arch>") and b"debian" in header[:72]


def has_squashfs(path: PathLike) -> bool:
    """Scan the first 2 MiB of ``path`` for a squashfs superblock magic."""
    overlap = b""
    read = 0
    with open(path, "rb") as f:
        while read < SQUASHFS_SCAN_LIMIT:
            chunk = f.read(SQUASHFS_CHUNK)
            if not chunk:
                break
            read += len(chunk)
            window = overlap + chunk
            if any(magic in window for magic in SQUASHFS_MAGICS):
                return True
            overlap = chunk[-3:]
    return False


def elf_end_offset(path: PathLike) -> Optional[int]:
    """
    Return the offset just past the ELF section header table.

    For an AppImage this is where the embedded squashfs image starts.
    """
    header = read_header(path, 64)
    if not is_elf(header) or len(header) < 52:
        return None
    ei_class, ei_data = header[4], header[5]
    endian = "<" if ei_data == 1 else ">"
    if ei_class == 2 and len(header) >= 64:
        (shoff,) = struct.unpack_from(endian + "Q", header, 0x28)
        shentsize, shnum = struct.unpack_from(endian + "HH", header, 0x3A)
    elif ei_class == 1:
        (shoff,) = struct.unpack_from(endian + "I", header, 0x20)
        shentsize, shnum = struct.unpack_from(endian + "HH", header, 0x2E)
    else:
        return None
    return shoff + shentsize * shnum


def is_appimage(path: PathLike) -> bool:
    try:
        return is_elf(read_header(path, 4)) and has_squashfs(path)
    except OSError as e:
        logger.debug(f"AppImage check failed for {path}: {e}")
        return False


def get_archive_type(path: PathLike) -> str:
    """Return ``tar.gz``, ``tar.xz``, ``tar.bz2``, ``tar``, ``zip`` or ``""``."""
    name = Path(path).name.lower()
    if name.endswith((".tar.gz", ".tgz")):
        return FileType.TAR_GZ.value
    if name.endswith((".tar.xz", ".txz")):
        return FileType.TAR_XZ.value
    if name.endswith((".tar.bz2", ".tbz2")):
        return FileType.TAR_BZ2.value
    if name.endswith(".tar"):
        return FileType.TAR.value
    if name.endswith(".zip"):
        return FileType.ZIP.value
    return ""


def detect_file_type(path: PathLike) -> FileType:
    """Classify ``path`` by extension first, then by magic numbers."""
    path = Path(path)
    name = path.name.lower()

    if name.endswith(".deb"):
        return FileType.DEB
    if name.endswith(".rpm"):
        return FileType.RPM
    if name.endswith(".appimage") and is_appimage(path):
        return FileType.APPIMAGE
    archive = get_archive_type(path)
    if archive:
        return FileType(archive)

    header = read_header(path)
    if is_elf(header):
        return FileType.APPIMAGE if has_squashfs(path) else FileType.ELF
    if header.startswith(SHEBANG):
        return FileType.SCRIPT
    if is_deb(header):
        return FileType.DEB
    if header.startswith(RPM_MAGIC):
        return FileType.RPM
    if len(header) >= 262 and header[257:262] == b"ustar":
        return FileType.TAR
    if header.startswith(GZIP_MAGIC):
        return FileType.TAR_GZ
    if header.startswith(XZ_MAGIC):
        return FileType.TAR_XZ
    if header.startswith(BZIP2_MAGIC):
        return FileType.TAR_BZ2
    if header.startswith(ZIP_MAGIC):
        return FileType.ZIP
    return FileType.UNKNOWN


def _looks_like_text(header: bytes) -> bool:
    if not header or b"\x00" in header:
        return False
    try:
        text = header.decode("utf-8")
    except UnicodeDecodeError:
        return False
    printable = sum(1 for c in text if c.isprintable() or c in "\r\n\t")
    return printable / len(text) >= 0.95


def describe_header(header: bytes) -> str:
    """
    Name the content of a file from its first bytes, for diagnostics shown
    when no backend accepts a package.
    """
    if b"debian" in header[:60]:
        return "deb"
    if header.startswith(RPM_MAGIC):
        return "rpm"
    if header.startswith(ELF_MAGIC):
        return "ELF binary"
    if header.startswith(SHEBANG):
        return "shell script"
    if header.startswith(ZIP_MAGIC):
        return "ZIP archive"
    if header.startswith(GZIP_MAGIC):
        return "gzip tarball"
    if header.startswith(BZIP2_MAGIC):
        return "bzip2 tarball"
    if header.startswith(XZ_MAGIC):
        return "xz tarball"
    if _looks_like_text(header):
        return "text"
    return "unknown"
