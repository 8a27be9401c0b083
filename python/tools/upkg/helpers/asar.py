#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Minimal reader for Electron ASAR archives.

Layout: a Chromium pickle holding the JSON header size, the pickled JSON
header itself, then the concatenated file contents. Files flagged
``unpacked`` live next to the archive in ``<name>.asar.unpacked``.
"""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Union

from ..core.errors import UpkgError

PathLike = Union[str, Path]


class AsarError(UpkgError):
    """The file is not a readable ASAR archive."""


@dataclass(frozen=True)
class AsarEntry:
    path: str
    size: int
    offset: int
    unpacked: bool = False


class AsarArchive:
    """Random access to the files stored in an ``.asar`` archive."""

    def __init__(self, path: PathLike) -> None:
        self.path = Path(path)
        self._header, self._data_offset = self._read_header()

    def _read_header(self) -> tuple[Dict[str, Any], int]:
        try:
            with open(self.path, "rb") as f:
                prefix = f.read(16)
                if len(prefix) < 16:
                    raise AsarError(f"truncated asar header: {self.path}")
                _, header_size, _, json_size = struct.unpack("<4I", prefix)
                raw = f.read(json_size)
        except OSError as e:
            raise AsarError(f"failed to open asar {self.path}: {e}", cause=e) from e

        try:
            header = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AsarError(f"corrupt asar header in {self.path}", cause=e) from e
        if not isinstance(header, dict) or "files" not in header:
            raise AsarError(f"asar header has no file table: {self.path}")
        return header, 8 + header_size

    def entries(self) -> Iterator[AsarEntry]:
        """Yield every regular file in the archive, depth first."""
        yield from self._walk(self._header.get("files", {}), "")

    def _walk(self, files: Dict[str, Any], prefix: str) -> Iterator[AsarEntry]:
        for name, node in files.items():
            path = f"{prefix}/{name}" if prefix else name
            if "files" in node:
                yield from self._walk(node["files"], path)
            elif "link" in node:
                continue
            else:
                yield AsarEntry(
                    path=path,
                    size=int(node.get("size", 0)),
                    offset=int(node.get("offset", 0)),
                    unpacked=bool(node.get("unpacked", False)),
                )

    def read(self, entry: AsarEntry) -> bytes:
        if entry.unpacked:
            unpacked = Path(f"{self.path}.unpacked", entry.path)
            return unpacked.read_bytes()
        with open(self.path, "rb") as f:
            f.seek(self._data_offset + entry.offset)
            data = f.read(entry.size)
        if len(data) != entry.size:
            raise AsarError(f"truncated asar entry {entry.path} in {self.path}")
        return data
