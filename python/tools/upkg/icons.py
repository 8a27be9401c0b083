#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Icon discovery and placement into the hicolor icon theme.

Icons found in an extracted package are bucketed into the standard hicolor
sizes, resized when the source is larger than its bucket, and registered in
``hicolor/index.theme`` so the theme engine actually looks at the directory.
"""

from __future__ import annotations

import os
import re
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger
from PIL import Image, UnidentifiedImageError

from .core.models import IconFile

PathLike = Union[str, Path]

STANDARD_SIZES = (16, 22, 24, 32, 48, 64, 128, 256, 512)
DEFAULT_SIZE = "48x48"
SCALABLE = "scalable"
ICON_EXTENSIONS = (".png", ".svg", ".xpm")

_DIMENSION_RE = re.compile(r"(\d+)x(\d+)")

_ICON_THEME_HEADER = [
    "[Icon Theme]",
    "Name=Hicolor",
    "Comment=Fallback icon theme",
    "Hidden=true",
]


def normalize_to_standard_size(dimension: int) -> int:
    """Map a pixel dimension to the smallest standard size that holds it, capped at 512."""
    for size in STANDARD_SIZES:
        if dimension <= size:
            return size
    return STANDARD_SIZES[-1]


def _bucket(dimension: int) -> str:
    size = normalize_to_standard_size(dimension)
    return f"{size}x{size}"


def _image_dimension(path: PathLike) -> Optional[int]:
    try:
        with Image.open(path) as img:
            width, height = img.size
    except (OSError, UnidentifiedImageError, ValueError):
        return None
    return max(width, height)


def detect_icon_size(path: PathLike) -> str:
    """
    Work out the hicolor size directory for an icon.

    An ``NxM`` component in the path wins, then ``scalable``/SVG, then the
    decoded image size. Unknown icons land in 48x48.
    """
    text = str(path)
    match = _DIMENSION_RE.search(text)
    if match:
        return _bucket(max(int(match.group(1)), int(match.group(2))))

    lowered = text.lower()
    if SCALABLE in lowered or lowered.endswith(".svg"):
        return SCALABLE

    dimension = _image_dimension(path)
    if dimension:
        return _bucket(dimension)
    return DEFAULT_SIZE


def discover_icons(source_dir: PathLike) -> List[IconFile]:
    """Find PNG, SVG and XPM icons below ``source_dir``, ignoring symlinks."""
    icons: List[IconFile] = []
    for dirpath, dirnames, filenames in os.walk(source_dir):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath, filename)
            if path.is_symlink():
                continue
            ext = path.suffix.lower()
            if ext not in ICON_EXTENSIONS:
                continue
            icons.append(IconFile(path=path, size=detect_icon_size(path), ext=ext[1:]))
    return icons


def _parse_square_size(size: str) -> int:
    parts = size.split("x")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return 0
    return max(int(parts[0]), int(parts[1]))


def _find_section(lines: List[str], name: str) -> Tuple[int, int]:
    header = f"[{name}]"
    for i, line in enumerate(lines):
        if line.strip() != header:
            continue
        for j in range(i + 1, len(lines)):
            stripped = lines[j].strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                return i, j
        return i, len(lines)
    return -1, -1


def _append_block(lines: List[str], block: List[str]) -> None:
    if lines and lines[-1].strip():
        lines.append("")
    lines.extend(block)


def _directory_section(dir_name: str, size: str) -> List[str]:
    if size == SCALABLE:
        return [
            f"[{dir_name}]",
            "MinSize=1",
            "Size=128",
            "MaxSize=256",
            "Context=Applications",
            "Type=Scalable",
        ]
    dimension = _parse_square_size(size)
    if not dimension:
        return []
    return [
        f"[{dir_name}]",
        f"Size={dimension}",
        "Context=Applications",
        "Type=Threshold",
    ]


def update_index_theme(lines: List[str], size: str) -> bool:
    """
    Register ``<size>/apps`` in the parsed lines of an index.theme file.

    Returns True when ``lines`` was changed.
    """
    dir_name = f"{size}/apps"
    changed = False

    start, end = _find_section(lines, "Icon Theme")
    if start == -1:
        _append_block(lines, [*_ICON_THEME_HEADER, f"Directories={dir_name}"])
        changed = True
    else:
        for i in range(start + 1, end):
            if lines[i].strip().startswith("Directories="):
                dirs = [d.strip() for d in lines[i].split("=", 1)[1].split(",") if d.strip()]
                if dir_name not in dirs:
                    lines[i] = "Directories=" + ",".join([*dirs, dir_name])
                    changed = True
                break
        else:
            lines.insert(end, f"Directories={dir_name}")
            changed = True

    if _find_section(lines, dir_name)[0] == -1:
        section = _directory_section(dir_name, size)
        if section:
            _append_block(lines, section)
            changed = True
    return changed


class IconManager:
    """
    Installs icons under ``<icon_dir>/hicolor``.

    Every file and directory created, and every rewrite of ``index.theme``,
    is recorded in the transaction passed to the install methods.
    """

    def __init__(self, icon_dir: PathLike) -> None:
        self.icon_dir = Path(icon_dir)
        self.hicolor_dir = self.icon_dir / "hicolor"

    def icon_path(self, name: str, size: str, ext: str) -> Path:
        return self.hicolor_dir / size / "apps" / f"{name}.{ext.lstrip('.')}"

    def ensure_hicolor_index(self, size: str, tx=None) -> bool:
        """Make sure index.theme lists ``<size>/apps``. Returns True if it was rewritten."""
        if not size:
            return False
        if tx is not None:
            tx.ensure_dir(self.hicolor_dir)
        else:
            self.hicolor_dir.mkdir(parents=True, exist_ok=True)

        index = self.hicolor_dir / "index.theme"
        content = index.read_text(encoding="utf-8") if index.exists() else ""
        content = content.rstrip("\n")
        lines = content.split("\n") if content else []

        if not update_index_theme(lines, size):
            return False
        if tx is not None:
            tx.modified_file(index, f"updated {index} for {size}/apps")
        index.write_text("\n".join(lines) + "\n", encoding="utf-8")
        os.chmod(index, 0o644)
        logger.debug(f"Registered {size}/apps in {index}")
        return True

    def install_icon(self, src: PathLike, name: str, size: str, tx=None) -> Path:
        """
        Copy one icon into ``hicolor/<size>/apps/<name><ext>``.

        Rasters larger than their bucket are resized with Pillow and always
        saved as PNG.
        """
        src = Path(src)
        self.ensure_hicolor_index(size, tx)

        target_dir = self.hicolor_dir / size / "apps"
        if tx is not None:
            tx.ensure_dir(target_dir)
        else:
            target_dir.mkdir(parents=True, exist_ok=True)

        target_size = _parse_square_size(size)
        resized = self._resized(src, target_size) if target_size else None
        ext = "png" if resized is not None else src.suffix.lstrip(".").lower()
        dest = self.icon_path(name, size, ext)

        if tx is not None:
            if dest.exists():
                tx.modified_file(dest, f"replaced icon {dest}")
            else:
                tx.created_file(dest, f"installed icon {dest}")

        if resized is not None:
            with resized:
                resized.save(dest, format="PNG")
        else:
            shutil.copyfile(src, dest)
        os.chmod(dest, 0o644)
        logger.debug(f"Installed icon {src} -> {dest}")
        return dest

    @staticmethod
    def _resized(src: Path, target_size: int) -> Optional[Image.Image]:
        if src.suffix.lower() == ".svg":
            return None
        try:
            with Image.open(src) as img:
                if img.width <= target_size and img.height <= target_size:
                    return None
                img.load()
                return img.convert("RGBA").resize((target_size, target_size), Image.LANCZOS)
        except (OSError, UnidentifiedImageError, ValueError) as e:
            logger.debug(f"Copying {src} unchanged, not decodable: {e}")
            return None

    def install_icons(self, icons: List[IconFile], name: str, tx=None) -> List[Path]:
        """
        Install at most one icon per size bucket.

        The biggest source file wins a bucket; SVG and PNG are preferred over
        XPM. Icons that fail to install are logged and skipped.
        """
        best: Dict[str, IconFile] = {}
        for icon in icons:
            current = best.get(icon.size)
            if current is None or self._rank(icon) > self._rank(current):
                best[icon.size] = icon

        installed: List[Path] = []
        for size, icon in best.items():
            try:
                installed.append(self.install_icon(icon.path, name, size, tx))
            except OSError as e:
                logger.warning(f"Failed to install icon {icon.path}: {e}")
        return installed

    @staticmethod
    def _rank(icon: IconFile) -> Tuple[int, int]:
        try:
            file_size = Path(icon.path).stat().st_size
        except OSError:
            file_size = 0
        return (0 if icon.ext == "xpm" else 1, file_size)
