"""Shared fixtures for the upkg tests."""

import struct
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

import pytest
from PIL import Image

from .config import Config
from .core.errors import ExternalToolError
from .core.models import CommandResult
from .helpers.runner import CommandRunner
from .paths import Paths

Handler = Callable[[List[str], Optional[Path]], Union[str, CommandResult, None]]


class FakeRunner(CommandRunner):
    """
    Records every command instead of running it.

    ``available`` lists the commands ``command_exists`` reports; ``handlers``
    maps a program's basename to a callable that may produce output or side
    effects, return a full CommandResult, or raise.
    """

    def __init__(
        self,
        available: Iterable[str] = (),
        handlers: Optional[Dict[str, Handler]] = None,
    ) -> None:
        super().__init__()
        self.available = set(available)
        self.handlers = dict(handlers or {})
        self.calls: List[List[str]] = []

    def command_exists(self, name: str) -> bool:
        return name in self.available

    def sudo_prefix(self) -> List[str]:
        return []

    def run(self, command, *, cwd=None, timeout=None, check=True, env=None) -> CommandResult:
        argv = [str(part) for part in command]
        self.calls.append(argv)
        handler = self.handlers.get(Path(argv[0]).name)
        output = handler(argv, Path(cwd) if cwd else None) if handler else ""

        if isinstance(output, dict):
            result = output
        else:
            result = {
                "success": True,
                "stdout": output or "",
                "stderr": "",
                "command": argv,
                "return_code": 0,
            }
        if check and not result["success"]:
            raise ExternalToolError(
                f"{argv[0]} failed",
                command=argv,
                return_code=result["return_code"],
                stdout=result["stdout"],
                stderr=result["stderr"],
            )
        return result

    def called(self, program: str) -> List[List[str]]:
        return [c for c in self.calls if Path(c[0]).name == program]


def failed(stderr: str = "", return_code: int = 1) -> CommandResult:
    return {
        "success": False,
        "stdout": "",
        "stderr": stderr,
        "command": [],
        "return_code": return_code,
    }


def elf_bytes(e_type: int = 2, payload: bytes = b"") -> bytes:
    """A minimal little-endian ELF64 header followed by ``payload``."""
    header = b"\x7fELF" + bytes([2, 1, 1, 0]) + b"\x00" * 8
    header += struct.pack("<HH", e_type, 0x3E)
    return header.ljust(64, b"\x00") + payload


def write_elf(path: Path, size: int = 0, mode: int = 0o755) -> Path:
    """Write an executable ELF file, padded (sparsely) to ``size`` bytes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.write(elf_bytes())
        if size:
            f.truncate(size)
    path.chmod(mode)
    return path


def write_appimage(path: Path) -> Path:
    """An ELF file with an embedded squashfs superblock magic."""
    path.write_bytes(elf_bytes(payload=b"\x00" * 4096 + b"hsqs" + b"\x00" * 64))
    path.chmod(0o755)
    return path


def write_png(path: Path, size: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", (size, size), (255, 0, 0, 255)).save(path, format="PNG")
    return path


@pytest.fixture
def paths(tmp_path) -> Paths:
    return Paths.under(tmp_path / "home")


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
