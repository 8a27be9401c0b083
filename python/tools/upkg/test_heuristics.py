import pytest

from .conftest import write_elf
from .core.errors import NoExecutableFoundError
from .heuristics import (
    choose_best_executable,
    find_executables,
    is_elf_executable,
    rank_executables,
    score_executable,
)

MIB = 1024 * 1024


class TestFindExecutables:
    """Tests for executable discovery."""

    def test_skips_non_elf_libraries_and_non_executables(self, tmp_path):
        write_elf(tmp_path / "bin" / "app")
        write_elf(tmp_path / "lib" / "libfoo.so.1")
        write_elf(tmp_path / "data" / "blob", mode=0o644)
        script = tmp_path / "run.sh"
        script.write_text("#!/bin/sh\n")
        script.chmod(0o755)
        (tmp_path / "link").symlink_to(tmp_path / "bin" / "app")

        assert find_executables(tmp_path) == [tmp_path / "bin" / "app"]

    def test_order_is_sorted(self, tmp_path):
        for name in ("zeta", "alpha", "mid"):
            write_elf(tmp_path / name)
        assert [p.name for p in find_executables(tmp_path)] == ["alpha", "mid", "zeta"]

    def test_relocatable_object_is_not_executable(self, tmp_path):
        path = tmp_path / "obj.o"
        path.write_bytes(b"\x7fELF" + bytes([2, 1, 1, 0]) + b"\x00" * 8 + b"\x01\x00")
        assert not is_elf_executable(path)


class TestScoring:
    """Tests for the executable scoring heuristic."""

    def test_main_binary_beats_updater(self, tmp_path):
        main = write_elf(tmp_path / "myapp" / "bin" / "myapp", size=11 * MIB)
        updater = write_elf(tmp_path / "myapp" / "bin" / "myapp-updater", size=50 * 1024)

        assert score_executable(main, "myapp", tmp_path) == 230
        assert score_executable(updater, "myapp", tmp_path) == -70
        assert choose_best_executable([updater, main], "myapp", tmp_path) == main

    def test_penalty_patterns(self, tmp_path):
        sandbox = write_elf(tmp_path / "chrome-sandbox", size=MIB + 1)
        app = write_elf(tmp_path / "browser", size=MIB + 1)
        assert score_executable(sandbox, "browser", tmp_path) < score_executable(
            app, "browser", tmp_path
        )

    def test_deep_paths_are_penalised(self, tmp_path):
        deep_dir = tmp_path.joinpath(*[f"d{i}" for i in range(11)])
        deep = write_elf(deep_dir / "tool", size=MIB + 1)
        assert score_executable(deep, "", tmp_path) == (11 - 12) * 10 - 50 + 10


class TestTieBreak:
    """Tests for deterministic selection among equal scores."""

    def test_first_seen_wins(self, tmp_path):
        first = write_elf(tmp_path / "one", size=200 * 1024)
        second = write_elf(tmp_path / "two", size=200 * 1024)

        ranked = rank_executables([first, second], "", tmp_path)
        assert ranked[0].score == ranked[1].score
        assert [c.path for c in ranked] == [first, second]
        assert choose_best_executable([second, first], "", tmp_path) == second

    def test_repeatable(self, tmp_path):
        candidates = [write_elf(tmp_path / f"tool{i}", size=200 * 1024) for i in range(5)]
        picks = {choose_best_executable(candidates, "", tmp_path) for _ in range(10)}
        assert picks == {candidates[0]}

    def test_no_candidates(self, tmp_path):
        with pytest.raises(NoExecutableFoundError):
            choose_best_executable([], "app", tmp_path)
