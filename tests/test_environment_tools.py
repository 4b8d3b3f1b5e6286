"""Tests for the read-only environment tools."""
from __future__ import annotations

import os
from pathlib import Path

from closx.toolsets.environment import (
    build_environment_toolset,
    current_directory,
    current_environment,
    directory_info,
)


def _tree(root: Path) -> Path:
    (root / "a.txt").write_text("hello")
    (root / ".hidden").write_text("x")
    sub = root / "sub"
    sub.mkdir()
    (sub / "b.py").write_text("print(1)\n")
    return root


def test_directory_info_lists_children(tmp_path):
    info = directory_info(str(_tree(tmp_path)))

    names = {item.name: item for item in info.items}
    assert info.exists and info.is_directory
    assert set(names) == {"a.txt", "sub"}
    assert names["a.txt"].type == "file"
    assert names["a.txt"].size == 5
    assert names["a.txt"].extension == "txt"
    assert names["sub"].type == "directory"
    assert info.stats.total_files == 1
    assert info.stats.total_directories == 1
    assert info.stats.total_size == 5


def test_directory_info_hidden_and_depth(tmp_path):
    info = directory_info(str(_tree(tmp_path)), include_hidden=True, depth=2)

    names = [item.name for item in info.items]
    assert ".hidden" in names
    assert "b.py" in names
    nested = next(item for item in info.items if item.name == "b.py")
    assert nested.depth == 2


def test_directory_info_missing_path(tmp_path):
    info = directory_info(str(tmp_path / "missing"))
    assert not info.exists
    assert info.items == []


def test_directory_info_unreadable_directory(tmp_path, monkeypatch):
    def denied(self):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "iterdir", denied)
    info = directory_info(str(tmp_path))

    assert info.exists and info.is_directory
    assert info.items == []
    assert "Permission denied" in info.error


def test_directory_info_on_file(tmp_path):
    target = tmp_path / "f"
    target.write_text("x")
    info = directory_info(str(target))
    assert info.exists and not info.is_directory


def test_current_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert os.path.realpath(current_directory()) == os.path.realpath(str(tmp_path))


def test_current_environment(monkeypatch):
    monkeypatch.setenv("LANG", "C.UTF-8")
    info = current_environment()
    assert info.lang == "C.UTF-8"
    assert info.path is None
    assert info.hostname
    assert info.cwd == str(Path.cwd())


def test_current_environment_path_details(monkeypatch):
    monkeypatch.setenv("PATH", os.pathsep.join(["/usr/bin", "", "/bin"]))
    info = current_environment(include_path_details=True)
    assert info.path_entries == ["/usr/bin", "/bin"]


def test_toolset_registers_all_tools():
    toolset = build_environment_toolset()
    assert set(toolset.tools) == {"directory_info", "current_directory", "current_environment"}
