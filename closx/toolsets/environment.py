"""Read-only environment inspection tools for the agent.

Provides directory_info, current_directory and current_environment. None of
them change anything on disk, so they run without going through the
command gate.
"""
from __future__ import annotations

import getpass
import os
import platform
import shutil
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_ai.toolsets import FunctionToolset

ItemType = Literal["file", "directory", "symlink", "other"]


class DirectoryItem(BaseModel):
    name: str
    type: ItemType
    is_hidden: bool
    modified_time: str
    size: Optional[int] = None
    extension: Optional[str] = None
    depth: int = Field(default=1, description="1 for direct children")


class DirectoryStats(BaseModel):
    total_items: int = 0
    total_files: int = 0
    total_directories: int = 0
    total_size: int = 0


class DirectoryInfo(BaseModel):
    """Listing of a directory with basic statistics."""

    path: str
    exists: bool
    is_directory: bool
    items: list[DirectoryItem] = Field(default_factory=list)
    stats: DirectoryStats = Field(default_factory=DirectoryStats)
    error: Optional[str] = None


class EnvironmentInfo(BaseModel):
    """Facts about the machine the commands will run on."""

    cwd: str
    user: str
    shell: Optional[str]
    platform: str
    os_release: str
    arch: str
    hostname: str
    python_version: str
    lang: Optional[str]
    home: str
    path: Optional[str] = None
    path_entries: Optional[list[str]] = None


def _item_type(entry: Path) -> ItemType:
    if entry.is_symlink():
        return "symlink"
    if entry.is_dir():
        return "directory"
    if entry.is_file():
        return "file"
    return "other"


def _list_directory(root: Path, include_hidden: bool, depth: int, level: int = 1) -> list[DirectoryItem]:
    items: list[DirectoryItem] = []
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        hidden = entry.name.startswith(".")
        if hidden and not include_hidden:
            continue
        try:
            stat = entry.stat()
        except OSError:
            # Broken symlinks and unreadable entries are skipped.
            continue
        kind = _item_type(entry)
        item = DirectoryItem(
            name=entry.name,
            type=kind,
            is_hidden=hidden,
            modified_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            depth=level,
        )
        if kind == "file":
            item.size = stat.st_size
            item.extension = entry.suffix.lstrip(".") or None
        items.append(item)
        if kind == "directory" and level < depth:
            try:
                items.extend(_list_directory(entry, include_hidden, depth, level + 1))
            except OSError:
                continue
    return items


def directory_info(path: Optional[str] = None, include_hidden: bool = False, depth: int = 1) -> DirectoryInfo:
    """Describe a directory: its entries and simple statistics.

    Args:
        path: Directory to inspect (defaults to the current directory)
        include_hidden: Include entries whose name starts with a dot
        depth: How many levels to descend (1 lists direct children only)
    """
    target = Path(path).expanduser() if path else Path.cwd()
    resolved = str(target.resolve())
    if not target.exists():
        return DirectoryInfo(path=resolved, exists=False, is_directory=False)
    if not target.is_dir():
        return DirectoryInfo(path=resolved, exists=True, is_directory=False)

    try:
        items = _list_directory(target, include_hidden, max(depth, 1))
    except OSError as e:
        return DirectoryInfo(path=resolved, exists=True, is_directory=True, error=f"Cannot read directory: {e}")
    stats = DirectoryStats(
        total_items=len(items),
        total_files=sum(1 for item in items if item.type == "file"),
        total_directories=sum(1 for item in items if item.type == "directory"),
        total_size=sum(item.size or 0 for item in items),
    )
    return DirectoryInfo(path=resolved, exists=True, is_directory=True, items=items, stats=stats)


def current_directory() -> str:
    """Return the absolute path of the current working directory."""
    return str(Path.cwd())


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def current_environment(include_path_details: bool = False) -> EnvironmentInfo:
    """Describe the user's environment: OS, shell, user and locale.

    Args:
        include_path_details: Also return PATH and its individual entries
    """
    shell = os.environ.get("SHELL") or os.environ.get("ComSpec") or shutil.which("sh")
    info = EnvironmentInfo(
        cwd=str(Path.cwd()),
        user=_user_name(),
        shell=shell,
        platform=sys.platform,
        os_release=f"{platform.system()} {platform.release()}".strip(),
        arch=platform.machine(),
        hostname=socket.gethostname(),
        python_version=platform.python_version(),
        lang=os.environ.get("LANG") or os.environ.get("LC_ALL"),
        home=str(Path.home()),
    )
    if include_path_details:
        path_value = os.environ.get("PATH")
        info.path = path_value
        info.path_entries = [p for p in (path_value or "").split(os.pathsep) if p]
    return info


def build_environment_toolset() -> FunctionToolset[Any]:
    """Return a toolset with the read-only environment tools."""
    toolset: FunctionToolset[Any] = FunctionToolset()
    toolset.tool(directory_info)
    toolset.tool(current_directory)
    toolset.tool(current_environment)
    return toolset


__all__ = [
    "DirectoryInfo",
    "EnvironmentInfo",
    "build_environment_toolset",
    "current_directory",
    "current_environment",
    "directory_info",
]
