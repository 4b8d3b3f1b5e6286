"""Toolset implementations shipped with closx.

The gated `shell` tool lives in closx.shell.toolset; this package holds the
read-only tools that never touch the policy gate.
"""

from .environment import build_environment_toolset

__all__ = [
    "build_environment_toolset",
]
