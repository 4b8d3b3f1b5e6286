"""Shell command gating and execution.

This package provides the policy engine, the process supervisor and the
gate that ties them together:
- Allow entries are matched as command prefixes, deny entries as substrings
- CONFIRM decisions are resolved interactively before anything runs
- Timeouts and Ctrl+C resolve an execution exactly once

The lists are a convenience gate for a trusted operator, not a sandbox.
"""
from __future__ import annotations

from .execution import DEFAULT_INTERRUPT_GRACE, execute
from .gate import (
    AutoConfirmation,
    CommandGate,
    ConfirmationAnswer,
    ConfirmChoice,
    Confirmer,
)
from .interrupts import InterruptBroker, InterruptBrokerBusy
from .policy import PolicyError, decide, describe_reason, require_command
from .types import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    EXIT_TIMEOUT,
    CommandReport,
    CommandRequest,
    ExecutionMode,
    ExecutionOutcome,
    ExecutionState,
    PolicyAction,
    PolicyDecision,
    PolicyReason,
    PolicySettings,
    ShellToolResult,
)

# Note: build_shell_toolset is imported separately so the policy engine does
# not pull in pydantic-ai. Use: from closx.shell.toolset import build_shell_toolset

__all__ = [
    # Constants
    "DEFAULT_INTERRUPT_GRACE",
    "EXIT_FAILURE",
    "EXIT_INTERRUPTED",
    "EXIT_SUCCESS",
    "EXIT_TIMEOUT",
    # Types
    "CommandReport",
    "CommandRequest",
    "ExecutionMode",
    "ExecutionOutcome",
    "ExecutionState",
    "PolicyAction",
    "PolicyDecision",
    "PolicyReason",
    "PolicySettings",
    "ShellToolResult",
    # Errors
    "InterruptBrokerBusy",
    "PolicyError",
    # Policy and execution
    "AutoConfirmation",
    "CommandGate",
    "ConfirmChoice",
    "ConfirmationAnswer",
    "Confirmer",
    "InterruptBroker",
    "decide",
    "describe_reason",
    "execute",
    "require_command",
]


def __getattr__(name: str):
    """Lazy import for build_shell_toolset."""
    if name == "build_shell_toolset":
        from .toolset import build_shell_toolset
        return build_shell_toolset
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
