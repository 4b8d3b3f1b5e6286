"""Shell-related type definitions.

This module contains the data models shared by the policy engine, the
process supervisor and the orchestration loop:
- PolicySettings: execution mode plus allow/deny lists
- CommandRequest: a command the agent asked for
- PolicyDecision: what the policy engine decided for one request
- ExecutionOutcome: result of running (or not running) a command
- CommandReport: request, decision and outcome collected by the loop
- ShellToolResult: payload returned through the `shell` tool
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_TIMEOUT = 124
EXIT_INTERRUPTED = 130


class ExecutionMode(str, Enum):
    """How commands are gated before execution."""

    AUTO = "auto"
    ALLOWLIST = "allowlist"
    DENYLIST = "denylist"
    MESSAGE_ONLY = "message"


class PolicyAction(str, Enum):
    ALLOW = "allow"
    CONFIRM = "confirm"
    DENY = "deny"


class PolicyReason(str, Enum):
    ALLOWLISTED = "allowlisted"
    DENYLISTED = "denylisted"
    UNLISTED = "unlisted"
    MESSAGE_MODE = "message_mode"
    MALFORMED = "malformed"


class ExecutionState(str, Enum):
    """Lifecycle of a single execution. The last four are terminal."""

    PENDING = "pending"
    SPAWNED = "spawned"
    RUNNING = "running"
    CLOSED = "closed"
    TIMED_OUT = "timed_out"
    INTERRUPTED = "interrupted"
    SPAWN_ERROR = "spawn_error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({
    ExecutionState.CLOSED,
    ExecutionState.TIMED_OUT,
    ExecutionState.INTERRUPTED,
    ExecutionState.SPAWN_ERROR,
})


def _clean_entries(entries: Iterable[Any]) -> tuple[str, ...]:
    cleaned: list[str] = []
    for entry in entries:
        text = str(entry).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return tuple(cleaned)


class PolicySettings(BaseModel):
    """Execution mode plus allow/deny string-match lists.

    Entries are matched literally against the command text: allow entries
    as prefixes, deny entries as substrings. Whitespace-only entries are
    dropped on construction.
    """

    model_config = ConfigDict(frozen=True)

    mode: ExecutionMode = Field(default=ExecutionMode.ALLOWLIST)
    allow_list: tuple[str, ...] = Field(default=())
    deny_list: tuple[str, ...] = Field(default=())

    @field_validator("allow_list", "deny_list", mode="before")
    @classmethod
    def _normalize_entries(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        return _clean_entries(value)

    def update(self, **changes: Any) -> PolicySettings:
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return PolicySettings.model_validate(data)


class CommandRequest(BaseModel):
    """A single command extracted from an agent response or tool call."""

    model_config = ConfigDict(frozen=True)

    text: str
    working_directory: Optional[str] = None
    timeout_ms: Optional[int] = Field(default=None, ge=1)
    interactive: bool = False

    def with_text(self, text: str) -> CommandRequest:
        """Return a new request carrying user-edited command text."""
        return self.model_copy(update={"text": text})


class PolicyDecision(BaseModel):
    """Verdict of the policy engine for one request."""

    model_config = ConfigDict(frozen=True)

    action: PolicyAction
    reason: PolicyReason
    suggested_default: bool = False

    @property
    def allowed(self) -> bool:
        return self.action is PolicyAction.ALLOW


class ExecutionOutcome(BaseModel):
    """Result from a command execution."""

    model_config = ConfigDict(frozen=True)

    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    interrupted: bool = False
    timed_out: bool = False
    state: ExecutionState = ExecutionState.CLOSED

    @model_validator(mode="after")
    def _check_terminal_flags(self) -> ExecutionOutcome:
        if self.interrupted and self.timed_out:
            raise ValueError("an outcome cannot be both interrupted and timed out")
        return self

    @property
    def succeeded(self) -> bool:
        return self.exit_code == EXIT_SUCCESS

    @classmethod
    def not_run(cls, message: str) -> ExecutionOutcome:
        """Synthetic outcome for a command that never reached the OS."""
        return cls(
            stdout="",
            stderr=message,
            exit_code=EXIT_FAILURE,
            state=ExecutionState.PENDING,
        )


class CommandReport(BaseModel):
    """What happened to one directive: request, decision and outcome."""

    model_config = ConfigDict(frozen=True)

    request: CommandRequest
    decision: PolicyDecision
    outcome: ExecutionOutcome
    executed: bool


class ShellToolResult(BaseModel):
    """Result returned to the model through the `shell` tool."""

    stdout: str
    stderr: str
    exit_code: Optional[int]

    @classmethod
    def from_outcome(cls, outcome: ExecutionOutcome) -> ShellToolResult:
        return cls(
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            exit_code=outcome.exit_code,
        )


__all__ = [
    "CommandReport",
    "CommandRequest",
    "EXIT_FAILURE",
    "EXIT_INTERRUPTED",
    "EXIT_SUCCESS",
    "EXIT_TIMEOUT",
    "ExecutionMode",
    "ExecutionOutcome",
    "ExecutionState",
    "PolicyAction",
    "PolicyDecision",
    "PolicyReason",
    "PolicySettings",
    "ShellToolResult",
]
