"""Policy engine: decide whether a command runs, needs confirmation, or is refused.

Matching rules (kept deliberately literal):
- Allow entries match when the command text starts with the entry
- Deny entries match when the entry appears anywhere in the command text
- Matching is case-sensitive and does no shell parsing, so chained
  commands (`ls; rm -rf x`) are judged by their leading text only

Security note: these lists are an operator convenience gate, not a
sandbox. An allowed command can do anything the user can.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..errors import ClosxError
from .types import (
    CommandRequest,
    ExecutionMode,
    PolicyAction,
    PolicyDecision,
    PolicyReason,
    PolicySettings,
)

logger = logging.getLogger(__name__)


class PolicyError(ClosxError):
    """Raised when a command is malformed and cannot be evaluated."""
    pass


def require_command(text: str) -> str:
    """Return the command text, raising PolicyError when it is empty."""
    if not text or not text.strip():
        raise PolicyError("Empty command")
    return text


def find_allow_match(text: str, allow_list: Iterable[str]) -> Optional[str]:
    """Return the first allow entry the command starts with (or equals)."""
    for entry in allow_list:
        if text.startswith(entry) or text == entry:
            return entry
    return None


def find_deny_match(text: str, deny_list: Iterable[str]) -> Optional[str]:
    """Return the first deny entry contained in the command text."""
    for entry in deny_list:
        if entry in text:
            return entry
    return None


def decide(command: CommandRequest, policy: PolicySettings) -> PolicyDecision:
    """Evaluate a command against the policy. First matching rule wins.

    Args:
        command: The request to evaluate
        policy: Active policy settings

    Returns:
        A fresh PolicyDecision. The function has no side effects, so the
        same inputs always yield an equal decision.
    """
    text = command.text
    if not text.strip():
        return PolicyDecision(action=PolicyAction.DENY, reason=PolicyReason.MALFORMED)

    mode = policy.mode
    if mode is ExecutionMode.MESSAGE_ONLY:
        return PolicyDecision(action=PolicyAction.DENY, reason=PolicyReason.MESSAGE_MODE)

    allowed_by = find_allow_match(text, policy.allow_list)
    denied_by = find_deny_match(text, policy.deny_list)

    if mode is ExecutionMode.AUTO:
        # Auto mode runs everything; a deny match is reported so the caller can warn.
        if denied_by is not None:
            reason = PolicyReason.DENYLISTED
        elif allowed_by is not None:
            reason = PolicyReason.ALLOWLISTED
        else:
            reason = PolicyReason.UNLISTED
        decision = PolicyDecision(action=PolicyAction.ALLOW, reason=reason, suggested_default=True)

    elif mode is ExecutionMode.ALLOWLIST:
        if allowed_by is not None:
            decision = PolicyDecision(
                action=PolicyAction.ALLOW,
                reason=PolicyReason.ALLOWLISTED,
                suggested_default=True,
            )
        elif denied_by is not None:
            decision = PolicyDecision(
                action=PolicyAction.CONFIRM,
                reason=PolicyReason.DENYLISTED,
                suggested_default=False,
            )
        else:
            decision = PolicyDecision(
                action=PolicyAction.CONFIRM,
                reason=PolicyReason.UNLISTED,
                suggested_default=True,
            )

    else:  # ExecutionMode.DENYLIST
        if denied_by is not None:
            decision = PolicyDecision(
                action=PolicyAction.CONFIRM,
                reason=PolicyReason.DENYLISTED,
                suggested_default=False,
            )
        else:
            decision = PolicyDecision(
                action=PolicyAction.ALLOW,
                reason=PolicyReason.ALLOWLISTED if allowed_by is not None else PolicyReason.UNLISTED,
                suggested_default=True,
            )

    logger.debug(
        f"Policy {mode.value}: {text!r} -> {decision.action.value}/{decision.reason.value} "
        f"(allow={allowed_by!r}, deny={denied_by!r})"
    )
    return decision


def describe_reason(reason: PolicyReason) -> str:
    """Return a short human-readable explanation of a decision reason."""
    return _REASON_TEXT[reason]


_REASON_TEXT = {
    PolicyReason.ALLOWLISTED: "command matches the allow list",
    PolicyReason.DENYLISTED: "command matches the deny list",
    PolicyReason.UNLISTED: "command is not on the allow list",
    PolicyReason.MESSAGE_MODE: "message-only mode: commands are shown but never run",
    PolicyReason.MALFORMED: "command is empty",
}


__all__ = [
    "PolicyError",
    "decide",
    "describe_reason",
    "find_allow_match",
    "find_deny_match",
    "require_command",
]
