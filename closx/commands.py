"""Slash commands available at the chat prompt."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .conversation import Conversation
from .shell.gate import CommandGate
from .shell.types import ExecutionMode, PolicySettings

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Type a request and press Enter. Commands the assistant proposes run
under the active policy.

  /help             Show this help
  /clear            Forget the conversation (keeps system messages)
  /policy           Show the active policy
  /policy MODE      Switch mode: auto, allowlist, denylist or message
  /quit             Exit
"""


class SlashStatus(str, Enum):
    OK = "ok"
    QUIT = "quit"
    UNKNOWN = "unknown"
    ERROR = "error"


@dataclass(frozen=True)
class SlashResult:
    status: SlashStatus
    message: str = ""
    policy: Optional[PolicySettings] = None


def is_slash_command(text: str) -> bool:
    return text.strip().startswith("/")


def describe_policy(policy: PolicySettings) -> str:
    allow = ", ".join(policy.allow_list) or "(empty)"
    deny = ", ".join(policy.deny_list) or "(empty)"
    return f"Mode: {policy.mode.value}\nAllow list: {allow}\nDeny list: {deny}"


def handle_slash_command(text: str, conversation: Conversation, gate: CommandGate) -> SlashResult:
    """Run a slash command against the session state.

    Command names are case-insensitive. Unknown commands are reported, not
    sent to the agent.
    """
    parts = text.strip().split()
    name = parts[0].lower() if parts else ""
    args = parts[1:]

    if name == "/help":
        return SlashResult(SlashStatus.OK, HELP_TEXT)

    if name == "/quit":
        return SlashResult(SlashStatus.QUIT, "Goodbye!")

    if name == "/clear":
        conversation.clear()
        logger.debug(f"Conversation cleared, {len(conversation)} system message(s) kept")
        return SlashResult(SlashStatus.OK, "Conversation history cleared")

    if name == "/policy":
        if args:
            try:
                mode = ExecutionMode(args[0].lower())
            except ValueError:
                choices = ", ".join(m.value for m in ExecutionMode)
                return SlashResult(SlashStatus.ERROR, f"Unknown mode {args[0]!r}. Choose one of: {choices}")
            gate.update_policy(mode=mode)
        return SlashResult(SlashStatus.OK, describe_policy(gate.policy), policy=gate.policy)

    return SlashResult(SlashStatus.UNKNOWN, f"Unknown command: {text.strip()}. Type /help for available commands.")


__all__ = [
    "HELP_TEXT",
    "SlashResult",
    "SlashStatus",
    "describe_policy",
    "handle_slash_command",
    "is_slash_command",
]
