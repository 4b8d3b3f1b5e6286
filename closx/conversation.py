"""Conversation state owned by the orchestration loop."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Literal

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class Message:
    role: Role
    content: str


@dataclass
class Conversation:
    """Ordered, append-only list of role-tagged messages.

    `messages` hands out an immutable snapshot; the only ways to change the
    history are the append methods and `clear()`, which keeps system
    messages.
    """

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    _messages: list[Message] = field(default_factory=list, repr=False)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, role: Role, content: str) -> Message:
        if role not in ("system", "user", "assistant"):
            raise ValueError(f"Unknown message role: {role!r}")
        message = Message(role=role, content=content)
        self._messages.append(message)
        return message

    def add_system(self, content: str) -> Message:
        return self.append("system", content)

    def add_user(self, content: str) -> Message:
        return self.append("user", content)

    def add_assistant(self, content: str) -> Message:
        return self.append("assistant", content)

    def clear(self) -> None:
        """Drop everything except system messages."""
        self._messages[:] = [m for m in self._messages if m.role == "system"]

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None


__all__ = ["Conversation", "Message", "Role"]
