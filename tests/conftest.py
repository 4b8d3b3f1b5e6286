"""Shared test fixtures and helpers for the closx test suite."""
from __future__ import annotations

import io
from typing import Sequence

import pytest

from closx.conversation import Message
from closx.shell.gate import AutoConfirmation, CommandGate
from closx.shell.interrupts import InterruptBroker
from closx.shell.types import ExecutionMode, PolicySettings


@pytest.fixture
def anyio_backend():
    # Process supervision is built on asyncio subprocesses
    return "asyncio"


@pytest.fixture
def broker():
    """Interrupt broker that never touches the real SIGINT handler."""
    return InterruptBroker(install_signal_handler=False)


@pytest.fixture
def streams():
    """(stdout, stderr) StringIO pair receiving live command output."""
    return io.StringIO(), io.StringIO()


@pytest.fixture
def make_gate(broker, streams):
    """Build a CommandGate with test streams and a fixed confirmation answer."""

    def _make(
        mode: ExecutionMode = ExecutionMode.AUTO,
        allow_list: Sequence[str] = (),
        deny_list: Sequence[str] = (),
        confirmer=None,
        **kwargs,
    ) -> CommandGate:
        policy = PolicySettings(mode=mode, allow_list=tuple(allow_list), deny_list=tuple(deny_list))
        out, err = streams
        return CommandGate(
            policy,
            confirmer or AutoConfirmation(False),
            broker=broker,
            stdout=out,
            stderr=err,
            **kwargs,
        )

    return _make


class ScriptedAgent:
    """AgentClient returning canned responses in order and recording each call."""

    def __init__(self, responses: Sequence[str]):
        self.responses = list(responses)
        self.calls: list[tuple[Message, ...]] = []

    async def respond(self, messages: Sequence[Message]) -> str:
        self.calls.append(tuple(messages))
        if len(self.calls) > len(self.responses):
            return self.responses[-1]
        return self.responses[len(self.calls) - 1]


@pytest.fixture
def scripted_agent():
    return ScriptedAgent
