"""Tests for the orchestration loop."""
from __future__ import annotations

import os

import pytest

from closx.agent import AgentCallError
from closx.conversation import Conversation
from closx.loop import TOOL_RESULTS_HEADER, OrchestrationLoop, format_results, truncate_output
from closx.shell.types import (
    CommandReport,
    CommandRequest,
    ExecutionMode,
    ExecutionOutcome,
    PolicyAction,
    PolicyDecision,
    PolicyReason,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")


class FailingAgent:
    async def respond(self, messages):
        raise AgentCallError("provider down")


@pytest.mark.anyio
async def test_no_directives_means_one_call(make_gate, scripted_agent):
    agent = scripted_agent(["Nothing to run."])
    conversation = Conversation()
    conversation.add_user("hello")
    loop = OrchestrationLoop(agent, make_gate())

    result = await loop.run(conversation)

    assert len(agent.calls) == 1
    assert result.turns == 1
    assert not result.truncated
    assert result.reports == []
    assert [m.role for m in conversation.messages] == ["user", "assistant"]


@pytest.mark.anyio
@posix_only
async def test_directive_results_fed_back(make_gate, scripted_agent):
    agent = scripted_agent(["Listing: <shell>echo hi</shell>", "Done."])
    conversation = Conversation()
    loop = OrchestrationLoop(agent, make_gate(ExecutionMode.AUTO))

    result = await loop.submit(conversation, "say hi")

    assert result.turns == 2
    assert [m.role for m in conversation.messages] == ["user", "assistant", "user", "assistant"]
    summary = conversation.messages[2].content
    assert "Command: echo hi" in summary
    assert "Exit code: 0" in summary
    assert "hi" in summary
    # The second call saw the summary
    assert agent.calls[1][-1].content == summary


@pytest.mark.anyio
@posix_only
async def test_directives_run_in_order(make_gate, scripted_agent, tmp_path):
    log = tmp_path / "log"
    agent = scripted_agent([
        f"<shell>echo one >> {log}</shell><shell>echo two >> {log}</shell>",
        "ok",
    ])
    loop = OrchestrationLoop(agent, make_gate(ExecutionMode.AUTO))

    result = await loop.submit(Conversation(), "go")

    assert log.read_text() == "one\ntwo\n"
    assert [r.request.text for r in result.reports] == [
        f"echo one >> {log}",
        f"echo two >> {log}",
    ]


@pytest.mark.anyio
async def test_message_only_reports_without_running(make_gate, scripted_agent, tmp_path):
    marker = tmp_path / "m"
    agent = scripted_agent([f"<shell>touch {marker}</shell>", "ok"])
    loop = OrchestrationLoop(agent, make_gate(ExecutionMode.MESSAGE_ONLY))

    result = await loop.submit(Conversation(), "go")

    assert not marker.exists()
    assert result.reports[0].executed is False
    assert "not executed" in result.reports[0].outcome.stderr


@pytest.mark.anyio
async def test_turn_limit_truncates(make_gate, scripted_agent):
    agent = scripted_agent(["<shell>echo again</shell>"])
    loop = OrchestrationLoop(agent, make_gate(ExecutionMode.MESSAGE_ONLY), max_turns=3)

    result = await loop.submit(Conversation(), "loop forever")

    assert len(agent.calls) == 3
    assert result.turns == 3
    assert result.truncated


@pytest.mark.anyio
async def test_agent_error_propagates(make_gate):
    conversation = Conversation()
    loop = OrchestrationLoop(FailingAgent(), make_gate())

    with pytest.raises(AgentCallError, match="provider down"):
        await loop.submit(conversation, "hi")
    assert [m.role for m in conversation.messages] == ["user"]


class ToolCallingAgent:
    """Agent that runs a command through the gate while answering, like the shell tool."""

    def __init__(self, gate, command):
        self.gate = gate
        self.command = command

    async def respond(self, messages):
        report = await self.gate.run(CommandRequest(text=self.command))
        return f"Tool said: {report.outcome.stderr}"


@pytest.mark.anyio
async def test_tool_run_commands_enter_conversation(make_gate):
    gate = make_gate(ExecutionMode.MESSAGE_ONLY)
    conversation = Conversation()
    loop = OrchestrationLoop(ToolCallingAgent(gate, "uname -a"), gate)

    result = await loop.submit(conversation, "which kernel?")

    assert result.turns == 1
    assert [m.role for m in conversation.messages] == ["user", "user", "assistant"]
    summary = conversation.messages[1].content
    assert summary.startswith(TOOL_RESULTS_HEADER)
    assert "Command: uname -a" in summary
    assert "Status: not executed (message-only mode)" in summary


@pytest.mark.anyio
async def test_callbacks_receive_events(make_gate, scripted_agent):
    seen = []
    agent = scripted_agent(["Run <shell>ls</shell>", "done"])
    loop = OrchestrationLoop(
        agent,
        make_gate(ExecutionMode.MESSAGE_ONLY),
        on_response=lambda parsed: seen.append(("response", parsed.display_text)),
        on_command=lambda request: seen.append(("command", request.text)),
        on_report=lambda report: seen.append(("report", report.executed)),
    )

    await loop.submit(Conversation(), "go")

    assert seen == [
        ("response", "Run "),
        ("command", "ls"),
        ("report", False),
        ("response", "done"),
    ]


def test_max_turns_must_be_positive(make_gate, scripted_agent):
    with pytest.raises(ValueError):
        OrchestrationLoop(scripted_agent([]), make_gate(), max_turns=0)


def test_truncate_output_keeps_tail():
    text = "a" * 10 + "TAIL"
    short = truncate_output(text, 4)
    assert short.endswith("TAIL")
    assert "10 characters omitted" in short
    assert truncate_output("abc", 10) == "abc"
    assert truncate_output("abc", 0) == "abc"


def test_format_results_statuses():
    denied = CommandReport(
        request=CommandRequest(text="sudo x"),
        decision=PolicyDecision(action=PolicyAction.DENY, reason=PolicyReason.DENYLISTED),
        outcome=ExecutionOutcome.not_run("Command refused by user"),
        executed=False,
    )
    timed_out = CommandReport(
        request=CommandRequest(text="sleep 9"),
        decision=PolicyDecision(action=PolicyAction.ALLOW, reason=PolicyReason.UNLISTED),
        outcome=ExecutionOutcome(exit_code=124, timed_out=True, stderr="Command timed out after 5 ms"),
        executed=True,
    )

    text = format_results([denied, timed_out])

    assert text.startswith("Command results:")
    assert "Command: sudo x\nExit code: 1\nStatus: denied" in text
    assert "Status: timed out" in text
    assert "Command timed out after 5 ms" in text
