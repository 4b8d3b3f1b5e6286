"""Orchestration loop: ask the agent, run what it asked for, repeat.

One turn is one agent call. Commands the agent ran through the `shell`
tool during the call are summarized in a user message ahead of the
assistant text. The `<shell>` directives of that text then run strictly in
order through the command gate, and a single summarizing user message
carries the results back. The loop stops at the first turn without directives, or after
`max_turns` agent calls.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from .agent import AgentClient
from .conversation import Conversation
from .directives import ParsedResponse, split_response
from .shell.gate import CommandGate
from .shell.types import CommandReport, CommandRequest, PolicyReason

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 10
DEFAULT_OUTPUT_LIMIT = 4000

ResponseCallback = Callable[[ParsedResponse], None]
CommandCallback = Callable[[CommandRequest], None]
ReportCallback = Callable[[CommandReport], None]


@dataclass
class LoopResult:
    """What a call to `run()` did."""

    turns: int = 0
    truncated: bool = False
    reports: list[CommandReport] = field(default_factory=list)


def truncate_output(text: str, limit: int) -> str:
    """Shorten text to `limit` characters, keeping the tail visible."""
    if limit <= 0 or len(text) <= limit:
        return text
    omitted = len(text) - limit
    return f"[... {omitted} characters omitted ...]\n{text[-limit:]}"


def _status(report: CommandReport) -> str:
    outcome = report.outcome
    if not report.executed:
        if report.decision.reason is PolicyReason.MESSAGE_MODE:
            return "not executed (message-only mode)"
        return "denied"
    if outcome.interrupted:
        return "interrupted by user"
    if outcome.timed_out:
        return "timed out"
    if outcome.succeeded:
        return "ok"
    return "failed"


TOOL_RESULTS_HEADER = "Commands run through the shell tool:"


def format_results(
    reports: Sequence[CommandReport],
    output_limit: int = DEFAULT_OUTPUT_LIMIT,
    header: Optional[str] = None,
) -> str:
    """Build the user message that reports command results to the agent."""
    sections = []
    for report in reports:
        outcome = report.outcome
        lines = [
            f"Command: {report.request.text}",
            f"Exit code: {outcome.exit_code}",
            f"Status: {_status(report)}",
        ]
        stdout = outcome.stdout.strip()
        stderr = outcome.stderr.strip()
        if stdout:
            lines.append("Stdout:")
            lines.append(truncate_output(stdout, output_limit))
        if stderr:
            lines.append("Stderr:")
            lines.append(truncate_output(stderr, output_limit))
        sections.append("\n".join(lines))
    if header is None:
        header = "Command results:" if len(reports) > 1 else "Command result:"
    return header + "\n\n" + "\n\n".join(sections)


class OrchestrationLoop:
    """Alternates agent calls and command executions.

    Command failures (denied, refused, timed out, non-zero exit) are
    reported to the agent, never raised. AgentCallError from the agent
    propagates to the caller.
    """

    def __init__(
        self,
        agent: AgentClient,
        gate: CommandGate,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
        output_limit: int = DEFAULT_OUTPUT_LIMIT,
        working_directory: Optional[str] = None,
        on_response: Optional[ResponseCallback] = None,
        on_command: Optional[CommandCallback] = None,
        on_report: Optional[ReportCallback] = None,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.agent = agent
        self.gate = gate
        self.max_turns = max_turns
        self.output_limit = output_limit
        self.working_directory = working_directory
        self.on_response = on_response
        self.on_command = on_command
        self.on_report = on_report

    async def run_turn(self, conversation: Conversation) -> list[CommandReport]:
        """Make one agent call and run the directives of its response."""
        with self.gate.recording() as tool_reports:
            text = await self.agent.respond(conversation.messages)
        if tool_reports:
            logger.debug(f"{len(tool_reports)} command(s) ran through the shell tool")
            conversation.add_user(format_results(tool_reports, self.output_limit, header=TOOL_RESULTS_HEADER))
        conversation.add_assistant(text)

        parsed = split_response(text)
        if self.on_response is not None:
            self.on_response(parsed)

        reports: list[CommandReport] = []
        for directive in parsed.directives:
            request = CommandRequest(text=directive.command, working_directory=self.working_directory)
            if self.on_command is not None:
                self.on_command(request)
            report = await self.gate.run(request)
            logger.info(
                f"Directive {report.request.text!r}: executed={report.executed} "
                f"exit={report.outcome.exit_code}"
            )
            if self.on_report is not None:
                self.on_report(report)
            reports.append(report)

        if reports:
            conversation.add_user(format_results(reports, self.output_limit))
        return reports

    async def run(self, conversation: Conversation) -> LoopResult:
        """Run turns until one produces no directives or the turn limit is hit."""
        result = LoopResult()
        while True:
            if result.turns >= self.max_turns:
                logger.warning(f"Stopping after {self.max_turns} turns")
                result.truncated = True
                return result
            reports = await self.run_turn(conversation)
            result.turns += 1
            result.reports.extend(reports)
            if not reports:
                return result

    async def submit(self, conversation: Conversation, text: str) -> LoopResult:
        """Append a user message and run the loop on it."""
        conversation.add_user(text)
        return await self.run(conversation)


__all__ = [
    "DEFAULT_MAX_TURNS",
    "DEFAULT_OUTPUT_LIMIT",
    "LoopResult",
    "OrchestrationLoop",
    "TOOL_RESULTS_HEADER",
    "format_results",
    "truncate_output",
]
