"""Shell command execution as a PydanticAI toolset.

The `shell` tool is the programmatic counterpart of `<shell>` directives:
the model passes a command (and optionally a working directory, a timeout
and whether the command needs the terminal) and gets back stdout, stderr
and the exit code. Every call goes through the same CommandGate as
directives, so policy, confirmation and interrupt handling are identical on
both paths.

Security note: the allow/deny lists are UX only, not security.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic_ai.toolsets import FunctionToolset

from .gate import CommandGate
from .policy import PolicyError, require_command
from .types import CommandRequest, ExecutionOutcome, ShellToolResult

logger = logging.getLogger(__name__)


def build_shell_toolset(gate: CommandGate, *, max_retries: int = 1) -> FunctionToolset[Any]:
    """Return a toolset exposing the gated `shell` tool.

    Args:
        gate: Gate that decides, confirms and executes commands
        max_retries: Maximum retries for tool calls

    Returns:
        FunctionToolset with a single `shell` tool
    """
    toolset: FunctionToolset[Any] = FunctionToolset(max_retries=max_retries)

    @toolset.tool
    async def shell(
        command: str,
        working_directory: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        interactive: bool = False,
    ) -> ShellToolResult:
        """Execute a shell command on the user's machine.

        The command line is interpreted by the shell. Exit code 124 means the
        command timed out, 130 that the user interrupted it, and 1 with an
        explanation in stderr that it was refused or could not start.

        Set `interactive` for programs that need the user's terminal (editors,
        pagers, prompts). Their output goes straight to the user and is not
        returned; stdout only reports the exit code.

        Args:
            command: Command line to run
            working_directory: Directory to run in (defaults to the current directory)
            timeout_ms: Kill the command after this many milliseconds
            interactive: Run attached to the user's terminal instead of capturing output
        """
        try:
            require_command(command)
        except PolicyError as e:
            return ShellToolResult.from_outcome(ExecutionOutcome.not_run(str(e)))

        request = CommandRequest(
            text=command,
            working_directory=working_directory,
            timeout_ms=timeout_ms if timeout_ms and timeout_ms > 0 else None,
            interactive=interactive,
        )
        logger.debug(f"shell tool call: {request!r}")
        report = await gate.run(request)
        return ShellToolResult.from_outcome(report.outcome)

    return toolset


__all__ = ["build_shell_toolset"]
