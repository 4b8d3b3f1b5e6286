"""Rich rendering of agent responses, commands and outcomes."""
from __future__ import annotations

import sys
from typing import Optional, TextIO

from rich.console import Console, Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from ..directives import ParsedResponse
from ..shell.policy import describe_reason
from ..shell.types import CommandReport, CommandRequest, PolicyDecision, PolicySettings


class ConsoleDisplay:
    """Renders session events to a rich Console.

    Command output itself is relayed live by the executor, so reports only
    show the status line.
    """

    def __init__(self, console: Optional[Console] = None, stream: Optional[TextIO] = None):
        self.console = console or Console(file=stream or sys.stdout)

    def show_response(self, parsed: ParsedResponse) -> None:
        text = parsed.display_text.strip()
        if text:
            self.console.print()
            self.console.print(Markdown(text))

    def show_command(self, request: CommandRequest) -> None:
        self.console.print()
        self.console.print(Text.assemble(("$ ", "bold green"), (request.text, "bold")))

    def show_report(self, report: CommandReport) -> None:
        outcome = report.outcome
        if not report.executed:
            self.console.print(Text(outcome.stderr, style="yellow"))
            return
        if outcome.interrupted:
            self.console.print(Text(f"Interrupted (exit code {outcome.exit_code})", style="yellow"))
        elif outcome.timed_out:
            self.console.print(Text(f"Timed out (exit code {outcome.exit_code})", style="red"))
        elif outcome.succeeded:
            self.console.print(Text(f"✓ exit code {outcome.exit_code}", style="dim green"))
        else:
            self.console.print(Text(f"✗ exit code {outcome.exit_code}", style="red"))

    def show_deny_warning(self, request: CommandRequest, decision: PolicyDecision) -> None:
        """Loud banner for a deny-listed command that is about to run anyway."""
        body = Group(
            Text("This command matches the deny list and will run anyway.", style="bold red"),
            Text(request.text, style="bold"),
        )
        self.console.print(
            Panel(body, title="[bold red]Warning: deny-listed command[/bold red]", border_style="red")
        )

    def show_policy(self, policy: PolicySettings) -> None:
        body = Text()
        body.append("Mode: ", style="bold")
        body.append(f"{policy.mode.value}\n")
        body.append("Allow list: ", style="bold")
        body.append((", ".join(policy.allow_list) or "(empty)") + "\n")
        body.append("Deny list: ", style="bold")
        body.append(", ".join(policy.deny_list) or "(empty)")
        self.console.print(Panel(body, title="Policy", border_style="cyan"))

    def show_details(self, request: CommandRequest, decision: PolicyDecision) -> None:
        body = Text()
        body.append("Command: ", style="bold")
        body.append(f"{request.text}\n")
        body.append("Working directory: ", style="bold")
        body.append(f"{request.working_directory or '(current directory)'}\n")
        body.append("Timeout: ", style="bold")
        body.append(f"{request.timeout_ms} ms\n" if request.timeout_ms else "none\n")
        body.append("Reason: ", style="bold")
        body.append(describe_reason(decision.reason))
        self.console.print(Panel(body, title="Command details", border_style="cyan"))

    def show_info(self, message: str) -> None:
        self.console.print(Text(message, style="cyan"))

    def show_warning(self, message: str) -> None:
        self.console.print(Text(message, style="yellow"))

    def show_error(self, message: str) -> None:
        self.console.print(Text(f"Error: {message}", style="bold red"))


__all__ = ["ConsoleDisplay"]
