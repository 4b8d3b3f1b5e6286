"""Interactive confirmation prompt for commands that need the user's approval."""
from __future__ import annotations

import logging
import signal
from contextlib import contextmanager
from typing import Iterator, Sequence

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from ..shell.gate import ConfirmationAnswer, ConfirmChoice
from ..shell.policy import describe_reason
from ..shell.types import CommandRequest, PolicyDecision
from .display import ConsoleDisplay

logger = logging.getLogger(__name__)

_KEYS = {
    ConfirmChoice.EXECUTE: "e",
    ConfirmChoice.EDIT: "m",
    ConfirmChoice.DETAILS: "d",
    ConfirmChoice.REFUSE: "r",
}

_LABELS = {
    ConfirmChoice.EXECUTE: ("[e] Execute", "green"),
    ConfirmChoice.EDIT: ("[m] Modify the command", "cyan"),
    ConfirmChoice.DETAILS: ("[d] Show details", "cyan"),
    ConfirmChoice.REFUSE: ("[r] Refuse", "red"),
}


@contextmanager
def _raising_sigint() -> Iterator[None]:
    """Make Ctrl+C raise KeyboardInterrupt while blocked on terminal input.

    asyncio.run replaces the default SIGINT handler with one that cancels the
    main task, which would leave a blocking input() waiting for Enter.
    """
    try:
        previous = signal.signal(signal.SIGINT, signal.default_int_handler)
    except ValueError:
        # Not the main thread
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def read_line(console: Console, prompt: str) -> str:
    """Read one line from the terminal. Raises EOFError or KeyboardInterrupt."""
    with _raising_sigint():
        return console.input(prompt)


class ConfirmationPrompt:
    """Confirmer that asks on the terminal through a rich Console.

    An empty answer takes the decision's suggested default (execute when
    True, refuse otherwise). EOF and Ctrl+C count as refuse.
    """

    def __init__(self, console: Console, display: ConsoleDisplay | None = None):
        self.console = console
        self.display = display or ConsoleDisplay(console)

    def _prompt(self, text: str) -> str:
        return read_line(self.console, text)

    def ask(
        self,
        request: CommandRequest,
        decision: PolicyDecision,
        choices: Sequence[ConfirmChoice],
    ) -> ConfirmationAnswer:
        default = ConfirmChoice.EXECUTE if decision.suggested_default else ConfirmChoice.REFUSE
        border = "yellow" if decision.suggested_default else "red"

        options = Text()
        for i, choice in enumerate(choices):
            label, style = _LABELS[choice]
            suffix = " (default)" if choice is default else ""
            options.append(label + suffix + ("\n" if i < len(choices) - 1 else ""), style=style)
        body = Group(
            Text(request.text, style="bold"),
            Text(f"Reason: {describe_reason(decision.reason)}\n", style=f"bold {border}"),
            options,
        )
        self.console.print()
        self.console.print(Panel(body, title="[bold]Run this command?[/bold]", border_style=border))

        keys = "/".join(_KEYS[c] for c in choices)
        by_key = {_KEYS[c]: c for c in choices}
        while True:
            try:
                response = self._prompt(f"[bold cyan]Choice [{keys}][/bold cyan]: ").strip().lower()
            except (EOFError, KeyboardInterrupt):
                self.console.print()
                logger.debug("Confirmation prompt closed; refusing")
                return ConfirmationAnswer(ConfirmChoice.REFUSE)

            if not response:
                return ConfirmationAnswer(default)
            choice = by_key.get(response[0])
            if choice is None:
                self.console.print(f"Unknown choice. Use {keys}.", style="yellow")
                continue
            if choice is ConfirmChoice.EDIT:
                return self._edit(request)
            return ConfirmationAnswer(choice)

    def _edit(self, request: CommandRequest) -> ConfirmationAnswer:
        self.console.print(Text.assemble(("Current: ", "dim"), (request.text, "")))
        try:
            edited = self._prompt("[bold cyan]New command[/bold cyan]: ").strip()
        except (EOFError, KeyboardInterrupt):
            self.console.print()
            return ConfirmationAnswer(ConfirmChoice.REFUSE)
        if not edited:
            # Nothing typed: keep the original text and ask again under the policy
            edited = request.text
        return ConfirmationAnswer(ConfirmChoice.EDIT, text=edited)

    def show_details(self, request: CommandRequest, decision: PolicyDecision) -> None:
        self.display.show_details(request, decision)


__all__ = ["ConfirmationPrompt", "read_line"]
