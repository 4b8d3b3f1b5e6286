"""Policy gate in front of process execution.

CommandGate runs one request through the policy engine, asks the user when
the decision is CONFIRM, and executes the command when it ends up allowed.
Edited commands are evaluated again from scratch against the same policy,
so an edit can turn a confirmation into an allow or a refusal.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, Protocol, Sequence, TextIO

from .execution import execute
from .interrupts import InterruptBroker
from .policy import decide, describe_reason
from .types import (
    CommandReport,
    CommandRequest,
    ExecutionMode,
    ExecutionOutcome,
    PolicyAction,
    PolicyDecision,
    PolicyReason,
    PolicySettings,
)

logger = logging.getLogger(__name__)


class ConfirmChoice(str, Enum):
    EXECUTE = "execute"
    EDIT = "edit"
    DETAILS = "details"
    REFUSE = "refuse"


ALL_CHOICES: tuple[ConfirmChoice, ...] = tuple(ConfirmChoice)


@dataclass(frozen=True)
class ConfirmationAnswer:
    """User's answer to a confirmation prompt. `text` is set for EDIT."""

    choice: ConfirmChoice
    text: Optional[str] = None


class Confirmer(Protocol):
    """Asks the user what to do with a command that needs confirmation."""

    def ask(
        self,
        request: CommandRequest,
        decision: PolicyDecision,
        choices: Sequence[ConfirmChoice],
    ) -> ConfirmationAnswer: ...

    def show_details(self, request: CommandRequest, decision: PolicyDecision) -> None: ...


class AutoConfirmation:
    """Non-interactive confirmer that always gives the same answer."""

    def __init__(self, approve: bool):
        self.approve = approve

    def ask(
        self,
        request: CommandRequest,
        decision: PolicyDecision,
        choices: Sequence[ConfirmChoice],
    ) -> ConfirmationAnswer:
        choice = ConfirmChoice.EXECUTE if self.approve else ConfirmChoice.REFUSE
        logger.info(f"Auto-{choice.value} for {request.text!r} ({decision.reason.value})")
        return ConfirmationAnswer(choice)

    def show_details(self, request: CommandRequest, decision: PolicyDecision) -> None:
        return None


WarningCallback = Callable[[CommandRequest, PolicyDecision], None]


class CommandGate:
    """Decide, confirm and execute commands under one policy.

    The gate owns the only path to `execute()`, and an internal lock keeps
    executions strictly sequential even when the model issues several tool
    calls at once.
    """

    def __init__(
        self,
        policy: PolicySettings,
        confirmer: Confirmer,
        *,
        broker: InterruptBroker,
        shell: Optional[str] = None,
        default_timeout_ms: Optional[int] = None,
        on_warning: Optional[WarningCallback] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        self._policy = policy
        self.confirmer = confirmer
        self.broker = broker
        self.shell = shell
        self.default_timeout_ms = default_timeout_ms
        self.on_warning = on_warning
        self.stdout = stdout
        self.stderr = stderr
        self._lock = asyncio.Lock()
        self._recorders: list[list[CommandReport]] = []

    @property
    def policy(self) -> PolicySettings:
        return self._policy

    def update_policy(self, **changes) -> PolicySettings:
        """Replace policy fields for the rest of the session."""
        self._policy = self._policy.update(**changes)
        logger.info(f"Policy updated: {self._policy.mode.value}")
        return self._policy

    @contextmanager
    def recording(self) -> Iterator[list[CommandReport]]:
        """Collect the reports of every command run while the block is active."""
        reports: list[CommandReport] = []
        self._recorders.append(reports)
        try:
            yield reports
        finally:
            self._recorders.remove(reports)

    def authorize(self, request: CommandRequest) -> tuple[CommandRequest, PolicyDecision]:
        """Resolve a request to a final ALLOW or DENY decision.

        Returns:
            The request that was finally decided on (it differs from the
            input when the user edited it) and an ALLOW or DENY decision.
        """
        current = request
        while True:
            decision = decide(current, self._policy)
            if decision.action is not PolicyAction.CONFIRM:
                return current, decision

            choices = ALL_CHOICES
            while True:
                answer = self.confirmer.ask(current, decision, choices)
                if answer.choice is ConfirmChoice.DETAILS and ConfirmChoice.DETAILS in choices:
                    self.confirmer.show_details(current, decision)
                    choices = tuple(c for c in ALL_CHOICES if c is not ConfirmChoice.DETAILS)
                    continue
                break

            if answer.choice is ConfirmChoice.EXECUTE:
                return current, decision.model_copy(update={"action": PolicyAction.ALLOW})
            if answer.choice is ConfirmChoice.EDIT and answer.text is not None:
                logger.debug(f"Command edited: {current.text!r} -> {answer.text!r}")
                current = current.with_text(answer.text)
                continue
            return current, decision.model_copy(update={"action": PolicyAction.DENY})

    async def run(self, request: CommandRequest) -> CommandReport:
        """Run one request through policy, confirmation and execution."""
        async with self._lock:
            report = await self._run(request)
        for recorder in self._recorders:
            recorder.append(report)
        return report

    async def _run(self, request: CommandRequest) -> CommandReport:
        final, decision = self.authorize(request)

        if decision.action is not PolicyAction.ALLOW:
            message = _not_run_message(decision)
            logger.info(f"Command not executed: {final.text!r} ({message})")
            return CommandReport(
                request=final,
                decision=decision,
                outcome=ExecutionOutcome.not_run(message),
                executed=False,
            )

        if decision.reason is PolicyReason.DENYLISTED and self._policy.mode is ExecutionMode.AUTO:
            logger.warning(f"Running deny-listed command: {final.text!r}")
            if self.on_warning is not None:
                self.on_warning(final, decision)

        if final.timeout_ms is None and self.default_timeout_ms is not None:
            final = final.model_copy(update={"timeout_ms": self.default_timeout_ms})

        outcome = await execute(
            final,
            broker=self.broker,
            shell=self.shell,
            stdout=self.stdout,
            stderr=self.stderr,
        )
        return CommandReport(request=final, decision=decision, outcome=outcome, executed=True)


def _not_run_message(decision: PolicyDecision) -> str:
    if decision.reason is PolicyReason.MESSAGE_MODE:
        return "Command not executed: message-only mode"
    if decision.reason is PolicyReason.MALFORMED:
        return "Command not executed: empty command"
    return f"Command refused by user ({describe_reason(decision.reason)})"


__all__ = [
    "ALL_CHOICES",
    "AutoConfirmation",
    "CommandGate",
    "ConfirmChoice",
    "ConfirmationAnswer",
    "Confirmer",
]
