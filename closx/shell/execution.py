"""Shell command execution with timeout and interrupt supervision.

This module provides:
- `execute()`: run one command through the shell and return an ExecutionOutcome
- Captured mode: stdout/stderr are buffered and relayed live to the parent
- Inherited mode: the child shares the terminal, output is replaced by a marker

Every execution passes through PENDING -> SPAWNED -> RUNNING and then exactly
one terminal state. Process exit, timeout and interrupt all race to resolve
the execution; the first to flip the `finished` flag wins and the others
become no-ops.

Security note: the command runs with the user's privileges. Nothing here
confines what it does once started.
"""
from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
import sys
from typing import Optional, TextIO

from .interrupts import InterruptBroker, InterruptBrokerBusy
from .types import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_TIMEOUT,
    CommandRequest,
    ExecutionOutcome,
    ExecutionState,
)

logger = logging.getLogger(__name__)

# Seconds a child gets to exit after a forwarded interrupt before it is killed
DEFAULT_INTERRUPT_GRACE = 2.0

# Seconds to wait for a killed child, and for stream readers to hit EOF
REAP_TIMEOUT = 2.0

READ_CHUNK_SIZE = 4096

# Exit statuses a POSIX shell uses when it cannot launch the requested program
SHELL_LAUNCH_FAILURES = {126: "cannot execute", 127: "command not found"}

# What the shell prints on stderr when it fails to launch a program
LAUNCH_FAILURE_MESSAGES = ("not found", "permission denied", "cannot execute", "no such file")

INTERACTIVE_COMPLETED = "[Interactive command completed with exit code: {code}]"
INTERACTIVE_INTERRUPTED = "[Interactive command was interrupted by user]"
INTERACTIVE_TIMED_OUT = "[Interactive command timed out after {ms} ms]"

_POSIX = os.name == "posix"
_KILL_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)


class _Supervisor:
    """State of one execution; resolves to a terminal state exactly once."""

    def __init__(self, command: CommandRequest):
        self.command = command
        self.state = ExecutionState.PENDING
        self.finished = False
        self.done = asyncio.Event()

    def advance(self, state: ExecutionState) -> None:
        logger.debug(f"{self.command.text!r}: {self.state.value} -> {state.value}")
        self.state = state

    def resolve(self, state: ExecutionState) -> bool:
        """Enter a terminal state. Returns False if already resolved."""
        if self.finished:
            return False
        self.finished = True
        self.advance(state)
        self.done.set()
        return True


async def execute(
    command: CommandRequest,
    *,
    broker: InterruptBroker,
    shell: Optional[str] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
    interrupt_grace: float = DEFAULT_INTERRUPT_GRACE,
) -> ExecutionOutcome:
    """Execute a command and return its outcome.

    Args:
        command: Request to run; `text` is interpreted by the shell
        broker: Interrupt broker owned for the lifetime of the process
        shell: Shell executable (defaults to the platform shell, /bin/sh on POSIX)
        stdout: Stream receiving live stdout in captured mode (defaults to sys.stdout)
        stderr: Stream receiving live stderr in captured mode (defaults to sys.stderr)
        interrupt_grace: Seconds an interrupted child gets before being killed

    Returns:
        ExecutionOutcome. Spawn errors, timeouts and interrupts are reported
        through the outcome, never raised.

    Raises:
        InterruptBrokerBusy: If another execution is still running
    """
    if broker.busy:
        raise InterruptBrokerBusy("Another command is still running")

    supervisor = _Supervisor(command)
    captured = not command.interactive
    # A new session makes the child a process-group leader, so signals reach
    # everything it started. Inherited mode keeps the terminal's group.
    group = captured and _POSIX

    logger.info(f"Executing shell command: {command.text!r}")
    try:
        process = await _spawn(command, shell=shell, captured=captured, new_session=group)
    except (OSError, ValueError) as e:
        supervisor.resolve(ExecutionState.SPAWN_ERROR)
        logger.info(f"Failed to start {command.text!r}: {e}")
        return ExecutionOutcome(
            stdout="",
            stderr=f"Command execution error: {e}",
            exit_code=EXIT_FAILURE,
            state=ExecutionState.SPAWN_ERROR,
        )
    supervisor.advance(ExecutionState.SPAWNED)

    out_buffer: list[str] = []
    err_buffer: list[str] = []
    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        if not supervisor.resolve(ExecutionState.INTERRUPTED):
            return
        logger.info(f"Interrupt forwarded to pid {process.pid}")
        _send_signal(process, signal.SIGINT, group=group)

    def on_timeout() -> None:
        if not supervisor.resolve(ExecutionState.TIMED_OUT):
            return
        logger.info(f"Command timed out after {command.timeout_ms} ms, killing pid {process.pid}")
        _send_signal(process, _KILL_SIGNAL, group=group)

    readers: list[asyncio.Task[None]] = []
    timer: Optional[asyncio.TimerHandle] = None
    waiter = asyncio.ensure_future(process.wait())
    try:
        with broker.owned(on_interrupt):
            if command.timeout_ms is not None:
                timer = loop.call_later(command.timeout_ms / 1000, on_timeout)
            if captured:
                readers = [
                    asyncio.ensure_future(_pump(process.stdout, out_buffer, stdout or sys.stdout)),
                    asyncio.ensure_future(_pump(process.stderr, err_buffer, stderr or sys.stderr)),
                ]
            waiter.add_done_callback(lambda _: supervisor.resolve(ExecutionState.CLOSED))
            supervisor.advance(ExecutionState.RUNNING)

            await supervisor.done.wait()

            if supervisor.state is ExecutionState.INTERRUPTED:
                await _reap(process, waiter, grace=interrupt_grace, group=group)
            elif supervisor.state is ExecutionState.TIMED_OUT:
                await _reap(process, waiter, grace=REAP_TIMEOUT, group=group)
    finally:
        if timer is not None:
            timer.cancel()
        if not waiter.done():
            _send_signal(process, _KILL_SIGNAL, group=group)
            await _wait_bounded({waiter}, REAP_TIMEOUT)
            if not waiter.done():
                waiter.cancel()
        await _finish_readers(readers)

    outcome = _build_outcome(
        command,
        supervisor.state,
        returncode=process.returncode,
        stdout="".join(out_buffer),
        stderr="".join(err_buffer),
    )
    logger.info(
        f"Command {command.text!r} finished: state={outcome.state.value} exit_code={outcome.exit_code}"
    )
    return outcome


async def _spawn(
    command: CommandRequest,
    *,
    shell: Optional[str],
    captured: bool,
    new_session: bool,
) -> asyncio.subprocess.Process:
    pipe = asyncio.subprocess.PIPE if captured else None
    kwargs: dict = {
        "cwd": command.working_directory or None,
        "stdin": asyncio.subprocess.DEVNULL if captured else None,
        "stdout": pipe,
        "stderr": pipe,
    }
    if new_session:
        kwargs["start_new_session"] = True
    if shell:
        return await asyncio.create_subprocess_exec(shell, "-c", command.text, **kwargs)
    return await asyncio.create_subprocess_shell(command.text, **kwargs)


async def _pump(
    stream: Optional[asyncio.StreamReader],
    buffer: list[str],
    sink: TextIO,
) -> None:
    """Append each chunk to the buffer and relay it to the parent stream."""
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        final = not chunk
        text = decoder.decode(chunk, final=final)
        if text:
            buffer.append(text)
            sink.write(text)
            sink.flush()
        if final:
            return


def _send_signal(process: asyncio.subprocess.Process, signum: int, *, group: bool) -> None:
    if process.returncode is not None:
        return
    try:
        if group:
            os.killpg(process.pid, signum)
        else:
            process.send_signal(signum)
    except ProcessLookupError:
        pass


async def _wait_bounded(tasks: set, timeout: float) -> None:
    pending = {task for task in tasks if not task.done()}
    if pending:
        await asyncio.wait(pending, timeout=timeout)


async def _reap(
    process: asyncio.subprocess.Process,
    waiter: asyncio.Future,
    *,
    grace: float,
    group: bool,
) -> None:
    """Give the child `grace` seconds to exit, then kill it."""
    await _wait_bounded({waiter}, grace)
    if not waiter.done():
        logger.debug(f"pid {process.pid} still alive after {grace}s, killing")
        _send_signal(process, _KILL_SIGNAL, group=group)
        await _wait_bounded({waiter}, REAP_TIMEOUT)
    if not waiter.done():
        logger.warning(f"pid {process.pid} did not exit after kill")


async def _finish_readers(readers: list[asyncio.Task[None]]) -> None:
    if not readers:
        return
    await _wait_bounded(set(readers), REAP_TIMEOUT)
    for reader in readers:
        if not reader.done():
            reader.cancel()
    await asyncio.gather(*readers, return_exceptions=True)


def _append_line(text: str, line: str) -> str:
    if not text:
        return line
    if not text.endswith("\n"):
        text += "\n"
    return text + line


def _is_launch_failure(returncode: Optional[int], stdout: str, stderr: str) -> bool:
    """True when a 126/127 status came from the shell, not from the command.

    A command that printed anything, or exited with 127 on its own, keeps
    its real exit code.
    """
    if returncode not in SHELL_LAUNCH_FAILURES or stdout.strip():
        return False
    lowered = stderr.lower()
    return any(message in lowered for message in LAUNCH_FAILURE_MESSAGES)


def _build_outcome(
    command: CommandRequest,
    state: ExecutionState,
    *,
    returncode: Optional[int],
    stdout: str,
    stderr: str,
) -> ExecutionOutcome:
    if state is ExecutionState.INTERRUPTED:
        if command.interactive:
            stdout, stderr = INTERACTIVE_INTERRUPTED, ""
        else:
            stderr = _append_line(stderr, "Command interrupted by user")
        return ExecutionOutcome(
            stdout=stdout,
            stderr=stderr,
            exit_code=EXIT_INTERRUPTED,
            interrupted=True,
            state=state,
        )

    if state is ExecutionState.TIMED_OUT:
        if command.interactive:
            stdout, stderr = INTERACTIVE_TIMED_OUT.format(ms=command.timeout_ms), ""
        else:
            stderr = _append_line(stderr, f"Command timed out after {command.timeout_ms} ms")
        return ExecutionOutcome(
            stdout=stdout,
            stderr=stderr,
            exit_code=EXIT_TIMEOUT,
            timed_out=True,
            state=state,
        )

    # The shell started, but could not launch the program it was asked for.
    if not command.interactive and _is_launch_failure(returncode, stdout, stderr):
        detail = f"Command execution error: {SHELL_LAUNCH_FAILURES[returncode]} (shell exit status {returncode})"
        return ExecutionOutcome(
            stdout=stdout,
            stderr=_append_line(stderr, detail),
            exit_code=EXIT_FAILURE,
            state=state,
        )

    if command.interactive:
        stdout, stderr = INTERACTIVE_COMPLETED.format(code=returncode), ""
    return ExecutionOutcome(
        stdout=stdout,
        stderr=stderr,
        exit_code=returncode,
        state=state,
    )


__all__ = [
    "DEFAULT_INTERRUPT_GRACE",
    "INTERACTIVE_COMPLETED",
    "INTERACTIVE_INTERRUPTED",
    "SHELL_LAUNCH_FAILURES",
    "execute",
]
