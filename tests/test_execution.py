"""Tests for process execution with real shell subprocesses."""
from __future__ import annotations

import asyncio
import os
import signal
import time

import pytest

from closx.shell.execution import execute
from closx.shell.interrupts import InterruptBroker, InterruptBrokerBusy
from closx.shell.types import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_TIMEOUT,
    CommandRequest,
    ExecutionState,
)

pytestmark = [
    pytest.mark.anyio,
    pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands"),
]


async def _run(request, broker, streams, **kwargs):
    out, err = streams
    return await execute(request, broker=broker, stdout=out, stderr=err, **kwargs)


async def test_echo_captures_and_relays_output(broker, streams):
    outcome = await _run(CommandRequest(text="echo hello"), broker, streams)

    assert outcome.stdout == "hello\n"
    assert outcome.stderr == ""
    assert outcome.exit_code == 0
    assert outcome.state is ExecutionState.CLOSED
    assert not outcome.interrupted and not outcome.timed_out
    assert streams[0].getvalue() == "hello\n"


async def test_stderr_and_exit_code(broker, streams):
    outcome = await _run(CommandRequest(text="echo oops >&2; exit 3"), broker, streams)

    assert outcome.stderr == "oops\n"
    assert outcome.exit_code == 3
    assert streams[1].getvalue() == "oops\n"


async def test_working_directory(broker, streams, tmp_path):
    outcome = await _run(CommandRequest(text="pwd", working_directory=str(tmp_path)), broker, streams)

    assert os.path.realpath(outcome.stdout.strip()) == os.path.realpath(str(tmp_path))


async def test_missing_working_directory_is_spawn_error(broker, streams, tmp_path):
    missing = tmp_path / "nope"
    outcome = await _run(CommandRequest(text="ls", working_directory=str(missing)), broker, streams)

    assert outcome.exit_code == EXIT_FAILURE
    assert outcome.state is ExecutionState.SPAWN_ERROR
    assert "Command execution error" in outcome.stderr
    assert not broker.busy


async def test_nonexistent_binary(broker, streams):
    outcome = await _run(CommandRequest(text="definitely-not-a-real-binary-xyz"), broker, streams)

    assert outcome.exit_code == EXIT_FAILURE
    assert "Command execution error: command not found" in outcome.stderr
    assert not broker.busy


async def test_signal_handling_survives_nonexistent_binary(streams):
    broker = InterruptBroker()
    previous = signal.getsignal(signal.SIGINT)

    missing = await _run(CommandRequest(text="definitely-not-a-real-binary-xyz"), broker, streams)
    assert missing.exit_code == EXIT_FAILURE
    assert not broker.busy
    assert not broker.signal_installed

    loop = asyncio.get_running_loop()
    loop.call_later(0.3, os.kill, os.getpid(), signal.SIGINT)
    outcome = await _run(CommandRequest(text="sleep 5"), broker, streams, interrupt_grace=0.5)

    assert outcome.exit_code == EXIT_INTERRUPTED
    assert outcome.interrupted
    assert outcome.state is ExecutionState.INTERRUPTED
    assert not broker.busy
    assert signal.getsignal(signal.SIGINT) is previous


@pytest.mark.parametrize("text", ["exit 127", "echo partial; exit 127", "exit 126"])
async def test_command_chosen_launch_statuses_are_kept(broker, streams, text):
    outcome = await _run(CommandRequest(text=text), broker, streams)

    assert outcome.exit_code == int(text[-3:])
    assert outcome.state is ExecutionState.CLOSED
    assert "Command execution error" not in outcome.stderr


async def test_timeout_kills_and_reports(broker, streams):
    started = time.monotonic()
    outcome = await _run(CommandRequest(text="sleep 5", timeout_ms=200), broker, streams)
    elapsed = time.monotonic() - started

    assert outcome.exit_code == EXIT_TIMEOUT
    assert outcome.timed_out
    assert not outcome.interrupted
    assert outcome.state is ExecutionState.TIMED_OUT
    assert "Command timed out after 200 ms" in outcome.stderr
    assert elapsed < 3
    assert not broker.busy


async def test_timeout_kills_background_children(broker, streams):
    # The whole process group is killed, so the pipe closes promptly
    started = time.monotonic()
    outcome = await _run(CommandRequest(text="sleep 5 & sleep 5", timeout_ms=200), broker, streams)

    assert outcome.exit_code == EXIT_TIMEOUT
    assert time.monotonic() - started < 3


async def test_interrupt_resolves_once(broker, streams):
    loop = asyncio.get_running_loop()
    results = []
    loop.call_later(0.2, lambda: results.append(broker.interrupt()))
    loop.call_later(0.25, lambda: results.append(broker.interrupt()))

    outcome = await _run(CommandRequest(text="sleep 5"), broker, streams, interrupt_grace=0.5)

    assert outcome.exit_code == EXIT_INTERRUPTED
    assert outcome.interrupted
    assert not outcome.timed_out
    assert outcome.state is ExecutionState.INTERRUPTED
    assert results[0] is True
    # The second delivery reaches the owner but cannot change the outcome
    assert broker.delivered >= 1
    assert not broker.busy
    assert broker.interrupt() is False


async def test_interrupt_after_exit_is_noop(broker, streams):
    outcome = await _run(CommandRequest(text="true"), broker, streams)

    assert outcome.exit_code == 0
    assert broker.interrupt() is False


async def test_interactive_output_is_marker(broker, streams):
    outcome = await _run(CommandRequest(text="exit 2", interactive=True), broker, streams)

    assert outcome.stdout == "[Interactive command completed with exit code: 2]"
    assert outcome.exit_code == 2


async def test_busy_broker_rejects_second_execution(broker, streams):
    with broker.owned(lambda: None):
        with pytest.raises(InterruptBrokerBusy):
            await _run(CommandRequest(text="echo hi"), broker, streams)


async def test_custom_shell(broker, streams):
    outcome = await _run(CommandRequest(text="echo $0"), broker, streams, shell="/bin/sh")

    assert outcome.exit_code == 0
    assert outcome.stdout.strip().endswith("sh")
