#!/usr/bin/env python
"""Talk to a shell-savvy assistant that proposes and runs commands.

Usage:
    closx "find the five largest files here"     One-shot request
    closx                                        Chat session
    closx -i "show git status"                   One request, then chat
    closx /policy                                Run a slash command

Commands proposed by the assistant run under the active policy:
    auto       run everything (deny-listed commands with a warning)
    allowlist  run allow-listed commands, confirm the rest (default)
    denylist   confirm deny-listed commands, run the rest
    message    show commands, never run them

Configuration is read from ~/.config/closx/closx.toml, ~/.closx.toml and
./.closx.toml, then CLOSX_* environment variables, then --set overrides.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

from ..agent import AgentCallError, AgentClient, PydanticAIAgent
from ..commands import SlashStatus, handle_slash_command, is_slash_command
from ..config import ClosxConfig, ConfigError, load_config
from ..conversation import Conversation
from ..loop import LoopResult, OrchestrationLoop
from ..prompts import build_instructions, session_message
from ..shell.gate import AutoConfirmation, CommandGate, Confirmer
from ..shell.interrupts import InterruptBroker
from ..shell.toolset import build_shell_toolset
from ..shell.types import ExecutionMode
from ..toolsets.environment import build_environment_toolset, current_environment
from ..ui import ConfirmationPrompt, ConsoleDisplay, read_line

logger = logging.getLogger(__name__)

ENV_MODEL_VAR = "CLOSX_MODEL"
PROMPT = "[bold green]closx>[/bold green] "


def _is_interactive_terminal() -> bool:
    """Return True when both stdin and stdout are connected to a TTY."""
    try:
        return sys.stdin.isatty() and sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def _log_level(config: ClosxConfig, verbose: int) -> str:
    if verbose >= 2:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return config.logging.level


def build_confirmer(approve: Optional[bool], console: Console, display: ConsoleDisplay) -> Confirmer:
    """Pick the confirmation strategy: fixed answer, terminal prompt, or refuse."""
    if approve is not None:
        return AutoConfirmation(approve)
    if _is_interactive_terminal():
        return ConfirmationPrompt(console, display)
    logger.info("No terminal for confirmations; commands needing confirmation are refused")
    return AutoConfirmation(False)


def build_agent(config: ClosxConfig, gate: CommandGate) -> AgentClient:
    env = current_environment()

    def instructions() -> str:
        # Rendered per run so /policy changes reach the model
        return build_instructions(env, gate.policy, extra=config.agent.instructions)

    # Template errors surface here, before the first request
    instructions()
    return PydanticAIAgent(
        config.agent.model,
        instructions=instructions,
        toolsets=[build_shell_toolset(gate), build_environment_toolset()],
    )


def _report_truncated(result: LoopResult, loop: OrchestrationLoop, display: ConsoleDisplay) -> None:
    if result.truncated:
        display.show_warning(
            f"Stopped after {loop.max_turns} turns; the assistant still had commands to run. "
            f"Raise the limit with --max-turns."
        )


async def _chat(
    loop: OrchestrationLoop,
    conversation: Conversation,
    gate: CommandGate,
    console: Console,
    display: ConsoleDisplay,
) -> None:
    display.show_info("Type /help for commands, /quit to exit.")
    while True:
        try:
            text = read_line(console, PROMPT).strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return
        if not text:
            continue

        if is_slash_command(text):
            outcome = handle_slash_command(text, conversation, gate)
            if outcome.status is SlashStatus.QUIT:
                display.show_info(outcome.message)
                return
            if outcome.policy is not None:
                display.show_policy(outcome.policy)
            elif outcome.status is SlashStatus.OK:
                display.show_info(outcome.message)
            else:
                display.show_warning(outcome.message)
            continue

        try:
            result = await loop.submit(conversation, text)
        except AgentCallError as e:
            display.show_error(str(e))
            continue
        _report_truncated(result, loop, display)


async def run_session(
    config: ClosxConfig,
    *,
    command: Optional[str],
    chat: bool,
    approve: Optional[bool],
    console: Optional[Console] = None,
    agent: Optional[AgentClient] = None,
) -> int:
    """Build the collaborators and run one request and/or a chat session.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    console = console or Console()
    display = ConsoleDisplay(console)
    conversation = Conversation()
    conversation.add_system(session_message(conversation.session_id))

    gate = CommandGate(
        config.policy_settings(),
        build_confirmer(approve, console, display),
        broker=InterruptBroker(),
        shell=config.execution.shell,
        default_timeout_ms=config.execution.timeout_ms,
        on_warning=display.show_deny_warning,
    )

    if command and is_slash_command(command) and not chat:
        outcome = handle_slash_command(command, conversation, gate)
        if outcome.policy is not None:
            display.show_policy(outcome.policy)
        elif outcome.message and outcome.status is not SlashStatus.QUIT:
            console.print(outcome.message)
        return 1 if outcome.status in (SlashStatus.UNKNOWN, SlashStatus.ERROR) else 0

    if gate.policy.mode is ExecutionMode.AUTO:
        display.show_warning("Auto mode: every proposed command runs without confirmation.")

    if agent is None:
        agent = build_agent(config, gate)
    loop = OrchestrationLoop(
        agent,
        gate,
        max_turns=config.agent.max_turns,
        output_limit=config.execution.output_limit,
        on_response=display.show_response,
        on_command=display.show_command,
        on_report=display.show_report,
    )

    if command:
        try:
            result = await loop.submit(conversation, command)
        except AgentCallError as e:
            display.show_error(str(e))
            if not chat:
                return 1
        else:
            _report_truncated(result, loop, display)

    if chat:
        await _chat(loop, conversation, gate, console, display)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="closx",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("command", nargs="*", help="Request for the assistant, or a /slash command")
    parser.add_argument(
        "-i", "--interactive",
        action="store_true",
        help="Start a chat session (after running COMMAND, if given)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr (-v for info, -vv for debug)",
    )
    parser.add_argument(
        "--model", "-m",
        help=f"Model to use, e.g. anthropic:claude-sonnet-4-5 (default: ${ENV_MODEL_VAR} or config)",
    )
    parser.add_argument("--config", "-c", type=Path, help="Extra config file, read after the default ones")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ExecutionMode],
        help="Execution policy mode",
    )
    parser.add_argument("--max-turns", type=int, help="Maximum agent calls per request")
    approval = parser.add_mutually_exclusive_group()
    approval.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Run commands that need confirmation without asking",
    )
    approval.add_argument(
        "--no", "-n",
        action="store_true",
        help="Refuse commands that need confirmation without asking",
    )
    parser.add_argument(
        "--set", "-s",
        action="append",
        dest="set_overrides",
        default=[],
        metavar="KEY=VALUE",
        help="Override a config value (e.g., --set policy.mode=denylist, --set execution.timeout_ms=30000)",
    )
    parser.add_argument("--debug", action="store_true", help="Show full tracebacks on error")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the closx CLI.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = build_parser()
    parse_args = getattr(parser, "parse_intermixed_args", parser.parse_args)
    args = parse_args(argv)

    overrides: dict[str, Any] = {
        "agent.model": args.model,
        "policy.mode": args.mode,
        "agent.max_turns": args.max_turns,
    }
    try:
        config = load_config(
            config_path=args.config,
            set_overrides=args.set_overrides,
            overrides=overrides,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.debug:
            raise
        return 1

    configure_logging(_log_level(config, args.verbose))

    command = " ".join(args.command).strip() or None
    if command is None and not args.interactive and not sys.stdin.isatty():
        command = sys.stdin.read().strip() or None
        if command is None:
            parser.error("Request required (as argument or via stdin)")
    chat = args.interactive or command is None

    approve: Optional[bool] = None
    if args.yes:
        approve = True
    elif args.no:
        approve = False

    try:
        return asyncio.run(run_session(config, command=command, chat=chat, approve=approve))
    except (AgentCallError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.debug:
            raise
        return 1
    except KeyboardInterrupt:
        print("\nAborted by user", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.debug:
            raise
        return 1


if __name__ == "__main__":
    sys.exit(main())
