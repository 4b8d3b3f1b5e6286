"""closx: a conversational shell assistant.

The assistant proposes shell commands in `<shell>` directives (or through
the `shell` tool); each command runs on the user's machine under an
execution policy and the results are fed back until the assistant stops
asking for commands.

Main entry points:
- closx CLI: one-shot requests and chat sessions
- OrchestrationLoop + CommandGate: programmatic API

Security model: the allow/deny lists decide whether a command starts.
They do not confine what an allowed command does.
"""
from __future__ import annotations

from .agent import AgentCallError, AgentClient, PydanticAIAgent
from .config import ClosxConfig, ConfigError, load_config
from .conversation import Conversation, Message
from .directives import ParsedResponse, extract_directives, split_response
from .errors import ClosxError
from .loop import LoopResult, OrchestrationLoop
from .shell import (
    CommandGate,
    CommandReport,
    CommandRequest,
    ExecutionMode,
    ExecutionOutcome,
    InterruptBroker,
    PolicyDecision,
    PolicySettings,
    decide,
    execute,
)

__all__ = [
    # Errors
    "AgentCallError",
    "ClosxError",
    "ConfigError",
    # Agent and loop
    "AgentClient",
    "LoopResult",
    "OrchestrationLoop",
    "PydanticAIAgent",
    # Conversation and directives
    "Conversation",
    "Message",
    "ParsedResponse",
    "extract_directives",
    "split_response",
    # Configuration
    "ClosxConfig",
    "load_config",
    # Shell
    "CommandGate",
    "CommandReport",
    "CommandRequest",
    "ExecutionMode",
    "ExecutionOutcome",
    "InterruptBroker",
    "PolicyDecision",
    "PolicySettings",
    "decide",
    "execute",
]
