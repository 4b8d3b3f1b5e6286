"""Agent collaborator: turns a conversation into the next assistant text.

The orchestration loop only depends on the AgentClient protocol. The
production implementation wraps a PydanticAI Agent; tests use a
FunctionModel or a plain fake.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol, Sequence, Union

import httpx
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError, ModelHTTPError, UserError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models import Model
from pydantic_ai.toolsets import AbstractToolset

from .conversation import Message
from .errors import ClosxError

logger = logging.getLogger(__name__)


class AgentCallError(ClosxError):
    """Raised when the model call fails (transport, provider or protocol error)."""
    pass


class AgentClient(Protocol):
    """Anything that can answer a conversation with a response text."""

    async def respond(self, messages: Sequence[Message]) -> str: ...


def to_model_messages(messages: Sequence[Message]) -> tuple[list[ModelMessage], str]:
    """Convert conversation messages into PydanticAI history plus a prompt.

    The final message must come from the user; it becomes the run prompt.
    Consecutive system/user messages are merged into one ModelRequest.

    Raises:
        AgentCallError: If the conversation does not end with a user message
    """
    if not messages or messages[-1].role != "user":
        raise AgentCallError("Conversation must end with a user message")

    history: list[ModelMessage] = []
    pending: list[ModelRequestPart] = []
    for message in messages[:-1]:
        if message.role == "assistant":
            if pending:
                history.append(ModelRequest(parts=pending))
                pending = []
            history.append(ModelResponse(parts=[TextPart(content=message.content)]))
        elif message.role == "system":
            pending.append(SystemPromptPart(content=message.content))
        else:
            pending.append(UserPromptPart(content=message.content))
    if pending:
        history.append(ModelRequest(parts=pending))
    return history, messages[-1].content


class PydanticAIAgent:
    """AgentClient backed by a PydanticAI Agent.

    Args:
        model: Model identifier (e.g. "anthropic:claude-sonnet-4") or Model instance
        instructions: Rendered system instructions, or a function rendering
            them again before every run
        toolsets: Toolsets exposed to the model (shell tool, environment tools)
    """

    def __init__(
        self,
        model: Union[str, Model, None],
        instructions: Union[str, Callable[[], str], None] = None,
        toolsets: Optional[Sequence[AbstractToolset[Any]]] = None,
    ):
        if model is None:
            raise AgentCallError(
                "No model configured. Use --model, CLOSX_MODEL or [agent] model in the config file."
            )
        self.model = model
        self._agent: Agent[None, str] = Agent(
            model=model,
            instructions=instructions,
            output_type=str,
            toolsets=list(toolsets) if toolsets else None,
            # Run tool calls even when the response also carries text
            end_strategy="exhaustive",
        )

    async def respond(self, messages: Sequence[Message]) -> str:
        history, prompt = to_model_messages(messages)
        logger.debug(f"Agent call with {len(history)} history messages")
        try:
            result = await self._agent.run(prompt, message_history=history or None)
        except ModelHTTPError as e:
            detail = ""
            if e.body and isinstance(e.body, dict):
                error_info = e.body.get("error", {})
                if isinstance(error_info, dict):
                    detail = error_info.get("message", "")
            message = f"Model API error (status {e.status_code}): {e.model_name}"
            if detail:
                message = f"{message}: {detail}"
            raise AgentCallError(message) from e
        except (AgentRunError, UserError) as e:
            raise AgentCallError(str(e)) from e
        except (httpx.HTTPError, OSError) as e:
            # Connection failures, and OS errors raised inside tools
            raise AgentCallError(f"Agent call failed: {type(e).__name__}: {e}") from e
        return result.output


__all__ = ["AgentCallError", "AgentClient", "PydanticAIAgent", "to_model_messages"]
