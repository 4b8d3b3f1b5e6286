"""Tests for the PydanticAI-backed agent client."""
from __future__ import annotations

import os

import httpx
import pytest
from pydantic_ai.exceptions import UnexpectedModelBehavior, UsageLimitExceeded
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.toolsets import FunctionToolset

from closx.agent import AgentCallError, PydanticAIAgent, to_model_messages
from closx.conversation import Conversation, Message
from closx.shell.toolset import build_shell_toolset
from closx.shell.types import ExecutionMode


def _user_prompts(messages: list[ModelMessage]) -> list[str]:
    return [
        part.content
        for msg in messages
        if isinstance(msg, ModelRequest)
        for part in msg.parts
        if isinstance(part, UserPromptPart)
    ]


class TestToModelMessages:
    def test_last_user_message_is_prompt(self):
        history, prompt = to_model_messages([
            Message("system", "session 1"),
            Message("user", "hi"),
            Message("assistant", "hello"),
            Message("user", "again"),
        ])

        assert prompt == "again"
        assert len(history) == 2
        first, second = history
        assert isinstance(first, ModelRequest)
        assert isinstance(first.parts[0], SystemPromptPart)
        assert isinstance(first.parts[1], UserPromptPart)
        assert isinstance(second, ModelResponse)
        assert second.parts[0].content == "hello"

    def test_requires_trailing_user_message(self):
        with pytest.raises(AgentCallError):
            to_model_messages([Message("user", "hi"), Message("assistant", "hello")])
        with pytest.raises(AgentCallError):
            to_model_messages([])


def test_missing_model_is_reported():
    with pytest.raises(AgentCallError, match="No model configured"):
        PydanticAIAgent(None)


@pytest.mark.anyio
async def test_respond_sends_history():
    def respond(messages: list[ModelMessage], _: AgentInfo) -> ModelResponse:
        prompts = _user_prompts(messages)
        return ModelResponse(parts=[TextPart(content=" | ".join(prompts))])

    agent = PydanticAIAgent(FunctionModel(respond), instructions="Be brief.")
    conversation = Conversation()
    conversation.add_user("first")
    conversation.add_assistant("ok")
    conversation.add_user("second")

    assert await agent.respond(conversation.messages) == "first | second"


@pytest.mark.anyio
async def test_instructions_reach_model():
    seen = {}

    def respond(messages: list[ModelMessage], _: AgentInfo) -> ModelResponse:
        seen["instructions"] = messages[-1].instructions
        return ModelResponse(parts=[TextPart(content="done")])

    agent = PydanticAIAgent(FunctionModel(respond), instructions="Use <shell> tags.")
    await agent.respond([Message("user", "hi")])

    assert seen["instructions"] == "Use <shell> tags."


@pytest.mark.anyio
async def test_model_errors_are_wrapped():
    def respond(messages: list[ModelMessage], _: AgentInfo) -> ModelResponse:
        raise UnexpectedModelBehavior("garbled response")

    agent = PydanticAIAgent(FunctionModel(respond))

    with pytest.raises(AgentCallError, match="garbled response"):
        await agent.respond([Message("user", "hi")])


@pytest.mark.anyio
async def test_instruction_function_rendered_per_run():
    seen = []
    mode = {"value": "allowlist"}

    def respond(messages: list[ModelMessage], _: AgentInfo) -> ModelResponse:
        seen.append(messages[-1].instructions)
        return ModelResponse(parts=[TextPart(content="done")])

    agent = PydanticAIAgent(FunctionModel(respond), instructions=lambda: f"Mode: {mode['value']}")
    await agent.respond([Message("user", "hi")])
    mode["value"] = "message"
    await agent.respond([Message("user", "again")])

    assert seen == ["Mode: allowlist", "Mode: message"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "error",
    [
        ConnectionError("network unreachable"),
        httpx.ConnectError("connection refused"),
        UsageLimitExceeded("request limit of 50 exceeded"),
    ],
)
async def test_transport_and_run_errors_are_wrapped(error):
    def respond(messages: list[ModelMessage], _: AgentInfo) -> ModelResponse:
        raise error

    agent = PydanticAIAgent(FunctionModel(respond))

    with pytest.raises(AgentCallError):
        await agent.respond([Message("user", "hi")])


@pytest.mark.anyio
async def test_tool_os_error_is_wrapped():
    def respond(messages: list[ModelMessage], _: AgentInfo) -> ModelResponse:
        return ModelResponse(parts=[ToolCallPart(tool_name="listing", args={})])

    toolset = FunctionToolset()

    @toolset.tool
    def listing() -> str:
        raise PermissionError(13, "Permission denied", "/root/secret")

    agent = PydanticAIAgent(FunctionModel(respond), toolsets=[toolset])

    with pytest.raises(AgentCallError, match="Permission denied"):
        await agent.respond([Message("user", "list it")])


@pytest.mark.anyio
@pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")
async def test_shell_tool_runs_through_gate(make_gate):
    gate = make_gate(ExecutionMode.AUTO)

    def respond(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        returns = [
            part
            for msg in messages
            if isinstance(msg, ModelRequest)
            for part in msg.parts
            if isinstance(part, ToolReturnPart)
        ]
        if not returns:
            return ModelResponse(parts=[ToolCallPart(tool_name="shell", args={"command": "echo from-tool"})])
        return ModelResponse(parts=[TextPart(content=returns[0].model_response_str())])

    agent = PydanticAIAgent(FunctionModel(respond), toolsets=[build_shell_toolset(gate)])
    text = await agent.respond([Message("user", "run it")])

    assert "from-tool" in text
    assert '"exit_code":0' in text.replace(" ", "")
