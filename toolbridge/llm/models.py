"""
Data models for the orchestration layer.

Conversation state is an append-only list of typed turns. Each turn knows how
to render itself as the OpenAI-style message dict that LiteLLM sends on the
wire, so the orchestrator never builds raw dicts by hand.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(Exception):
    """Base class for orchestration-level failures. ``cause`` holds the original exception."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class LLMRequestFailed(LLMError):
    """A completion request failed (auth, rate limit, network, bad response)."""


class ToolDiscoveryFailed(LLMError):
    """The tool list could not be fetched at the start of a run."""


class OrchestrationBudgetExceeded(LLMError):
    """A run hit its completion-count or wall-clock limit without a final answer."""


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class ToolDescriptor(BaseModel):
    """
    A tool as advertised by the tool server.

    ``parameter_schema`` is the server's JSON schema, kept opaque: only the
    LLM provider and the tool server interpret it.
    """

    name: str = Field(min_length=1, description="Unique tool identifier")
    description: str | None = Field(None, description="Human-readable description")
    parameter_schema: dict[str, Any] = Field(
        default_factory=dict, description="JSON schema of the tool's arguments"
    )

    model_config = ConfigDict(frozen=True)

    def to_function_schema(self) -> dict[str, Any]:
        """
        Render as an OpenAI/LiteLLM function tool definition.

        Missing properties or required lists become empty ones rather than
        absent keys.
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or "",
                "parameters": {
                    "type": "object",
                    "properties": self.parameter_schema.get("properties") or {},
                    "required": list(self.parameter_schema.get("required") or []),
                },
            },
        }


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model."""

    id: str = Field(description="Correlation id echoed back in the result")
    type: str = Field(default="function", description="Call type; only 'function' is executed")
    name: str = Field(default="", description="Name of the tool to invoke")
    arguments: str = Field(
        default="{}", description="Arguments in their transport encoding (JSON text)"
    )

    model_config = ConfigDict(frozen=True)

    def parse_arguments(self) -> dict[str, Any]:
        """
        Decode the JSON arguments.

        Raises:
            ValueError: If the arguments are not a JSON object
        """
        if not self.arguments or not self.arguments.strip():
            return {}
        parsed = json.loads(self.arguments)
        if not isinstance(parsed, dict):
            raise ValueError(
                f"Tool arguments must be a JSON object, got {type(parsed).__name__}"
            )
        return parsed

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


class ToolCallResult(BaseModel):
    """Plain-text outcome of one tool call, success or error."""

    correlation_id: str
    content: str

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class SystemTurn(BaseModel):
    role: Literal["system"] = "system"
    content: str

    model_config = ConfigDict(frozen=True)

    def to_message(self) -> dict[str, Any]:
        return {"role": "system", "content": self.content}


class UserTurn(BaseModel):
    role: Literal["user"] = "user"
    content: str

    model_config = ConfigDict(frozen=True)

    def to_message(self) -> dict[str, Any]:
        return {"role": "user", "content": self.content}


class AssistantTurn(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] = ()

    model_config = ConfigDict(frozen=True)

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_message() for call in self.tool_calls]
        return message


class ToolTurn(BaseModel):
    role: Literal["tool"] = "tool"
    result: ToolCallResult

    model_config = ConfigDict(frozen=True)

    @property
    def correlation_id(self) -> str:
        return self.result.correlation_id

    def to_message(self) -> dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.result.correlation_id,
            "content": self.result.content,
        }


ConversationTurn = Annotated[
    Union[SystemTurn, UserTurn, AssistantTurn, ToolTurn],
    Field(discriminator="role"),
]


class Conversation:
    """
    Append-only turn history for a single orchestration run.

    Always opens with exactly one system turn followed by one user turn.
    Turns are frozen, and the only mutation is ``append``.
    """

    def __init__(self, system_prompt: str, user_text: str):
        self._turns: list[ConversationTurn] = [
            SystemTurn(content=system_prompt),
            UserTurn(content=user_text),
        ]

    def append(self, turn: ConversationTurn) -> None:
        if isinstance(turn, (SystemTurn, UserTurn)):
            raise ValueError(f"Cannot append a {turn.role} turn after the conversation has started")
        self._turns.append(turn)

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def to_messages(self) -> list[dict[str, Any]]:
        return [turn.to_message() for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(self._turns)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class TokenUsage(BaseModel):
    """Token counts, summed across every completion in a run."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


class Completion(BaseModel):
    """One model response: final text, tool requests, or both."""

    text: str | None = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    model: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)


class ToolCall(BaseModel):
    """Record of a tool call made during a run, for display."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: str
    is_error: bool = False


class LLMResponse(BaseModel):
    """Final outcome of one orchestration run."""

    text: str
    tool_calls: list[ToolCall] = Field(default_factory=list)
    model: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    completions: int = Field(default=0, ge=0, description="Completion requests issued")
