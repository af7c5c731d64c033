"""
LLM Orchestrator: the tool-calling loop.

Takes one user message, drives the exchange between the model and the tool
gateway, and returns the model's final answer.

Data flow:
    user text → LLMOrchestrator.process_message()
                        ↓
      ToolGateway.list_tools() → function schemas
                        ↓
      LLMClient.complete()  ←→  ToolGateway.call_tool()  (looped)
                        ↓
                   final text → chat adapter

Design decisions:
- Tools are re-listed at the start of every run, never cached, so the model
  always sees what the server offers right now.
- A failing tool call becomes an error string in a tool turn instead of an
  exception. The model can then explain the failure or try something else,
  and the other calls in the same turn still run.
- Tool calls in one turn run sequentially, in the order requested; later
  calls may depend on side effects of earlier ones.
- Each run is bounded by a completion count and an optional wall-clock
  budget. Hitting either raises OrchestrationBudgetExceeded.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from toolbridge.llm.models import (
    AssistantTurn,
    Conversation,
    LLMResponse,
    OrchestrationBudgetExceeded,
    TokenUsage,
    ToolCall,
    ToolCallRequest,
    ToolCallResult,
    ToolDescriptor,
    ToolDiscoveryFailed,
    ToolTurn,
)

if TYPE_CHECKING:
    from toolbridge.llm.client import LLMClient
    from toolbridge.tools.base import ToolGateway

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "I apologize, but I could not generate a response."
EMPTY_TOOL_RESULT = "Operation completed successfully."


def extract_text(result: Any) -> str:
    """
    Flatten a tool result's content blocks into plain text.

    Text blocks are joined with a blank line; images, resources and other
    block types are dropped. A result with no text at all yields a neutral
    success message so the model never sees an empty tool turn.
    """
    content = getattr(result, "content", None)
    if content is None and isinstance(result, dict):
        content = result.get("content")
    if not content:
        return EMPTY_TOOL_RESULT

    if not isinstance(content, (list, tuple)):
        return str(content)

    parts = []
    for block in content:
        if isinstance(block, dict):
            block_type, text = block.get("type"), block.get("text")
        else:
            block_type, text = getattr(block, "type", None), getattr(block, "text", None)
        if block_type == "text" and text is not None:
            parts.append(text)

    return "\n\n".join(parts) or EMPTY_TOOL_RESULT


def build_tool_schemas(descriptors: list[ToolDescriptor]) -> list[dict[str, Any]]:
    """
    Translate tool descriptors into LiteLLM function definitions.

    A name offered twice would be ambiguous to the model, so only the first
    descriptor with a given name is kept.
    """
    schemas = []
    seen: set[str] = set()
    for descriptor in descriptors:
        if descriptor.name in seen:
            logger.warning(f"Tool server advertised '{descriptor.name}' more than once; ignoring duplicate")
            continue
        seen.add(descriptor.name)
        schemas.append(descriptor.to_function_schema())
    return schemas


class LLMOrchestrator:
    """
    Runs the completion ⇄ tool-call loop for a single user message.

    Each call is stateless: the conversation is built from scratch (system
    prompt + user message) and discarded when the run ends.

    Args:
        llm_client: Client that issues one completion request per call
        tool_gateway: Gateway to the tool server
        system_prompt: Persona/instructions sent as the system turn
        max_turns: Maximum completion requests per run (default: 10)
        time_budget: Optional wall-clock limit per run, in seconds
    """

    def __init__(
        self,
        llm_client: LLMClient,
        tool_gateway: ToolGateway,
        system_prompt: str,
        max_turns: int = 10,
        time_budget: float | None = None,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._llm_client = llm_client
        self._tool_gateway = tool_gateway
        self._system_prompt = system_prompt
        self._max_turns = max_turns
        self._time_budget = time_budget

    @property
    def tool_gateway(self) -> ToolGateway:
        return self._tool_gateway

    async def process_message(self, user_text: str) -> str:
        """Run the loop for ``user_text`` and return the final answer text."""
        response = await self.respond(user_text)
        return response.text

    async def respond(self, user_text: str) -> LLMResponse:
        """
        Run the loop and return the answer together with what happened on the way.

        Args:
            user_text: The user's message, sent as-is (must not be blank)

        Returns:
            LLMResponse with the final text, tool call records, model and usage

        Raises:
            ValueError: If user_text is empty or whitespace-only
            ToolDiscoveryFailed: If the tool list cannot be fetched
            LLMRequestFailed: If a completion request fails
            OrchestrationBudgetExceeded: If the run needs more completions or
                time than allowed
        """
        if not user_text or not user_text.strip():
            raise ValueError("Message cannot be empty")

        started = time.monotonic()

        try:
            descriptors = await self._tool_gateway.list_tools()
        except Exception as e:
            raise ToolDiscoveryFailed(f"Could not list tools: {e}", cause=e)
        tool_schemas = build_tool_schemas(descriptors)

        conversation = Conversation(self._system_prompt, user_text)
        recorded_tool_calls: list[ToolCall] = []
        usage = TokenUsage()
        model_name = ""
        completions = 0

        while True:
            if completions >= self._max_turns:
                raise OrchestrationBudgetExceeded(
                    f"No final answer after {completions} completion requests"
                )
            self._check_time_budget(started)

            completion = await self._llm_client.complete(conversation, tool_schemas)
            completions += 1
            usage = usage + completion.usage
            model_name = completion.model or model_name

            if not completion.tool_calls:
                text = completion.text or FALLBACK_ANSWER
                break

            logger.info(f"Model requested {len(completion.tool_calls)} tool call(s)")
            conversation.append(
                AssistantTurn(content=completion.text, tool_calls=tuple(completion.tool_calls))
            )

            # Every request gets exactly one tool turn, executed or not
            for request in completion.tool_calls:
                record = await self._execute(request)
                if record is None:
                    content = f"Unsupported tool call type: {request.type}"
                else:
                    content = record.result
                    recorded_tool_calls.append(record)
                conversation.append(
                    ToolTurn(result=ToolCallResult(correlation_id=request.id, content=content))
                )

        return LLMResponse(
            text=text,
            tool_calls=recorded_tool_calls,
            model=model_name,
            usage=usage,
            completions=completions,
        )

    def _check_time_budget(self, started: float) -> None:
        if self._time_budget is None:
            return
        elapsed = time.monotonic() - started
        if elapsed >= self._time_budget:
            raise OrchestrationBudgetExceeded(
                f"Run exceeded its {self._time_budget:g}s time budget ({elapsed:.1f}s elapsed)"
            )

    async def _execute(self, request: ToolCallRequest) -> ToolCall | None:
        """
        Run one requested call.

        Returns None for call types other than "function", which are not
        executed. Failures come back as an error record, never raised.
        """
        if request.type != "function":
            logger.warning(f"Skipping unsupported tool call type {request.type!r} (id {request.id})")
            return None

        arguments: dict[str, Any] = {}
        try:
            arguments = request.parse_arguments()
            logger.info(f"Executing tool: {request.name} {arguments}")
            result = await self._tool_gateway.call_tool(request.name, arguments)
        except Exception as e:
            logger.warning(f"Tool '{request.name}' failed: {e}")
            return ToolCall(
                name=request.name,
                arguments=arguments,
                result=f"Error executing tool: {e}",
                is_error=True,
            )

        text = extract_text(result)
        # MCP reports tool-level failures in-band
        if getattr(result, "isError", False) is True:
            logger.warning(f"Tool '{request.name}' reported an error: {text}")
            return ToolCall(
                name=request.name,
                arguments=arguments,
                result=f"Error executing tool: {text}",
                is_error=True,
            )

        logger.info(f"Tool {request.name} executed successfully")
        return ToolCall(name=request.name, arguments=arguments, result=text)
