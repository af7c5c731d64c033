"""
LLM Orchestration Layer.

Manages completion requests (via LiteLLM) and the tool-calling loop that
connects the model to the MCP tool gateway:

    chat adapter  →  LLMOrchestrator.process_message(text)
                                ↓
              LLMClient.complete()  ←→  ToolGateway.call_tool()
                                ↓
                           final text  →  chat adapter

The orchestrator is stateless per call: every run builds the conversation
from scratch and discards it afterwards.
"""

from toolbridge.llm.client import ConnectionProfile, LLMClient
from toolbridge.llm.models import (
    Completion,
    LLMError,
    LLMRequestFailed,
    LLMResponse,
    OrchestrationBudgetExceeded,
    TokenUsage,
    ToolCall,
    ToolDescriptor,
    ToolDiscoveryFailed,
)
from toolbridge.llm.orchestrator import LLMOrchestrator, extract_text

__all__ = [
    "Completion",
    "ConnectionProfile",
    "LLMClient",
    "LLMError",
    "LLMOrchestrator",
    "LLMRequestFailed",
    "LLMResponse",
    "OrchestrationBudgetExceeded",
    "TokenUsage",
    "ToolCall",
    "ToolDescriptor",
    "ToolDiscoveryFailed",
    "extract_text",
]
