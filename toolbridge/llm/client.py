"""
LLM client: one stateless completion request per call, via LiteLLM.

The orchestrator only needs ``complete(conversation, tool_schemas)``. How that
request reaches a model depends on which connection profile the settings
select:

- default: no endpoint configured; the model string goes to LiteLLM as-is, so
  a provider prefix ("anthropic/...", "ollama/...") picks the provider.
- azure: the endpoint host is an Azure OpenAI / AI Foundry domain; the model
  setting is the deployment name and requests carry an api-version.
- custom: any other endpoint is treated as an OpenAI-compatible base URL.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from litellm import acompletion

from toolbridge.config.settings import LLMSettings
from toolbridge.llm.models import (
    Completion,
    Conversation,
    LLMRequestFailed,
    TokenUsage,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)

AZURE_HOST_SUFFIXES = ("openai.azure.com", "cognitiveservices.azure.com")


class ConnectionProfile(str, Enum):
    DEFAULT = "default"
    AZURE = "azure"
    CUSTOM = "custom"


def select_profile(endpoint: str | None) -> ConnectionProfile:
    """Pick the connection profile for an endpoint URL."""
    if not endpoint:
        return ConnectionProfile.DEFAULT
    host = (urlparse(endpoint).hostname or "").lower()
    if any(host == suffix or host.endswith("." + suffix) for suffix in AZURE_HOST_SUFFIXES):
        return ConnectionProfile.AZURE
    return ConnectionProfile.CUSTOM


def _has_provider_prefix(model: str) -> bool:
    return "/" in model


class LLMClient:
    """
    Thin async wrapper around ``litellm.acompletion``.

    Every call sends the full conversation; nothing is remembered between
    calls. Any failure from the provider is raised as ``LLMRequestFailed``.

    Args:
        settings: LLM configuration (model, endpoint, key, sampling params)
    """

    def __init__(self, settings: LLMSettings):
        self._settings = settings
        self.profile = select_profile(settings.endpoint)
        self._connection_kwargs = self._build_connection_kwargs()

        if self.profile is ConnectionProfile.AZURE:
            logger.info(f"LLM client configured for Azure deployment (base: {self._connection_kwargs['api_base']})")
        elif self.profile is ConnectionProfile.CUSTOM:
            logger.info(f"LLM client configured with custom endpoint: {self._connection_kwargs['api_base']}")
        else:
            logger.info("LLM client configured for the provider's default endpoint")

    @property
    def model(self) -> str:
        return self._connection_kwargs["model"]

    def _build_connection_kwargs(self) -> dict[str, Any]:
        model = self._settings.model
        endpoint = (self._settings.endpoint or "").rstrip("/")

        if self.profile is ConnectionProfile.AZURE:
            deployment = model.split("/", 1)[1] if model.startswith("azure/") else model
            return {
                "model": f"azure/{deployment}",
                "api_base": endpoint,
                "api_version": self._settings.api_version,
            }
        if self.profile is ConnectionProfile.CUSTOM:
            if not _has_provider_prefix(model):
                model = f"openai/{model}"
            return {"model": model, "api_base": endpoint}
        return {"model": model}

    async def complete(
        self,
        conversation: Conversation,
        tool_schemas: list[dict[str, Any]] | None = None,
    ) -> Completion:
        """
        Request one completion for the conversation so far.

        Args:
            conversation: Full turn history of the current run
            tool_schemas: Function tool definitions; when non-empty the model
                may choose to call them (tool_choice="auto")

        Returns:
            Completion with the model's text and any tool-call requests

        Raises:
            LLMRequestFailed: If the API key is missing or the request fails
        """
        if not self._settings.api_key:
            raise LLMRequestFailed("API key not configured. Set LLM__API_KEY in your environment.")

        call_kwargs: dict[str, Any] = {
            **self._connection_kwargs,
            "messages": conversation.to_messages(),
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
            "api_key": self._settings.api_key,
            "timeout": self._settings.request_timeout,
        }
        if tool_schemas:
            call_kwargs["tools"] = tool_schemas
            call_kwargs["tool_choice"] = "auto"

        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            raise LLMRequestFailed(f"LLM API call failed: {e}", cause=e)

        try:
            return self._parse_response(response)
        except (AttributeError, IndexError, TypeError, ValueError) as e:
            raise LLMRequestFailed(f"Malformed LLM response: {e}", cause=e)

    @staticmethod
    def _parse_response(response: Any) -> Completion:
        message = response.choices[0].message
        tool_calls = [
            ToolCallRequest(
                id=call.id,
                type=getattr(call, "type", None) or "function",
                name=call.function.name if call.function else "",
                arguments=(call.function.arguments if call.function else None) or "{}",
            )
            for call in (message.tool_calls or [])
        ]

        usage = getattr(response, "usage", None)
        return Completion(
            text=message.content,
            tool_calls=tool_calls,
            model=getattr(response, "model", None) or "",
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
        )
