"""
Component factory.

Centralises the construction of the gateway, LLM client and orchestrator from
settings, so the Discord bot and the CLI wire things up the same way.
"""

from __future__ import annotations

from pathlib import Path

from toolbridge.config.settings import Settings
from toolbridge.llm.client import LLMClient
from toolbridge.llm.orchestrator import LLMOrchestrator
from toolbridge.tools.base import ToolGateway
from toolbridge.tools.mcp_gateway import MCPToolGateway

DEFAULT_SYSTEM_PROMPT_PATH = Path(__file__).parent / "prompts" / "system.txt"


class BridgeComponents:
    """
    Factory for building bridge components from settings.

    Example::

        factory = BridgeComponents(settings)
        async with factory.create_gateway() as gateway:
            orchestrator = factory.create_orchestrator(gateway)
            answer = await orchestrator.process_message("hello")
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def create_gateway(self) -> MCPToolGateway:
        """Create an MCPToolGateway from tool settings."""
        return MCPToolGateway.from_settings(self.settings.tools)

    def create_llm_client(self) -> LLMClient:
        """Create an LLMClient from LLM settings."""
        return LLMClient(self.settings.llm)

    def load_system_prompt(self) -> str:
        """
        Read the system prompt.

        Raises:
            FileNotFoundError: If the configured prompt file does not exist
        """
        path = self.settings.llm.system_prompt_path or DEFAULT_SYSTEM_PROMPT_PATH
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"System prompt not found: {path}")
        return path.read_text(encoding="utf-8").strip()

    def create_orchestrator(self, gateway: ToolGateway) -> LLMOrchestrator:
        """Create an LLMOrchestrator wired to the given gateway."""
        return LLMOrchestrator(
            llm_client=self.create_llm_client(),
            tool_gateway=gateway,
            system_prompt=self.load_system_prompt(),
            max_turns=self.settings.llm.max_turns,
            time_budget=self.settings.llm.time_budget,
        )
