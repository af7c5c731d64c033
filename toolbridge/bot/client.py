"""
ToolBridgeBot: discord.py bot client.

Manages the full bot lifecycle:
- Builds the MCP gateway and LLM orchestrator once at startup
- Tries to connect the gateway; if that fails, retries on the next message
- Loads command cogs (ChatCog, ToolsCog)
- Syncs slash commands (guild-local for dev, global for production)
- Disconnects the gateway on shutdown via AsyncExitStack
"""

from __future__ import annotations

from contextlib import AsyncExitStack

import discord
from discord.ext import commands

from toolbridge.components import BridgeComponents
from toolbridge.config.logging import get_logger
from toolbridge.config.settings import Settings
from toolbridge.llm import LLMOrchestrator
from toolbridge.tools.base import ToolGateway

logger = get_logger(__name__)


class ToolBridgeBot(commands.Bot):
    """
    Discord bot that answers messages through the LLM tool-calling loop.

    Holds the shared gateway and orchestrator and exposes them to cogs.

    Args:
        settings: Full application settings (bot token, LLM config, tool server)
    """

    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.message_content = True  # Required to read message text
        intents.members = settings.bot.greet_new_members  # Privileged; needed for on_member_join
        super().__init__(
            command_prefix=settings.bot.command_prefix,
            intents=intents,
        )
        self.settings = settings
        self.gateway: ToolGateway | None = None
        self.orchestrator: LLMOrchestrator | None = None
        self._exit_stack = AsyncExitStack()

    async def setup_hook(self) -> None:
        """
        Called after login, before connecting to the Gateway.

        Builds services, loads cogs, and syncs slash commands.
        """
        factory = BridgeComponents(self.settings)

        # --- 1. MCP gateway (teardown registered before connecting) ---
        self.gateway = factory.create_gateway()
        self._exit_stack.push_async_callback(self.gateway.disconnect)
        try:
            await self.gateway.connect()
            logger.info("MCP gateway initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize MCP gateway: {e}")
            logger.error("Bot will attempt to reconnect when receiving messages")

        # --- 2. LLM orchestrator ---
        self.orchestrator = factory.create_orchestrator(self.gateway)
        logger.info(f"LLM orchestrator ready (model: {self.settings.llm.model})")

        # --- 3. Load cogs ---
        from toolbridge.bot.cogs.chat import ChatCog
        from toolbridge.bot.cogs.tools import ToolsCog
        await self.add_cog(ChatCog(self))
        await self.add_cog(ToolsCog(self))
        logger.info("Cogs loaded")

        # --- 4. Sync slash commands ---
        try:
            if self.settings.bot.dev_guild_id:
                guild = discord.Object(id=self.settings.bot.dev_guild_id)
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                logger.info(f"Slash commands synced to dev guild {self.settings.bot.dev_guild_id} (instant)")
            else:
                await self.tree.sync()
                logger.info("Slash commands synced globally (may take up to 1 hour to propagate)")
        except discord.errors.Forbidden:
            logger.warning(
                "Could not sync slash commands (403 Forbidden). "
                "The bot is missing the 'applications.commands' OAuth2 scope. "
                "The bot will still respond to @mentions while slash commands are unavailable."
            )
        except Exception as e:
            logger.warning(f"Slash command sync failed: {e}. The bot will still start.")

    async def on_ready(self) -> None:
        """Called when the bot successfully connects to Discord."""
        logger.info(f"Logged in as {self.user} (id: {self.user.id})")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

    async def close(self) -> None:
        """Graceful shutdown. Stops the tool server before disconnecting."""
        logger.info(f"Shutting down {self.settings.bot.name}...")
        try:
            await self._exit_stack.aclose()
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")
        await super().close()

    async def ensure_gateway(self) -> None:
        """
        Reconnect the gateway if it isn't connected.

        Raises:
            GatewayUnavailable: If the server still can't be started
        """
        if self.gateway is None:
            raise RuntimeError("Bot services are not initialized yet")
        if not self.gateway.is_connected():
            logger.info("MCP gateway not connected; reconnecting")
            await self.gateway.connect()

    def is_allowed_channel(self, channel_id: int) -> bool:
        """
        Return True if the bot should respond in this channel.

        If `allowed_channel_ids` is empty (the default), the bot responds everywhere.
        If it's non-empty, the bot only responds in the listed channel IDs.
        """
        allowed = self.settings.bot.allowed_channel_ids
        return not allowed or channel_id in allowed
