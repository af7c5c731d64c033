"""
ToolsCog: /tools slash command.

Shows which tools the MCP server currently advertises, without going through
the LLM. Useful for checking that the server is up and what the model can do.
"""

from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from toolbridge.config.logging import get_logger

logger = get_logger(__name__)


class ToolsCog(commands.Cog):
    """Provides the /tools slash command."""

    def __init__(self, bot) -> None:
        self.bot = bot

    @app_commands.command(name="tools", description="List the tools the assistant can use")
    async def tools(self, interaction: discord.Interaction) -> None:
        if not self.bot.is_allowed_channel(interaction.channel_id):
            await interaction.response.send_message(
                "I'm not configured to respond in this channel.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)

        try:
            await self.bot.ensure_gateway()
            descriptors = await self.bot.gateway.list_tools()
        except Exception as e:
            logger.warning(f"Listing tools failed: {e}")
            await interaction.followup.send(f"Tool server unavailable: {e}", ephemeral=True)
            return

        if not descriptors:
            await interaction.followup.send("The tool server has no tools available.", ephemeral=True)
            return

        embed = discord.Embed(
            title=f"🔧 Available tools ({len(descriptors)})",
            color=discord.Color.blue(),
        )
        # Embeds hold at most 25 fields
        for descriptor in descriptors[:25]:
            embed.add_field(
                name=descriptor.name[:256],
                value=(descriptor.description or "No description")[:1024],
                inline=False,
            )
        if len(descriptors) > 25:
            embed.set_footer(text=f"...and {len(descriptors) - 25} more")
        await interaction.followup.send(embed=embed, ephemeral=True)
