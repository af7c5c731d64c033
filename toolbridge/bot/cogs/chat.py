"""
ChatCog: conversation via @mention, DM, and /ask.

Entry points, one answer pipeline:
  - @ToolBridge <message>  (mention in any allowed channel, or any DM)
  - /ask message:<str>  (slash command)

Both call _answer(), which reconnects the tool gateway if needed and runs the
orchestrator. Every failure is turned into a user-visible message; nothing
raised here ever escapes the handler, so other listeners keep running.

Also greets members who join a guild, if enabled.
"""

from __future__ import annotations

import re

import discord
from discord import app_commands
from discord.ext import commands

from toolbridge.config.logging import get_logger

logger = get_logger(__name__)

# Matches <@USER_ID> and <@!USER_ID> (standard Discord mention formats)
_MENTION_RE = re.compile(r"<@!?\d+>")

# Discord rejects messages longer than this
MAX_MESSAGE_LENGTH = 2000


def format_error(error: BaseException) -> str:
    return (
        "❌ **Error Processing Request**\n\n"
        f"{error}\n\n"
        "Please try again or contact support if the issue persists."
    )


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """
    Split text into chunks Discord will accept.

    Prefers to break at newlines, then spaces, and only cuts mid-word when a
    single word is longer than the limit.
    """
    chunks = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = remaining.rfind(" ", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut].rstrip())
        remaining = remaining[cut:].lstrip()
    if remaining or not chunks:
        chunks.append(remaining)
    return chunks


class ChatCog(commands.Cog):
    """Answers chat messages through the LLM tool-calling loop."""

    def __init__(self, bot) -> None:
        self.bot = bot

    # ------------------------------------------------------------------
    # Slash command
    # ------------------------------------------------------------------

    @app_commands.command(name="ask", description="Ask the assistant to do something")
    @app_commands.describe(message="What you want the assistant to do")
    async def ask(self, interaction: discord.Interaction, message: str) -> None:
        """
        /ask message:<text>

        Runs the message through the model, which may call tools on the way.
        """
        if not self.bot.is_allowed_channel(interaction.channel_id):
            await interaction.response.send_message(
                "I'm not configured to respond in this channel.", ephemeral=True
            )
            return

        # Tool calls can easily take longer than Discord's 3s limit
        await interaction.response.defer()

        answer = await self._answer(message)
        for chunk in split_message(answer):
            await interaction.followup.send(chunk)

    # ------------------------------------------------------------------
    # Message listener
    # ------------------------------------------------------------------

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        """
        Respond to @mentions and direct messages.

        Ignores:
        - Messages from bots (including ourselves)
        - Messages that don't mention this bot, unless they're DMs or
          respond_to_all is set
        - Messages in non-allowed channels (if restriction is configured)
        """
        if message.author.bot:
            return

        is_dm = message.guild is None
        mentioned = self.bot.user.mentioned_in(message)
        if not (is_dm or mentioned or self.bot.settings.bot.respond_to_all):
            return
        if not is_dm and not self.bot.is_allowed_channel(message.channel.id):
            return

        text = _strip_mention(message.clean_content, self.bot.user)
        if not text:
            await message.reply(f"What can I do for you? (e.g. `@{self.bot.user.display_name} list the available tools`)")
            return

        logger.info(f"Processing message from {message.author}: {text!r}")
        async with message.channel.typing():
            answer = await self._answer(text)

        for chunk in split_message(answer):
            await message.reply(chunk)
        logger.info("Response sent successfully")

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        """Greet new members in the guild's system channel."""
        settings = self.bot.settings.bot
        if not settings.greet_new_members or not settings.welcome_message:
            return
        if member.bot:
            return

        channel = member.guild.system_channel
        if channel is None:
            logger.debug(f"No system channel in {member.guild}; skipping greeting for {member}")
            return

        try:
            await channel.send(f"{member.mention} {settings.welcome_message}")
        except discord.HTTPException as e:
            logger.warning(f"Could not greet {member} in {member.guild}: {e}")

    # ------------------------------------------------------------------
    # Shared answer pipeline
    # ------------------------------------------------------------------

    async def _answer(self, text: str) -> str:
        """
        Make sure the tool server is up, run the orchestrator, return text.

        Returns an error message on failure rather than raising, so one bad
        message never takes the bot down.
        """
        try:
            await self.bot.ensure_gateway()
            return await self.bot.orchestrator.process_message(text)
        except Exception as e:
            logger.exception(f"Error processing message {text!r}: {e}")
            return format_error(e)


def _strip_mention(text: str, bot_user: discord.ClientUser) -> str:
    """
    Remove all @mentions from text and return the trimmed remainder.

    Handles both the clean-text form (@DisplayName) and the raw Discord
    form (<@USER_ID> / <@!USER_ID>).
    """
    text = _MENTION_RE.sub("", text)
    text = text.replace(f"@{bot_user.display_name}", "")
    return text.strip()
