"""
Tests for ChatCog.

Covers:
- _strip_mention and split_message helpers (pure functions, no Discord required)
- _answer success and failure paths (mocked orchestrator + gateway)
- on_message gate conditions (bot messages, non-mentions, blocked channels, DMs)
- /ask channel restriction and chunked followups
- on_member_join greeting
"""

from __future__ import annotations

import pytest
from unittest.mock import AsyncMock, MagicMock

import discord

from toolbridge.bot.cogs.chat import (
    MAX_MESSAGE_LENGTH,
    ChatCog,
    _strip_mention,
    format_error,
    split_message,
)
from toolbridge.llm.models import LLMRequestFailed
from toolbridge.tools.base import GatewayUnavailable


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_bot(allowed_channel_ids=None, answer="Here is the answer.", respond_to_all=False):
    """Create a mock bot whose orchestrator returns ``answer``."""
    bot = MagicMock()
    bot.is_allowed_channel.side_effect = lambda ch_id: (
        not allowed_channel_ids or ch_id in allowed_channel_ids
    )
    bot.user = MagicMock()
    bot.user.id = 12345
    bot.user.display_name = "ToolBridge"
    bot.user.mentioned_in.return_value = True

    bot.settings.bot.respond_to_all = respond_to_all
    bot.settings.bot.greet_new_members = True
    bot.settings.bot.welcome_message = "Welcome aboard!"

    bot.ensure_gateway = AsyncMock()
    bot.orchestrator.process_message = AsyncMock(return_value=answer)
    return bot


def _make_message(is_bot=False, channel_id=100, in_guild=True, content="<@12345> list the tools"):
    msg = MagicMock(spec=discord.Message)
    msg.author = MagicMock()
    msg.author.bot = is_bot
    msg.guild = MagicMock() if in_guild else None
    msg.channel = MagicMock()
    msg.channel.id = channel_id
    msg.clean_content = content
    msg.reply = AsyncMock()
    # channel.typing() is used as an async context manager
    typing_cm = MagicMock()
    typing_cm.__aenter__ = AsyncMock(return_value=None)
    typing_cm.__aexit__ = AsyncMock(return_value=False)
    msg.channel.typing.return_value = typing_cm
    return msg


def _make_interaction(channel_id=100):
    interaction = MagicMock(spec=discord.Interaction)
    interaction.channel_id = channel_id
    interaction.response = MagicMock()
    interaction.response.send_message = AsyncMock()
    interaction.response.defer = AsyncMock()
    interaction.followup = MagicMock()
    interaction.followup.send = AsyncMock()
    return interaction


# ---------------------------------------------------------------------------
# _strip_mention
# ---------------------------------------------------------------------------

class TestStripMention:
    def _bot_user(self, user_id=12345, display_name="ToolBridge"):
        u = MagicMock(spec=discord.ClientUser)
        u.id = user_id
        u.display_name = display_name
        return u

    def test_strips_raw_mention_format(self):
        """<@123> is removed from the text."""
        user = self._bot_user(user_id=123)
        assert _strip_mention("<@123> rename foo to bar", user) == "rename foo to bar"

    def test_strips_nickname_mention_format(self):
        """<@!123> is also removed."""
        user = self._bot_user(user_id=123)
        assert _strip_mention("<@!123> what tools do you have?", user) == "what tools do you have?"

    def test_strips_display_name_form(self):
        """@DisplayName is removed from clean_content."""
        user = self._bot_user(display_name="ToolBridge")
        assert _strip_mention("@ToolBridge read config.json", user) == "read config.json"

    def test_returns_empty_string_for_mention_only(self):
        user = self._bot_user(user_id=123)
        assert _strip_mention("<@123>", user) == ""

    def test_leaves_non_mention_text_intact(self):
        user = self._bot_user(user_id=999)
        assert _strip_mention("list the tools", user) == "list the tools"


# ---------------------------------------------------------------------------
# split_message
# ---------------------------------------------------------------------------

class TestSplitMessage:
    def test_short_text_is_one_chunk(self):
        assert split_message("hello") == ["hello"]

    def test_empty_text_is_one_empty_chunk(self):
        assert split_message("") == [""]

    def test_chunks_respect_limit(self):
        text = "\n".join(f"line {i}" for i in range(1000))
        chunks = split_message(text)
        assert len(chunks) > 1
        assert all(len(c) <= MAX_MESSAGE_LENGTH for c in chunks)

    def test_prefers_newline_boundaries(self):
        text = "a" * 15 + "\n" + "b" * 15
        assert split_message(text, limit=20) == ["a" * 15, "b" * 15]

    def test_long_word_is_cut(self):
        chunks = split_message("x" * 45, limit=20)
        assert chunks == ["x" * 20, "x" * 20, "x" * 5]


# ---------------------------------------------------------------------------
# _answer
# ---------------------------------------------------------------------------

class TestAnswer:
    @pytest.mark.asyncio
    async def test_returns_orchestrator_text(self):
        bot = _make_bot(answer="Done: 3 replacements.")
        cog = ChatCog(bot)

        answer = await cog._answer("replace foo with bar")

        assert answer == "Done: 3 replacements."
        bot.ensure_gateway.assert_awaited_once()
        bot.orchestrator.process_message.assert_awaited_once_with("replace foo with bar")

    @pytest.mark.asyncio
    async def test_llm_error_becomes_error_message(self):
        bot = _make_bot()
        bot.orchestrator.process_message.side_effect = LLMRequestFailed("API key not configured")
        cog = ChatCog(bot)

        answer = await cog._answer("hi")

        assert answer.startswith("❌ **Error Processing Request**")
        assert "API key not configured" in answer

    @pytest.mark.asyncio
    async def test_gateway_failure_becomes_error_message_not_raised(self):
        bot = _make_bot()
        bot.ensure_gateway.side_effect = GatewayUnavailable("MCP server command not found: node")
        cog = ChatCog(bot)

        answer = await cog._answer("hi")

        assert answer == format_error(GatewayUnavailable("MCP server command not found: node"))
        bot.orchestrator.process_message.assert_not_called()


# ---------------------------------------------------------------------------
# on_message gate conditions
# ---------------------------------------------------------------------------

class TestOnMessageGating:
    @pytest.mark.asyncio
    async def test_ignores_bot_messages(self):
        bot = _make_bot()
        cog = ChatCog(bot)
        await cog.on_message(_make_message(is_bot=True))
        bot.orchestrator.process_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_ignores_non_mention_messages(self):
        bot = _make_bot()
        bot.user.mentioned_in.return_value = False
        cog = ChatCog(bot)
        await cog.on_message(_make_message())
        bot.orchestrator.process_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_respond_to_all_answers_without_mention(self):
        bot = _make_bot(respond_to_all=True)
        bot.user.mentioned_in.return_value = False
        cog = ChatCog(bot)
        await cog.on_message(_make_message(content="list the tools"))
        bot.orchestrator.process_message.assert_awaited_once_with("list the tools")

    @pytest.mark.asyncio
    async def test_ignores_messages_in_blocked_channels(self):
        bot = _make_bot(allowed_channel_ids=[999])
        cog = ChatCog(bot)
        await cog.on_message(_make_message(channel_id=100))
        bot.orchestrator.process_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_dm_is_answered_without_mention_or_channel_check(self):
        bot = _make_bot(allowed_channel_ids=[999])
        bot.user.mentioned_in.return_value = False
        cog = ChatCog(bot)
        message = _make_message(in_guild=False, content="what can you do?")

        await cog.on_message(message)

        bot.orchestrator.process_message.assert_awaited_once_with("what can you do?")
        message.reply.assert_awaited_once_with("Here is the answer.")

    @pytest.mark.asyncio
    async def test_mention_only_prompts_for_input(self):
        bot = _make_bot()
        cog = ChatCog(bot)
        message = _make_message(content="<@12345>")

        await cog.on_message(message)

        bot.orchestrator.process_message.assert_not_called()
        message.reply.assert_awaited_once()
        assert "What can I do for you?" in message.reply.call_args.args[0]

    @pytest.mark.asyncio
    async def test_replies_with_stripped_text_answer(self):
        bot = _make_bot()
        cog = ChatCog(bot)
        message = _make_message()

        await cog.on_message(message)

        bot.orchestrator.process_message.assert_awaited_once_with("list the tools")
        message.reply.assert_awaited_once_with("Here is the answer.")
        message.channel.typing.assert_called_once()

    @pytest.mark.asyncio
    async def test_long_answer_is_split_across_replies(self):
        bot = _make_bot(answer="word " * 1000)
        cog = ChatCog(bot)
        message = _make_message()

        await cog.on_message(message)

        assert message.reply.await_count > 1
        for call in message.reply.call_args_list:
            assert len(call.args[0]) <= MAX_MESSAGE_LENGTH

    @pytest.mark.asyncio
    async def test_failure_is_replied_not_raised(self):
        bot = _make_bot()
        bot.orchestrator.process_message.side_effect = RuntimeError("boom")
        cog = ChatCog(bot)
        message = _make_message()

        await cog.on_message(message)

        reply = message.reply.call_args.args[0]
        assert "Error Processing Request" in reply
        assert "boom" in reply


# ---------------------------------------------------------------------------
# /ask
# ---------------------------------------------------------------------------

class TestAskCommand:
    @pytest.mark.asyncio
    async def test_blocked_channel_sends_ephemeral(self):
        bot = _make_bot(allowed_channel_ids=[999])
        cog = ChatCog(bot)
        interaction = _make_interaction(channel_id=100)

        await cog.ask.callback(cog, interaction, "list the tools")

        interaction.response.defer.assert_not_called()
        assert interaction.response.send_message.call_args.kwargs.get("ephemeral") is True
        bot.orchestrator.process_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_defers_then_sends_answer(self):
        bot = _make_bot(answer="There are 2 tools.")
        cog = ChatCog(bot)
        interaction = _make_interaction()

        await cog.ask.callback(cog, interaction, "how many tools?")

        interaction.response.defer.assert_awaited_once()
        interaction.followup.send.assert_awaited_once_with("There are 2 tools.")


# ---------------------------------------------------------------------------
# on_member_join
# ---------------------------------------------------------------------------

class TestMemberGreeting:
    def _make_member(self, is_bot=False, system_channel=True):
        member = MagicMock(spec=discord.Member)
        member.bot = is_bot
        member.mention = "<@42>"
        member.guild = MagicMock()
        member.guild.system_channel = MagicMock() if system_channel else None
        if system_channel:
            member.guild.system_channel.send = AsyncMock()
        return member

    @pytest.mark.asyncio
    async def test_greets_in_system_channel(self):
        cog = ChatCog(_make_bot())
        member = self._make_member()

        await cog.on_member_join(member)

        member.guild.system_channel.send.assert_awaited_once_with("<@42> Welcome aboard!")

    @pytest.mark.asyncio
    async def test_disabled_greeting(self):
        bot = _make_bot()
        bot.settings.bot.greet_new_members = False
        cog = ChatCog(bot)
        member = self._make_member()

        await cog.on_member_join(member)

        member.guild.system_channel.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_system_channel(self):
        cog = ChatCog(_make_bot())
        # Must not raise
        await cog.on_member_join(self._make_member(system_channel=False))

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self):
        cog = ChatCog(_make_bot())
        member = self._make_member()
        response = MagicMock(status=403, reason="Forbidden")
        member.guild.system_channel.send.side_effect = discord.Forbidden(response, "Missing Access")

        await cog.on_member_join(member)
