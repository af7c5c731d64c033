"""
Tests for the CLI commands.

  toolbridge ask MESSAGE   run one message through the LLM + tools loop
  toolbridge tools         list the MCP server's tools
  toolbridge config        show configuration
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from toolbridge.__main__ import cmd_ask, cmd_config, cmd_tools, create_parser
from toolbridge.config.settings import Settings
from toolbridge.llm.models import LLMRequestFailed, LLMResponse, TokenUsage, ToolCall, ToolDescriptor
from toolbridge.tools.base import GatewayUnavailable


def _mock_gateway():
    gateway = MagicMock()
    gateway.__aenter__ = AsyncMock(return_value=gateway)
    gateway.__aexit__ = AsyncMock(return_value=False)
    gateway.list_tools = AsyncMock(return_value=[])
    return gateway


def _mock_factory(gateway, orchestrator=None):
    factory = MagicMock()
    factory.create_gateway.return_value = gateway
    factory.create_orchestrator.return_value = orchestrator or MagicMock()
    return factory


class TestParser:

    def test_ask_message_positional(self):
        args = create_parser().parse_args(["ask", "What tools do you have?"])
        assert args.command == "ask"
        assert args.message == "What tools do you have?"

    def test_ask_requires_message(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["ask"])

    @pytest.mark.parametrize("command", ["run", "config", "tools"])
    def test_subcommands_exist(self, command):
        assert create_parser().parse_args([command]).command == command

    def test_global_options(self):
        args = create_parser().parse_args(["--env-file", "custom.env", "--log-level", "DEBUG", "config"])
        assert str(args.env_file) == "custom.env"
        assert args.log_level == "DEBUG"


class TestAskCommand:

    @pytest.mark.asyncio
    async def test_prints_answer_and_tool_calls(self, capsys):
        orchestrator = MagicMock()
        orchestrator.respond = AsyncMock(return_value=LLMResponse(
            text="Replaced 3 occurrences.",
            tool_calls=[ToolCall(name="search_replace", arguments={"search": "foo"}, result="3 replaced")],
            model="gpt-4o",
            usage=TokenUsage(prompt_tokens=200, completion_tokens=40),
            completions=2,
        ))
        gateway = _mock_gateway()
        args = MagicMock()
        args.message = "replace foo with bar"

        with patch("toolbridge.components.BridgeComponents", return_value=_mock_factory(gateway, orchestrator)):
            exit_code = await cmd_ask(args, Settings())

        assert exit_code == 0
        orchestrator.respond.assert_awaited_once_with("replace foo with bar")
        gateway.__aexit__.assert_awaited_once()

        output = capsys.readouterr().out
        assert "Replaced 3 occurrences." in output
        assert "search_replace" in output
        assert "Tokens: 240" in output

    @pytest.mark.asyncio
    async def test_gateway_failure_exit_code(self, capsys):
        gateway = _mock_gateway()
        gateway.__aenter__.side_effect = GatewayUnavailable("MCP server command not found: node")
        args = MagicMock()
        args.message = "hi"

        with patch("toolbridge.components.BridgeComponents", return_value=_mock_factory(gateway)):
            exit_code = await cmd_ask(args, Settings())

        assert exit_code == 1
        assert "Tool server error" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_llm_failure_exit_code(self, capsys):
        orchestrator = MagicMock()
        orchestrator.respond = AsyncMock(side_effect=LLMRequestFailed("API key not configured"))
        args = MagicMock()
        args.message = "hi"

        with patch("toolbridge.components.BridgeComponents",
                   return_value=_mock_factory(_mock_gateway(), orchestrator)):
            exit_code = await cmd_ask(args, Settings())

        assert exit_code == 1
        assert "LLM error: API key not configured" in capsys.readouterr().err


class TestToolsCommand:

    @pytest.mark.asyncio
    async def test_lists_tools_with_parameters(self, capsys):
        gateway = _mock_gateway()
        gateway.list_tools.return_value = [
            ToolDescriptor(
                name="search_replace",
                description="Search and replace text",
                parameter_schema={
                    "type": "object",
                    "properties": {"search": {"type": "string"}, "flags": {"type": "string"}},
                    "required": ["search"],
                },
            ),
        ]

        with patch("toolbridge.components.BridgeComponents", return_value=_mock_factory(gateway)):
            exit_code = await cmd_tools(Settings())

        assert exit_code == 0
        output = capsys.readouterr().out
        assert "Tools (1)" in output
        assert "search_replace: Search and replace text" in output
        assert "search (required)" in output
        assert "flags" in output


class TestConfigCommand:

    def test_config_returns_zero(self):
        assert cmd_config(Settings()) == 0
