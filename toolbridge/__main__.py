"""
ToolBridge CLI entry point.

Provides command-line interface for running the bot and utility commands.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from toolbridge import __version__
from toolbridge.config.logging import get_logger, setup_logging
from toolbridge.config.settings import Settings, load_settings


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="toolbridge",
        description="Chat bot that lets an LLM call tools served by a local MCP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"ToolBridge {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Run the Discord bot")
    subparsers.add_parser("config", help="Show current configuration")
    subparsers.add_parser("tools", help="Start the MCP server and list its tools")

    ask_parser = subparsers.add_parser(
        "ask",
        help="Send one message through the LLM + tools loop and print the answer",
    )
    ask_parser.add_argument(
        "message",
        help='Message to send, e.g. "What tools do you have?"',
    )

    return parser


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== ToolBridge Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nBot Name: {settings.bot.name}")
    logger.info(f"Bot Token: {'Set' if settings.bot.token else 'Not set'}")
    logger.info(f"Allowed Channels: {settings.bot.allowed_channel_ids or 'all'}")
    logger.info(f"\nLLM Model: {settings.llm.model}")
    logger.info(f"LLM Endpoint: {settings.llm.endpoint or 'provider default'}")
    logger.info(f"LLM API Key: {'Set' if settings.llm.api_key else 'Not set'}")
    logger.info(f"LLM Max Turns: {settings.llm.max_turns}")
    logger.info(f"LLM Time Budget: {settings.llm.time_budget or 'none'}")
    argv = " ".join([settings.tools.server_command, *settings.tools.server_argv()])
    logger.info(f"\nTool Server: {argv}")
    logger.info(f"Tool Call Timeout: {settings.tools.call_timeout}s")

    return 0


def cmd_run(settings: Settings) -> int:
    """Start the Discord bot."""
    logger = get_logger(__name__)

    if not settings.bot.token:
        logger.error(
            "Discord bot token not set. Add BOT__TOKEN=<your-token> to your .env file."
        )
        return 1

    if not settings.llm.api_key:
        logger.warning(
            "LLM API key not set (LLM__API_KEY). "
            "The bot will start but every message will fail until this is configured."
        )

    from toolbridge.bot import ToolBridgeBot

    bot = ToolBridgeBot(settings)
    logger.info(f"Starting {settings.bot.name}...")
    # log_handler=None: disable discord.py's default logging setup and use ours
    bot.run(settings.bot.token, log_handler=None)
    return 0


async def cmd_tools(settings: Settings) -> int:
    """Connect to the MCP server and print its tools."""
    logger = get_logger(__name__)

    from toolbridge.components import BridgeComponents
    from toolbridge.tools.base import ToolGatewayError

    try:
        async with BridgeComponents(settings).create_gateway() as gateway:
            descriptors = await gateway.list_tools()
    except ToolGatewayError as e:
        logger.error(f"Tool server error: {e}")
        return 1

    print(f"\n=== Tools ({len(descriptors)}) ===")
    for descriptor in descriptors:
        print(f"- {descriptor.name}: {descriptor.description or '(no description)'}")
        required = descriptor.parameter_schema.get("required") or []
        for name in descriptor.parameter_schema.get("properties") or {}:
            marker = " (required)" if name in required else ""
            print(f"    {name}{marker}")
    return 0


async def cmd_ask(args, settings: Settings) -> int:
    """Run a single message through the orchestrator."""
    logger = get_logger(__name__)

    from toolbridge.components import BridgeComponents
    from toolbridge.llm import LLMError
    from toolbridge.tools.base import ToolGatewayError

    factory = BridgeComponents(settings)
    try:
        async with factory.create_gateway() as gateway:
            orchestrator = factory.create_orchestrator(gateway)
            logger.info(f"Sending to {settings.llm.model}...")
            response = await orchestrator.respond(args.message)
    except ToolGatewayError as e:
        print(f"\nTool server error: {e}", file=sys.stderr)
        return 1
    except LLMError as e:
        print(f"\nLLM error: {e}", file=sys.stderr)
        return 1
    except (ValueError, FileNotFoundError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    print(f"\n{response.text}")

    if response.tool_calls:
        print("\n--- Tool Calls ---")
        for tc in response.tool_calls:
            status = "error" if tc.is_error else "ok"
            print(f"  {tc.name}({tc.arguments}) [{status}] → {tc.result}")

    print(f"\nCompletions: {response.completions} | "
          f"Tokens: {response.usage.total_tokens} "
          f"(prompt {response.usage.prompt_tokens} "
          f"+ completion {response.usage.completion_tokens})")
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    setup_logging(settings)

    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "run":
        return cmd_run(settings)
    elif args.command == "tools":
        return asyncio.run(cmd_tools(settings))
    elif args.command == "ask":
        return asyncio.run(cmd_ask(args, settings))
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
