"""
Discord Bot Layer.

The chat-platform adapter: receives messages, hands their text to the
orchestrator, and sends the answer (or an apology) back to the channel.
"""

from toolbridge.bot.client import ToolBridgeBot

__all__ = ["ToolBridgeBot"]
