"""
ToolBridge - chat bot that lets an LLM call tools served by a local MCP server.

This package provides the tool-calling orchestration loop, the MCP tool gateway
that owns the server subprocess, and a Discord adapter that feeds chat messages
through both.
"""

__version__ = "0.1.0"
