"""
Tool Integration Layer.

Provides the gateway to the MCP server that implements the tools the LLM can
call. The orchestrator depends only on the ToolGateway interface.
"""

from toolbridge.tools.base import (
    GatewayState,
    GatewayUnavailable,
    NotConnected,
    ToolGateway,
    ToolGatewayError,
    ToolInvocationFailed,
)
from toolbridge.tools.mcp_gateway import MCPToolGateway

__all__ = [
    "GatewayState",
    "GatewayUnavailable",
    "MCPToolGateway",
    "NotConnected",
    "ToolGateway",
    "ToolGatewayError",
    "ToolInvocationFailed",
]
