"""
Base classes for tool gateways.

A tool gateway owns the connection to whatever actually implements the tools
(for us, an MCP server subprocess) and exposes discovery and invocation to the
orchestrator. The orchestrator only sees this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from toolbridge.llm.models import ToolDescriptor


class GatewayState(str, Enum):
    """Connection lifecycle of a gateway."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ToolGatewayError(Exception):
    """Base class for gateway failures. ``cause`` holds the underlying exception."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class GatewayUnavailable(ToolGatewayError):
    """The tool server could not be started or did not complete the handshake."""


class NotConnected(ToolGatewayError):
    """An operation was attempted while the gateway is disconnected."""


class ToolInvocationFailed(ToolGatewayError):
    """A request to the tool server failed (timeout, protocol error, crash)."""


class ToolGateway(ABC):
    """
    Abstract base class for tool gateways.

    Gateways are async context managers: entering connects, exiting
    disconnects. ``connect()`` and ``disconnect()`` are both idempotent.
    """

    @property
    @abstractmethod
    def state(self) -> GatewayState:
        """Current connection state."""

    def is_connected(self) -> bool:
        return self.state is GatewayState.CONNECTED

    @abstractmethod
    async def connect(self) -> None:
        """
        Start the tool server and establish the protocol session.

        Returns immediately if already connected.

        Raises:
            GatewayUnavailable: If the server cannot be started or the
                handshake fails. The gateway stays disconnected.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close the session and stop the tool server.

        Never raises; teardown errors are logged.
        """

    @abstractmethod
    async def list_tools(self) -> list[ToolDescriptor]:
        """
        List the tools the server currently advertises.

        Raises:
            NotConnected: If the gateway is not connected
            ToolInvocationFailed: If the server request fails
        """

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """
        Invoke a tool and return its raw result (content blocks).

        Text extraction is left to the caller.

        Raises:
            NotConnected: If the gateway is not connected
            ToolInvocationFailed: If the server request fails
        """

    async def __aenter__(self):
        """Context manager entry - connect the gateway."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - disconnect the gateway."""
        await self.disconnect()
        return False
