"""
MCP tool gateway.

Spawns an MCP server as a subprocess and talks JSON-RPC to it over stdio
using the official ``mcp`` client.

The stdio transport and client session are entered and exited inside one
long-lived runner task, because both hold anyio cancel scopes that must be
closed by the task that opened them. ``connect()`` and ``disconnect()`` only
start and signal that task, so they can be called from any task (a message
handler, the bot's shutdown hook, the CLI).

The server's stderr is piped into the ``toolbridge.tools.server`` logger by a
small reader thread. EOF on that pipe means the server process is gone, which
is how an unexpected exit is noticed between requests.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import threading
from datetime import timedelta
from pathlib import Path
from typing import Any, Awaitable

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client

from toolbridge.config.logging import SERVER_LOGGER
from toolbridge.config.settings import ToolSettings
from toolbridge.llm.models import ToolDescriptor
from toolbridge.tools.base import (
    GatewayState,
    GatewayUnavailable,
    NotConnected,
    ToolGateway,
    ToolInvocationFailed,
)

logger = logging.getLogger(__name__)
server_logger = logging.getLogger(SERVER_LOGGER)


class _StderrPump(threading.Thread):
    """Forwards the server's stderr to logging, line by line, until EOF."""

    def __init__(self, read_fd: int, on_eof):
        super().__init__(name="mcp-server-stderr", daemon=True)
        self._stream = os.fdopen(read_fd, "r", encoding="utf-8", errors="replace")
        self._on_eof = on_eof

    def run(self) -> None:
        with self._stream:
            for line in self._stream:
                line = line.rstrip()
                if line:
                    server_logger.info(f"[MCP Server] {line}")
        self._on_eof()


class MCPToolGateway(ToolGateway):
    """
    Tool gateway backed by an MCP server subprocess.

    Args:
        command: Executable to launch (e.g. "node", "python")
        args: Argument vector passed to the command; never shell-interpreted
        env: Environment for the server (None uses the MCP default environment)
        cwd: Working directory for the server
        call_timeout: Timeout for each MCP request, in seconds
        connect_timeout: Time allowed for spawn + handshake, in seconds
        serialize_requests: Send one request at a time over the connection
    """

    SHUTDOWN_GRACE_SECONDS = 5.0

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        cwd: str | Path | None = None,
        call_timeout: float = 60.0,
        connect_timeout: float = 30.0,
        serialize_requests: bool = True,
    ):
        self._command = command
        self._args = list(args or [])
        self._env = env
        self._cwd = cwd
        self._call_timeout = call_timeout
        self._connect_timeout = connect_timeout

        self._state = GatewayState.DISCONNECTED
        self._session: ClientSession | None = None
        self._runner: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._ready: asyncio.Future | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        # Bumped on every connect so callbacks from an old server are ignored
        self._generation = 0

        self._connect_lock = asyncio.Lock()
        self._request_lock = asyncio.Lock() if serialize_requests else None

    @classmethod
    def from_settings(cls, settings: ToolSettings) -> MCPToolGateway:
        return cls(
            command=settings.server_command,
            args=settings.server_argv(),
            cwd=settings.server_cwd,
            call_timeout=settings.call_timeout,
            serialize_requests=settings.serialize_requests,
        )

    @property
    def state(self) -> GatewayState:
        return self._state

    @property
    def server_params(self) -> StdioServerParameters:
        return StdioServerParameters(
            command=self._command,
            args=self._args,
            env=self._env,
            cwd=self._cwd,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Start the MCP server and complete the handshake (no-op if connected)."""
        async with self._connect_lock:
            if self._state is GatewayState.CONNECTED:
                logger.debug("MCP gateway already connected")
                return

            if shutil.which(self._command) is None and not Path(self._command).exists():
                raise GatewayUnavailable(f"MCP server command not found: {self._command}")

            logger.info(f"Starting MCP server: {self._command} {' '.join(self._args)}")
            self._state = GatewayState.CONNECTING
            self._generation += 1
            generation = self._generation
            self._loop = asyncio.get_running_loop()
            self._ready = self._loop.create_future()
            self._stop_event = asyncio.Event()
            self._runner = asyncio.create_task(
                self._run_session(generation, self._ready, self._stop_event),
                name=f"mcp-gateway-{generation}",
            )

            try:
                session = await asyncio.wait_for(
                    asyncio.shield(self._ready), timeout=self._connect_timeout
                )
            except Exception as e:
                await self._teardown()
                if isinstance(e, GatewayUnavailable):
                    raise
                if isinstance(e, asyncio.TimeoutError):
                    raise GatewayUnavailable(
                        f"MCP server did not complete the handshake within {self._connect_timeout:g}s",
                        cause=e,
                    )
                raise GatewayUnavailable(f"Failed to connect to MCP server: {e}", cause=e)

            self._session = session
            self._state = GatewayState.CONNECTED
            logger.info("MCP gateway connected")

        # Diagnostic only; a failure here doesn't undo the connection
        try:
            tools = await self.list_tools()
            logger.info(f"Available MCP tools: {', '.join(t.name for t in tools) or '(none)'}")
        except Exception as e:
            logger.warning(f"Connected, but could not list MCP tools: {e}")

    async def disconnect(self) -> None:
        """
        Close the session and stop the server. Never raises.

        Closing the stdio transport closes the server's stdin and the mcp client
        terminates the process. Recent mcp releases first give it up to 2s to
        exit on its own, then terminate and finally kill its process tree. If
        the runner is still alive after ``SHUTDOWN_GRACE_SECONDS`` it is
        cancelled.
        """
        if self._state is GatewayState.DISCONNECTED and self._runner is None:
            return
        await self._teardown()
        logger.info("MCP gateway disconnected")

    async def _teardown(self) -> None:
        self._mark_disconnected(self._generation, "teardown")
        if self._ready is not None and self._ready.done() and not self._ready.cancelled():
            # Mark any handshake error as retrieved
            self._ready.exception()

        runner, self._runner = self._runner, None
        if runner is None or runner.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(runner), timeout=self.SHUTDOWN_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("MCP server did not shut down in time; cancelling session task")
            runner.cancel()
            await asyncio.wait({runner})
        except Exception as e:
            logger.error(f"Error disconnecting MCP gateway: {e}")

    def _mark_disconnected(self, generation: int, reason: str) -> None:
        """
        Move to DISCONNECTED. Only the exit observer and teardown call this,
        always on the event loop thread.
        """
        if generation != self._generation:
            return
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(
                GatewayUnavailable(f"MCP server exited before completing the handshake ({reason})")
            )
        if self._stop_event is not None:
            self._stop_event.set()
        if self._state is GatewayState.DISCONNECTED:
            return
        if self._state is GatewayState.CONNECTED and reason != "teardown":
            logger.warning(f"MCP gateway lost connection: {reason}")
        self._state = GatewayState.DISCONNECTED
        self._session = None

    def _on_server_exit(self, generation: int) -> None:
        """Called from the stderr pump thread when the server's stderr closes."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(self._mark_disconnected, generation, "server process exited")

    async def _run_session(
        self,
        generation: int,
        ready: asyncio.Future,
        stop_event: asyncio.Event,
    ) -> None:
        """Own the stdio transport and session for the lifetime of one connection."""
        read_fd, write_fd = os.pipe()
        errlog = os.fdopen(write_fd, "w")
        _StderrPump(read_fd, lambda: self._on_server_exit(generation)).start()

        try:
            async with stdio_client(self.server_params, errlog=errlog) as (read_stream, write_stream):
                # The child has its own copy of the pipe now
                errlog.close()
                async with ClientSession(
                    read_stream,
                    write_stream,
                    read_timeout_seconds=timedelta(seconds=self._call_timeout),
                ) as session:
                    await session.initialize()
                    if not ready.done():
                        ready.set_result(session)
                    await stop_event.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.error(f"MCP session ended with error: {e}")
        finally:
            if not errlog.closed:
                errlog.close()
            self._mark_disconnected(generation, "session closed")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _require_session(self) -> ClientSession:
        if self._state is not GatewayState.CONNECTED or self._session is None:
            raise NotConnected("MCP gateway not connected")
        return self._session

    @contextlib.asynccontextmanager
    async def _request_slot(self):
        if self._request_lock is None:
            yield
            return
        async with self._request_lock:
            yield

    async def _until_server_exit(self, request: Awaitable[Any], what: str) -> Any:
        """
        Await ``request`` unless the connection it was sent on goes away first.

        The stop event of the current connection is set by the exit observer
        and by teardown, so a call to a dead server fails as soon as the exit
        is noticed instead of waiting out ``call_timeout``.
        """
        stop_event = self._stop_event
        request_task = asyncio.ensure_future(request)
        if stop_event is None:
            return await request_task
        stop_task = asyncio.ensure_future(stop_event.wait())
        try:
            done, _ = await asyncio.wait({request_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_task.cancel()
            if not request_task.done():
                request_task.cancel()
                await asyncio.wait({request_task})

        if request_task not in done:
            raise ToolInvocationFailed(f"MCP server exited during {what}")
        return request_task.result()

    async def _list_all_tools(self, session: ClientSession) -> list[Any]:
        result = await session.list_tools()
        tools = list(result.tools)
        while getattr(result, "nextCursor", None):
            result = await session.list_tools(cursor=result.nextCursor)
            tools.extend(result.tools)
        return tools

    async def list_tools(self) -> list[ToolDescriptor]:
        """List tools currently advertised by the server (follows pagination)."""
        self._require_session()
        async with self._request_slot():
            session = self._require_session()
            try:
                tools = await self._until_server_exit(self._list_all_tools(session), "tool listing")
            except ToolInvocationFailed:
                raise
            except Exception as e:
                raise ToolInvocationFailed(f"Failed to list MCP tools: {e}", cause=e)

        return [
            ToolDescriptor(
                name=tool.name,
                description=tool.description,
                parameter_schema=tool.inputSchema or {},
            )
            for tool in tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Call a tool and return the raw ``CallToolResult``."""
        self._require_session()
        async with self._request_slot():
            # The server may have gone away while we waited for the slot
            session = self._require_session()
            logger.debug(f"Calling MCP tool: {name} {arguments}")
            try:
                result = await self._until_server_exit(
                    session.call_tool(name, arguments), f"the call to '{name}'"
                )
            except ToolInvocationFailed:
                raise
            except Exception as e:
                raise ToolInvocationFailed(f"MCP tool '{name}' failed: {e}", cause=e)
        logger.debug(f"MCP tool response: {result}")
        return result
