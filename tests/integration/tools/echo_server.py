"""
Minimal MCP server used by the gateway integration tests.

Run with: python echo_server.py
"""

import os
import sys
import threading
import time

from mcp.server.fastmcp import FastMCP

server = FastMCP("echo")


@server.tool()
def echo(text: str) -> str:
    """Return the text unchanged."""
    return text


@server.tool()
def add(a: int, b: int) -> str:
    """Add two integers."""
    return str(a + b)


@server.tool()
def fail(reason: str = "requested failure") -> str:
    """Always raise, so the result comes back flagged as an error."""
    raise ValueError(reason)


@server.tool()
def crash() -> str:
    """Die before replying."""
    os._exit(1)


@server.tool()
def pid() -> str:
    """Report the server's process id."""
    return str(os.getpid())


@server.tool()
def linger() -> str:
    """Keep the process alive after stdin closes."""
    threading.Thread(target=time.sleep, args=(120,)).start()
    return "lingering"


@server.tool()
def shutdown() -> str:
    """Exit the server process shortly after replying."""
    threading.Timer(0.2, os._exit, args=(0,)).start()
    return "shutting down"


if __name__ == "__main__":
    print("echo server starting", file=sys.stderr, flush=True)
    server.run()
