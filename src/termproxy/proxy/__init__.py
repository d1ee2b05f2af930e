"""Session proxy module for termproxy.

Pairs browser terminal connections with remote shells and keeps track
of the sessions currently alive.

Public API:
    SessionProxy -- One client connection relayed to one remote shell
    ConnectionRegistry -- Process-wide map of active sessions
    ClientConnection -- Abstract client transport
    WebSocketClientConnection -- Client transport over a FastAPI WebSocket
"""

from termproxy.proxy.client import ClientConnection, ClientConnectionError, WebSocketClientConnection
from termproxy.proxy.registry import ConnectionRegistry
from termproxy.proxy.session import SessionProxy

__all__ = [
    "ClientConnection",
    "ClientConnectionError",
    "ConnectionRegistry",
    "SessionProxy",
    "WebSocketClientConnection",
]
