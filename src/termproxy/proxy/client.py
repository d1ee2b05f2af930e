"""Client-facing side of a proxied session.

A ClientConnection is the duplex channel to the browser terminal. The
session proxy reads inbound frames from it and writes status messages
and shell output back; it never owns the underlying socket.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger(__name__)


class ClientConnectionError(Exception):
    """Raised when the client transport fails mid-session."""


class ClientConnection(ABC):
    """Abstract interface for the browser-side duplex connection."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether messages can still be sent to the client."""
        ...

    @abstractmethod
    async def receive(self) -> str | bytes | None:
        """Wait for the next inbound frame.

        Returns:
            The text or binary payload, or None once the peer has closed
            the connection.

        Raises:
            ClientConnectionError: If the transport failed.
        """
        ...

    @abstractmethod
    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a structured status message as a text frame."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """Send raw terminal output as a binary frame."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection with a WebSocket status code."""
        ...


class WebSocketClientConnection(ClientConnection):
    """ClientConnection over an accepted Starlette/FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    @property
    def is_open(self) -> bool:
        return (
            self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    async def receive(self) -> str | bytes | None:
        try:
            message = await self._ws.receive()
        except (RuntimeError, OSError) as e:
            raise ClientConnectionError(f"WebSocket receive failed: {e}") from e
        if message["type"] == "websocket.disconnect":
            logger.debug(
                "WebSocket closed by peer: %s %s",
                message.get("code"), message.get("reason") or "(no reason)",
            )
            return None
        if message.get("bytes") is not None:
            return message["bytes"]
        return message.get("text") or ""

    async def send_json(self, payload: dict[str, Any]) -> None:
        try:
            await self._ws.send_json(payload)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise ClientConnectionError(f"WebSocket send error: {e}") from e

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._ws.send_bytes(data)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise ClientConnectionError(f"WebSocket send error: {e}") from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.is_open:
            return
        try:
            await self._ws.close(code=code, reason=reason or None)
        except (RuntimeError, OSError) as e:
            raise ClientConnectionError(f"WebSocket close error: {e}") from e
