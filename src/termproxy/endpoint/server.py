"""FastAPI server for the terminal proxy.

Accepts WebSocket connections from browser terminals, hands each one to
a SessionProxy, and exposes diagnostics over HTTP:

    GET  /health          -> uptime, targets, active sessions, config warnings
    GET  /info            -> service description
    GET  /connections     -> snapshot of registered sessions
    WS   /ws/terminal?target=vm1
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, WebSocket
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from termproxy import __version__
from termproxy.config.settings import Settings
from termproxy.domain.errors import InvalidTargetError, RegistryClosedError
from termproxy.domain.models import SessionInfo, TargetDescriptor, TargetValidation
from termproxy.proxy.client import WebSocketClientConnection
from termproxy.proxy.registry import ConnectionRegistry
from termproxy.proxy.session import SessionProxy
from termproxy.remote.base import RemoteShell, RemoteShellFactory
from termproxy.targets.registry import TargetRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(_CamelModel):
    status: str = "ok"
    uptime: float = Field(description="Seconds since the server started")
    available_targets: list[str]
    active_connections: int
    target_validation: TargetValidation
    timestamp: datetime


class InfoResponse(_CamelModel):
    service: str = "termproxy"
    version: str = __version__
    available_targets: list[str]
    active_connections: int
    websocket_path: str


class ConnectionsResponse(_CamelModel):
    count: int
    connections: list[SessionInfo]


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def default_remote_factory(settings: Settings) -> RemoteShellFactory:
    """Build SSH shells configured from the ``ssh`` settings section."""
    from termproxy.remote.ssh_backend import AsyncSSHShell

    ssh = settings.ssh

    def factory(target: TargetDescriptor) -> RemoteShell:
        return AsyncSSHShell(
            rows=ssh.default_rows,
            cols=ssh.default_cols,
            term_type=ssh.term_type,
            connect_timeout=ssh.connect_timeout,
            keepalive_interval=ssh.keepalive_interval,
            keepalive_count_max=ssh.keepalive_count_max,
        )

    return factory


def create_app(
    settings: Settings | None = None,
    targets: TargetRegistry | None = None,
    registry: ConnectionRegistry | None = None,
    remote_factory: RemoteShellFactory | None = None,
) -> FastAPI:
    """Create the proxy application.

    Args:
        settings: Server configuration. Defaults to ``Settings()``.
        targets: Pre-built target registry (for testing). Built from
                 ``settings`` when omitted.
        registry: Pre-built connection registry (for testing).
        remote_factory: Builds the RemoteShell for a validated target
                        (for testing). Defaults to asyncssh shells.
    """
    settings = settings or Settings()
    targets = targets if targets is not None else TargetRegistry.from_settings(settings)
    registry = registry if registry is not None else ConnectionRegistry()
    remote_factory = remote_factory or default_remote_factory(settings)
    websocket_path = settings.server.websocket_path

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.started_at = time.monotonic()
        logger.info("Available targets: %s", ", ".join(targets.list_identifiers()) or "(none)")
        warnings = targets.validate_all()
        if warnings:
            logger.warning("Target configuration warnings:")
            for warning in warnings:
                logger.warning("   - %s", warning)
        logger.info("WebSocket endpoint: %s", websocket_path)
        yield
        logger.info("Shutting down, closing active sessions")
        await registry.close_all()
        logger.info("Proxy stopped")

    app = FastAPI(
        title="termproxy",
        description="WebSocket to SSH terminal proxy",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.targets = targets
    app.state.registry = registry
    app.state.started_at = time.monotonic()

    @app.get("/health")
    async def health_check() -> HealthResponse:
        return HealthResponse(
            uptime=round(time.monotonic() - app.state.started_at, 3),
            available_targets=targets.list_identifiers(),
            active_connections=registry.count,
            target_validation=targets.validation_report(),
            timestamp=datetime.now(timezone.utc),
        )

    @app.get("/info")
    async def info() -> InfoResponse:
        return InfoResponse(
            available_targets=targets.list_identifiers(),
            active_connections=registry.count,
            websocket_path=websocket_path,
        )

    @app.get("/connections")
    async def connections() -> ConnectionsResponse:
        snapshot = registry.snapshot()
        return ConnectionsResponse(count=len(snapshot), connections=snapshot)

    @app.websocket(websocket_path)
    async def terminal(
        websocket: WebSocket,
        target: str | None = None,
        vm: str | None = None,
    ) -> None:
        await websocket.accept()
        client = WebSocketClientConnection(websocket)
        logger.info("WebSocket connection received (target=%s)", target or vm)
        try:
            session = await SessionProxy.create(
                client,
                target or vm,
                targets=targets,
                registry=registry,
                remote_factory=remote_factory,
            )
        except (InvalidTargetError, RegistryClosedError) as e:
            logger.info("Connection rejected: %s", e)
            return
        await session.run()

    return app


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def main(settings: Settings | None = None) -> None:
    """Run the proxy under uvicorn.

    uvicorn handles SIGINT/SIGTERM: it stops accepting connections and
    runs the lifespan shutdown, which closes every session.
    """
    settings = settings or Settings()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
    )


if __name__ == "__main__":
    main()
