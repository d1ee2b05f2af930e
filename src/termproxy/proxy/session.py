"""Session proxy: one browser terminal paired with one remote shell.

Each session runs three tasks: a reader that turns inbound client frames
into shell input and resize calls, the open task that dials the target,
and (once the shell is up) a relay that forwards shell output to the
client. Every exit path, whichever side fails first, goes through
:meth:`SessionProxy.cleanup`.

Lifecycle::

    INITIATING --open ok--> SHELL_OPEN --any close/error--> CLOSING --> CLOSED
        |                                                     ^
        +--------------open failed / client gone--------------+
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from termproxy.domain.errors import (
    AuthenticationError,
    InternalError,
    InvalidTargetError,
    RegistryClosedError,
    TargetNotFoundError,
    TermProxyError,
)
from termproxy.domain.models import SessionInfo, SessionState, TargetDescriptor
from termproxy.proxy.client import ClientConnection, ClientConnectionError
from termproxy.proxy.protocol import (
    ClientMessage,
    ClosedMessage,
    CloseCode,
    ConnectedMessage,
    ErrorMessage,
    ResizeMessage,
    parse_client_message,
)
from termproxy.proxy.registry import ConnectionRegistry
from termproxy.remote.base import RemoteShell, RemoteShellFactory, ShellClosed, ShellOutput
from termproxy.targets.registry import TargetRegistry
from termproxy.utils.logging import SessionLogAdapter

logger = logging.getLogger(__name__)

MISSING_TARGET_MESSAGE = "Missing target parameter. Use: ws://server/ws/terminal?target=<id>"


class SessionProxy:
    """Relays one client connection to one remote shell.

    The session exclusively owns its RemoteShell and holds a non-owning
    reference to the client connection.
    """

    def __init__(
        self,
        session_id: str,
        client: ClientConnection,
        target: TargetDescriptor,
        remote: RemoteShell,
        registry: ConnectionRegistry,
    ) -> None:
        self._session_id = session_id
        self._client = client
        self._target = target
        self._remote = remote
        self._registry = registry
        self._started_at = datetime.now(timezone.utc)
        self._state = SessionState.INITIATING
        self._send_lock = asyncio.Lock()
        self._closed = asyncio.Event()
        self._teardown_task: asyncio.Task[None] | None = None
        self._open_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._relay_task: asyncio.Task[None] | None = None
        self.log = SessionLogAdapter(logger, session_id, target.identifier)

    @classmethod
    async def create(
        cls,
        client: ClientConnection,
        target_id: str | None,
        *,
        targets: TargetRegistry,
        registry: ConnectionRegistry,
        remote_factory: RemoteShellFactory,
    ) -> SessionProxy:
        """Validate the requested target and register a new session.

        The remote shell is only constructed once the target is known.

        Raises:
            InvalidTargetError: Target missing or unknown. The client has
                already been sent an error and closed with 1008.
            RegistryClosedError: The server is shutting down. The client
                has been closed with 1001.
        """
        if not target_id:
            logger.error("Missing target parameter in connection")
            await _reject(client, MISSING_TARGET_MESSAGE, CloseCode.POLICY_VIOLATION, "Missing target parameter")
            raise InvalidTargetError(MISSING_TARGET_MESSAGE)

        try:
            target = targets.lookup(target_id)
        except TargetNotFoundError as e:
            message = f"Invalid target: {target_id}. Available targets: {', '.join(e.available)}"
            logger.error("Invalid target requested: %s", target_id)
            await _reject(client, message, CloseCode.POLICY_VIOLATION, "Invalid target")
            raise InvalidTargetError(message, identifier=target_id) from e

        session = cls(registry.new_session_id(), client, target, remote_factory(target), registry)
        try:
            registry.register(session)
        except RegistryClosedError:
            await _reject(client, "Server is shutting down", CloseCode.GOING_AWAY, "Server shutting down")
            raise
        session.log.info("Session registered (active connections: %d)", registry.count)
        return session

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def target(self) -> TargetDescriptor:
        return self._target

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def started_at(self) -> datetime:
        return self._started_at

    @property
    def is_active(self) -> bool:
        return self._state == SessionState.SHELL_OPEN and self._remote.is_open

    def info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self._session_id,
            target_identifier=self._target.identifier,
            is_active=self.is_active,
            state=self._state,
            start_time=self._started_at,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Open the remote shell and relay until either side goes away."""
        self._reader_task = asyncio.create_task(self._read_client())
        self._open_task = asyncio.create_task(self._remote.open(self._target))
        try:
            await asyncio.wait({self._open_task})
            error = None if self._open_task.cancelled() else self._open_task.exception()
            if self._teardown_task is None:
                if error is None:
                    await self._on_shell_open()
                else:
                    await self._fail(error, prefix="Connection failed")
            await self._closed.wait()
        finally:
            if not self._closed.is_set():
                # Cancelled from outside (server shutdown)
                await asyncio.shield(self.cleanup(CloseCode.GOING_AWAY, "Server shutting down"))

    async def cleanup(self, code: int = CloseCode.NORMAL, reason: str = "") -> None:
        """Tear the session down. Idempotent and safe to call concurrently.

        Closes the remote shell, then the client connection if it is still
        open, then removes the session from the registry exactly once.
        The teardown runs in its own task: cancelling a caller does not
        abort it, and every caller waits for the same teardown.
        """
        if self._teardown_task is None:
            self._state = SessionState.CLOSING
            self.log.info("Cleaning up SSH proxy resources")
            current = asyncio.current_task()
            pending = [
                task
                for task in (self._open_task, self._relay_task, self._reader_task)
                if task is not None and task is not current and not task.done()
            ]
            for task in pending:
                task.cancel()
            self._teardown_task = asyncio.create_task(self._teardown(pending, int(code), reason))
        await asyncio.shield(self._teardown_task)

    async def _teardown(self, pending: list[asyncio.Task[None]], code: int, reason: str) -> None:
        try:
            if pending:
                await asyncio.wait(pending)

            try:
                await self._remote.close()
            except Exception:
                self.log.exception("Error closing remote shell")

            if self._client.is_open:
                try:
                    async with self._send_lock:
                        await self._client.close(code, reason)
                except ClientConnectionError as e:
                    self.log.warning("WebSocket close error: %s", e)
        finally:
            self._registry.remove(self._session_id)
            self._state = SessionState.CLOSED
            self._closed.set()
            self.log.info("Session closed (active connections: %d)", self._registry.count)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # ------------------------------------------------------------------
    # Client -> remote
    # ------------------------------------------------------------------

    async def _read_client(self) -> None:
        try:
            while True:
                payload = await self._client.receive()
                if payload is None:
                    self.log.info("WebSocket closed by client")
                    break
                self.handle_message(parse_client_message(payload))
        except ClientConnectionError as e:
            self.log.error("WebSocket error: %s", e)
        except Exception as e:
            self.log.exception("Client read failure")
            await self._fail(InternalError(f"Client read failure: {e}"), prefix="Internal error")
            return
        await self.cleanup()

    def handle_message(self, message: ClientMessage) -> None:
        """Forward one parsed client frame to the remote shell."""
        if self._state != SessionState.SHELL_OPEN:
            self.log.debug("Ignoring %s received before shell open", type(message).__name__)
            return
        if isinstance(message, ResizeMessage):
            self._remote.resize(message.rows, message.cols)
        else:
            self._remote.write(message.payload())

    # ------------------------------------------------------------------
    # Remote -> client
    # ------------------------------------------------------------------

    async def _on_shell_open(self) -> None:
        self._state = SessionState.SHELL_OPEN
        self.log.info("SSH connection established successfully")
        try:
            await self._send_json(
                ConnectedMessage(target=self._target.identifier, session_id=self._session_id).to_wire()
            )
        except ClientConnectionError as e:
            self.log.error("WebSocket send error: %s", e)
            await self.cleanup()
            return
        self._relay_task = asyncio.create_task(self._relay_output())

    async def _relay_output(self) -> None:
        closed: ShellClosed | None = None
        try:
            async for event in self._remote.events():
                if isinstance(event, ShellOutput):
                    await self._send_bytes(event.data)
                else:
                    closed = event
        except ClientConnectionError as e:
            self.log.error("WebSocket send error: %s", e)
            await self.cleanup()
            return
        except Exception as e:
            self.log.exception("Relay failure")
            await self._fail(InternalError(f"Relay failure: {e}"), prefix="Internal error")
            return

        if closed is None or closed.error is None:
            self.log.info("SSH stream closed: %s", closed.reason if closed else "no reason")
            reason = closed.reason if closed else "Remote shell exited"
            await self._try_send(ClosedMessage(reason=reason).to_wire())
            await self.cleanup(CloseCode.NORMAL, reason)
        else:
            await self._fail(closed.error, prefix="SSH session ended")

    async def _fail(self, error: BaseException, prefix: str) -> None:
        """Report an upstream failure to the client and tear down."""
        if isinstance(error, AuthenticationError):
            self.log.error("Authentication problem (check key provisioning): %s", error)
        elif isinstance(error, TermProxyError):
            self.log.warning("%s: %s", prefix, error)
        else:
            self.log.error("%s: %r", prefix, error)
        await self._try_send(ErrorMessage(message=f"{prefix}: {error}").to_wire())
        await self.cleanup(CloseCode.UPSTREAM_FAILURE, "SSH connection failed")

    async def _send_json(self, payload: dict) -> None:
        async with self._send_lock:
            await self._client.send_json(payload)

    async def _send_bytes(self, data: bytes) -> None:
        async with self._send_lock:
            await self._client.send_bytes(data)

    async def _try_send(self, payload: dict) -> None:
        if not self._client.is_open:
            return
        try:
            await self._send_json(payload)
        except ClientConnectionError as e:
            self.log.warning("WebSocket send error: %s", e)


async def _reject(client: ClientConnection, message: str, code: int, reason: str) -> None:
    """Send a structured error and close a connection that never became a session."""
    try:
        await client.send_json(ErrorMessage(message=message).to_wire())
        await client.close(int(code), reason)
    except ClientConnectionError as e:
        logger.warning("Could not reject connection cleanly: %s", e)
