"""SSH remote shell backend.

Opens an interactive PTY shell on a target machine with asyncssh and
pushes everything the shell prints into the RemoteShell event channel.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import asyncssh

from termproxy.domain.errors import (
    AuthenticationFailedError,
    CredentialUnavailableError,
    DialError,
    ShellNegotiationError,
    TransportError,
)
from termproxy.domain.models import TargetDescriptor
from termproxy.remote.base import DEFAULT_COLS, DEFAULT_ROWS, DEFAULT_TERM_TYPE, RemoteShell

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_KEEPALIVE_INTERVAL = 10.0
DEFAULT_KEEPALIVE_COUNT_MAX = 3
# Upper bound on waiting for the transport to finish closing
CLOSE_TIMEOUT = 5.0


class _ShellSession(asyncssh.SSHClientSession):
    """Feeds asyncssh channel callbacks into the owning AsyncSSHShell."""

    def __init__(self, shell: AsyncSSHShell) -> None:
        self._shell = shell

    def data_received(self, data: bytes, datatype: int | None) -> None:
        # stdout and stderr (datatype EXTENDED_DATA_STDERR) share one stream
        self._shell._emit_output(data)

    def connection_lost(self, exc: Exception | None) -> None:
        self._shell._on_channel_lost(exc)


class AsyncSSHShell(RemoteShell):
    """Interactive shell on a remote target over SSH.

    Host keys are accepted without verification unless the target pins
    them with a ``known_hosts`` file. This is only acceptable for a
    fixed fleet of pre-provisioned machines.
    """

    def __init__(
        self,
        rows: int = DEFAULT_ROWS,
        cols: int = DEFAULT_COLS,
        term_type: str = DEFAULT_TERM_TYPE,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        keepalive_count_max: int = DEFAULT_KEEPALIVE_COUNT_MAX,
    ) -> None:
        super().__init__(rows=rows, cols=cols, term_type=term_type)
        self._connect_timeout = connect_timeout
        self._keepalive_interval = keepalive_interval
        self._keepalive_count_max = keepalive_count_max
        self._conn: asyncssh.SSHClientConnection | None = None
        self._channel: asyncssh.SSHClientChannel | None = None
        self._target_id = ""
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._channel is not None and not self._channel.is_closing()

    async def open(self, target: TargetDescriptor) -> None:
        """Dial the target, authenticate with its key and start a PTY shell."""
        if self._conn is not None or self._closed:
            raise ShellNegotiationError("Shell already opened", target=target.identifier)
        self._target_id = target.identifier

        key = await self._load_key(target)
        logger.info("Connecting to %s at %s:%d", target.identifier, target.host, target.port)

        try:
            self._conn = await asyncssh.connect(
                target.host,
                port=target.port,
                username=target.username,
                client_keys=[key],
                known_hosts=target.known_hosts,
                connect_timeout=self._connect_timeout,
                keepalive_interval=self._keepalive_interval,
                keepalive_count_max=self._keepalive_count_max,
            )
        except asyncssh.PermissionDenied as e:
            raise AuthenticationFailedError(
                f"Authentication rejected by {target.host}: {e.reason}", target=target.identifier
            ) from e
        except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
            raise DialError(
                f"Cannot reach {target.host}:{target.port}: {_describe(e)}",
                target=target.identifier,
            ) from e
        logger.info("SSH connection established to %s", target.identifier)

        try:
            self._channel, _ = await asyncio.wait_for(
                self._conn.create_session(
                    lambda: _ShellSession(self),
                    term_type=self._term_type,
                    term_size=(self._cols, self._rows),
                    encoding=None,
                ),
                timeout=self._connect_timeout,
            )
        except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
            self._abort()
            raise ShellNegotiationError(
                f"Shell request failed: {_describe(e)}", target=target.identifier
            ) from e
        except BaseException:
            # Cancelled while negotiating: drop the half-open connection
            self._abort()
            raise
        logger.info("Interactive shell session opened (%dx%d)", self._cols, self._rows)

    def write(self, data: bytes) -> None:
        if not self.is_open:
            logger.warning("Cannot send input - stream not writable")
            return
        try:
            self._channel.write(data)
        except Exception as e:
            logger.error("Stream write error: %s", e)

    def resize(self, rows: int, cols: int) -> None:
        if self._channel is None:
            logger.warning("Cannot resize - no active stream")
            return
        try:
            self._channel.change_terminal_size(cols, rows)
        except Exception as e:
            logger.error("Resize error: %s", e)
            return
        self._rows, self._cols = rows, cols
        logger.info("Terminal resized to %dx%d", cols, rows)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        channel, conn = self._channel, self._conn
        self._channel = None
        self._conn = None

        if channel is not None:
            try:
                channel.close()
            except Exception as e:
                logger.error("Stream close error: %s", e)
        if conn is not None:
            conn.close()
            try:
                await asyncio.wait_for(conn.wait_closed(), timeout=CLOSE_TIMEOUT)
            except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
                logger.warning("SSH connection did not close cleanly: %s", e)
        self._emit_closed("Shell closed by proxy")
        logger.info("SSH connection closed for %s", self._target_id or "(unopened)")

    async def _load_key(self, target: TargetDescriptor) -> asyncssh.SSHKey:
        path = target.credential_path
        if not path:
            raise CredentialUnavailableError(
                f"No private key configured for {target.identifier}", target=target.identifier
            )
        if not Path(path).is_file():
            raise CredentialUnavailableError(
                f"SSH private key not found at: {path}", target=target.identifier
            )
        loop = asyncio.get_running_loop()
        try:
            key = await loop.run_in_executor(None, asyncssh.read_private_key, path)
        except (asyncssh.KeyImportError, OSError) as e:
            raise CredentialUnavailableError(
                f"Failed to read SSH key {path}: {e}", target=target.identifier
            ) from e
        logger.info("Loaded SSH key from %s", path)
        return key

    def _abort(self) -> None:
        if self._conn is not None:
            self._conn.abort()
            self._conn = None

    def _pause_reading(self) -> None:
        if self._channel is not None:
            logger.debug("Output backlog above %d bytes, pausing SSH reads", self.high_water)
            self._channel.pause_reading()

    def _resume_reading(self) -> None:
        if self._channel is not None:
            logger.debug("Output backlog drained, resuming SSH reads")
            self._channel.resume_reading()

    def _on_channel_lost(self, exc: Exception | None) -> None:
        self._channel = None
        if exc is None:
            logger.info("SSH stream closed for %s", self._target_id)
            self._emit_closed("Remote shell exited")
        else:
            logger.warning("SSH stream lost for %s: %s", self._target_id, exc)
            self._emit_closed(
                "Remote connection lost",
                TransportError(f"Remote connection lost: {exc}", target=self._target_id),
            )


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
