"""Abstract base class for remote interactive shells.

All remote shell backends must conform to this interface, so the session
proxy can relay bytes to an SSH target (or a test double) without knowing
how the shell is reached.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Union

from pydantic import BaseModel, ConfigDict, Field

from termproxy.domain.errors import RemoteShellError
from termproxy.domain.models import TargetDescriptor

logger = logging.getLogger(__name__)

DEFAULT_ROWS = 24
DEFAULT_COLS = 80
DEFAULT_TERM_TYPE = "xterm-256color"


# ---------------------------------------------------------------------------
# Output events
# ---------------------------------------------------------------------------


class ShellOutput(BaseModel):
    """A chunk of bytes produced by the remote shell (stdout or stderr)."""

    model_config = ConfigDict(frozen=True)

    data: bytes


class ShellClosed(BaseModel):
    """Terminal status event. Always the last event a shell emits."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    reason: str = Field(description="Human-readable description of why the shell ended")
    error: RemoteShellError | None = Field(
        default=None, description="Set when the shell ended because of a transport failure"
    )


ShellEvent = Union[ShellOutput, ShellClosed]


class RemoteShell(ABC):
    """Abstract interface for one interactive shell on one remote target.

    Output is pushed into an internal channel as it arrives and consumed
    through :meth:`events`. Failures after :meth:`open` succeeded are
    reported as a :class:`ShellClosed` event, never raised from
    :meth:`write` or :meth:`resize`.

    Example usage::

        shell = AsyncSSHShell()
        await shell.open(target)
        shell.write(b"ls\\n")
        async for event in shell.events():
            ...
        await shell.close()

    Output waiting in the channel is bounded by watermarks: above
    ``high_water`` buffered bytes the backend is asked to stop reading
    from the remote, and reading resumes once the consumer has drained
    the channel down to ``low_water``.
    """

    high_water = 1024 * 1024
    low_water = 256 * 1024

    def __init__(
        self,
        rows: int = DEFAULT_ROWS,
        cols: int = DEFAULT_COLS,
        term_type: str = DEFAULT_TERM_TYPE,
    ) -> None:
        self._rows = rows
        self._cols = cols
        self._term_type = term_type
        self._events: asyncio.Queue[ShellEvent] = asyncio.Queue()
        self._closed_emitted = False
        self._buffered = 0
        self._reading_paused = False

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether a shell channel is currently open and writable."""
        ...

    @abstractmethod
    async def open(self, target: TargetDescriptor) -> None:
        """Connect to ``target`` and start an interactive shell with a PTY.

        Raises:
            CredentialUnavailableError: The private key cannot be read.
            DialError: The connection or handshake failed or timed out.
            AuthenticationFailedError: The remote rejected the credential.
            ShellNegotiationError: No shell channel could be opened.
        """
        ...

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Send bytes to the shell's stdin. Logs and drops if not writable."""
        ...

    @abstractmethod
    def resize(self, rows: int, cols: int) -> None:
        """Propagate a window-change to the remote PTY. No-op without a shell."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Terminate the shell and the underlying connection.

        Must be idempotent and safe to call while output is still being
        delivered.
        """
        ...

    async def events(self) -> AsyncIterator[ShellEvent]:
        """Yield output chunks in arrival order, ending with one ShellClosed."""
        while True:
            event = await self._events.get()
            if isinstance(event, ShellOutput):
                self._buffered -= len(event.data)
                if self._reading_paused and self._buffered <= self.low_water:
                    self._reading_paused = False
                    self._resume_reading()
            yield event
            if isinstance(event, ShellClosed):
                return

    def _emit_output(self, data: bytes) -> None:
        if self._closed_emitted or not data:
            return
        self._events.put_nowait(ShellOutput(data=data))
        self._buffered += len(data)
        if not self._reading_paused and self._buffered > self.high_water:
            self._reading_paused = True
            self._pause_reading()

    def _emit_closed(self, reason: str, error: RemoteShellError | None = None) -> None:
        if self._closed_emitted:
            return
        self._closed_emitted = True
        self._events.put_nowait(ShellClosed(reason=reason, error=error))

    def _pause_reading(self) -> None:
        """Stop pulling output from the remote. Backends override this."""

    def _resume_reading(self) -> None:
        """Undo :meth:`_pause_reading`."""


RemoteShellFactory = Callable[[TargetDescriptor], RemoteShell]
