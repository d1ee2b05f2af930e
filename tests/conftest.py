"""Shared test fixtures for the termproxy test suite.

Provides targets, an in-memory remote shell that echoes its input, and
an in-memory client connection that records everything sent to it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from termproxy.domain.errors import RemoteShellError
from termproxy.domain.models import TargetDescriptor
from termproxy.proxy.client import ClientConnection, ClientConnectionError
from termproxy.proxy.registry import ConnectionRegistry
from termproxy.remote.base import RemoteShell
from termproxy.targets.registry import TargetRegistry


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeRemoteShell(RemoteShell):
    """RemoteShell that echoes writes back as output.

    Writing ``exit_on`` makes the shell exit cleanly, as a real shell
    does on ``exit``.
    """

    def __init__(
        self,
        fail_with: BaseException | None = None,
        open_delay: float = 0.0,
        echo: bool = True,
        exit_on: bytes = b"exit\n",
        close_delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.fail_with = fail_with
        self.open_delay = open_delay
        self.echo = echo
        self.exit_on = exit_on
        self.close_delay = close_delay
        self.opened_target: TargetDescriptor | None = None
        self.writes: list[bytes] = []
        self.resizes: list[tuple[int, int]] = []
        self.close_calls = 0
        self.pause_calls = 0
        self.resume_calls = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self, target: TargetDescriptor) -> None:
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.opened_target = target
        self._open = True

    def write(self, data: bytes) -> None:
        if not self._open:
            return
        self.writes.append(data)
        if self.echo:
            self._emit_output(data)
        if data == self.exit_on:
            self.finish()

    def resize(self, rows: int, cols: int) -> None:
        if not self._open:
            return
        self.resizes.append((rows, cols))
        self._rows, self._cols = rows, cols

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self._open = False
        self._emit_closed("Shell closed by proxy")

    def output(self, data: bytes) -> None:
        """Simulate the remote printing ``data``."""
        self._emit_output(data)

    def finish(self, error: RemoteShellError | None = None, reason: str = "Remote shell exited") -> None:
        """Simulate the remote shell ending, cleanly or with ``error``."""
        self._open = False
        self._emit_closed(reason, error)

    def _pause_reading(self) -> None:
        self.pause_calls += 1

    def _resume_reading(self) -> None:
        self.resume_calls += 1


class FakeClientConnection(ClientConnection):
    """ClientConnection backed by an in-memory queue."""

    def __init__(self) -> None:
        self.inbound: asyncio.Queue[str | bytes | None] = asyncio.Queue()
        self.sent: list[tuple[str, Any]] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.close_calls = 0
        self.fail_sends = False
        self._closed = False
        self._peer_closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and not self._peer_closed

    async def receive(self) -> str | bytes | None:
        if self._peer_closed:
            return None
        return await self.inbound.get()

    async def send_json(self, payload: dict[str, Any]) -> None:
        self._check_send()
        self.sent.append(("json", payload))

    async def send_bytes(self, data: bytes) -> None:
        self._check_send()
        self.sent.append(("bytes", data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls += 1
        self._closed = True
        self.close_code = code
        self.close_reason = reason

    # -- helpers ---------------------------------------------------------

    def push(self, payload: str | bytes) -> None:
        """Queue an inbound frame from the browser."""
        self.inbound.put_nowait(payload)

    def disconnect(self) -> None:
        """Simulate the browser closing the connection."""
        self._peer_closed = True
        self.inbound.put_nowait(None)

    def json_messages(self) -> list[dict[str, Any]]:
        return [payload for kind, payload in self.sent if kind == "json"]

    def output(self) -> bytes:
        return b"".join(payload for kind, payload in self.sent if kind == "bytes")

    def _check_send(self) -> None:
        if self.fail_sends:
            raise ClientConnectionError("WebSocket send error: broken pipe")
        if not self.is_open:
            raise ClientConnectionError("WebSocket send error: connection closed")


# ---------------------------------------------------------------------------
# Target fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def target_t1() -> TargetDescriptor:
    return TargetDescriptor(
        identifier="t1",
        host="10.0.0.1",
        port=22,
        username="student",
        credential_path="/keys/id_t1",
        display_name="Target 1",
    )


@pytest.fixture
def target_t2() -> TargetDescriptor:
    return TargetDescriptor(
        identifier="t2",
        host="10.0.0.2",
        port=2222,
        username="student",
        credential_path="/keys/id_t2",
    )


@pytest.fixture
def targets(target_t1: TargetDescriptor, target_t2: TargetDescriptor) -> TargetRegistry:
    """Registry holding t1 and t2."""
    return TargetRegistry([target_t1, target_t2])


# ---------------------------------------------------------------------------
# Session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def client() -> FakeClientConnection:
    return FakeClientConnection()


@pytest.fixture
def shells() -> list[FakeRemoteShell]:
    """Every FakeRemoteShell built by ``remote_factory``, in creation order."""
    return []


@pytest.fixture
def remote_factory(shells: list[FakeRemoteShell]) -> Callable[[TargetDescriptor], FakeRemoteShell]:
    def factory(target: TargetDescriptor) -> FakeRemoteShell:
        shell = FakeRemoteShell()
        shells.append(shell)
        return shell

    return factory


@pytest.fixture
def eventually() -> Callable[..., Any]:
    """Poll ``predicate`` until it holds, failing after ``timeout`` seconds."""

    async def wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.01)

    return wait


@pytest.fixture
def make_shell() -> type[FakeRemoteShell]:
    """The FakeRemoteShell class, for tests that need a customised shell."""
    return FakeRemoteShell


@pytest.fixture
def make_client() -> type[FakeClientConnection]:
    """The FakeClientConnection class, for tests that need several clients."""
    return FakeClientConnection
