"""Error taxonomy for termproxy.

Configuration errors are reported to the requesting client and never
stop the server. Remote shell errors terminate only the session that
raised them. Protocol errors never leave the message parser.
"""

from __future__ import annotations


class TermProxyError(Exception):
    """Base class for all termproxy errors."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(TermProxyError):
    """Unknown or misconfigured target, or invalid configuration file."""


class TargetNotFoundError(ConfigurationError):
    """Raised by the target registry for an unknown identifier."""

    def __init__(self, identifier: str, available: list[str] | None = None) -> None:
        super().__init__(f"Unknown target: {identifier}")
        self.identifier = identifier
        self.available = list(available or [])


class InvalidTargetError(ConfigurationError):
    """Raised when a client requests a missing or unknown target."""

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class RegistryClosedError(ConfigurationError):
    """Raised when registering a session after shutdown has begun."""


# ---------------------------------------------------------------------------
# Remote shell
# ---------------------------------------------------------------------------


class RemoteShellError(TermProxyError):
    """Base class for failures of the outbound SSH session."""

    def __init__(self, message: str, target: str = "") -> None:
        super().__init__(message)
        self.target = target


class TransportError(RemoteShellError):
    """Network-level failure: dial error, reset, keepalive timeout."""


class DialError(TransportError):
    """The TCP connection or SSH handshake could not be completed."""


class ShellNegotiationError(TransportError):
    """The SSH connection came up but no interactive shell could be opened."""


class AuthenticationError(RemoteShellError):
    """Credential missing or rejected. Indicates a provisioning problem."""


class CredentialUnavailableError(AuthenticationError):
    """The private key for a target is not configured or cannot be read."""


class AuthenticationFailedError(AuthenticationError):
    """The remote host rejected the credential."""


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------


class ProtocolError(TermProxyError):
    """An inbound payload is not a valid control message."""


class InternalError(TermProxyError):
    """Unexpected failure in the relay plumbing of one session."""
