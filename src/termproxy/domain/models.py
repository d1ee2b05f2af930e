"""Core domain models for the termproxy system.

These models represent the data flowing through the proxy: the static
targets clients may connect to, the lifecycle of a proxied session, and
the diagnostic snapshots exposed over HTTP.
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    """Lifecycle state of a proxied session."""

    INITIATING = "initiating"  # Dialing the target / negotiating the shell
    SHELL_OPEN = "shell_open"  # Relaying bytes in both directions
    CLOSING = "closing"  # Cleanup in progress
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class TargetDescriptor(BaseModel):
    """Connection parameters for one remote machine.

    Immutable after load; looked up by identifier.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(min_length=1, description="Unique logical target identifier")
    host: str = Field(description="Network address of the remote machine")
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(description="Login name on the remote machine")
    credential_path: str | None = Field(
        default=None, description="Path to the private key used to authenticate"
    )
    display_name: str | None = Field(default=None)
    known_hosts: str | None = Field(
        default=None, description="known_hosts file pinning the host key, if any"
    )

    @property
    def label(self) -> str:
        return self.display_name or self.identifier


class TargetValidation(BaseModel):
    """Result of checking the configured targets for obvious mistakes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    valid: bool
    warnings: list[str] = Field(default_factory=list)
    target_count: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionInfo(BaseModel):
    """Point-in-time view of one registered session."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    session_id: str
    target_identifier: str
    is_active: bool
    state: SessionState
    start_time: datetime
