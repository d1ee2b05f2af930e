"""Wire protocol spoken with the browser terminal.

Inbound frames are either a JSON control message or raw terminal input:

    {"type": "input", "data": "ls\\n"}
    {"type": "resize", "rows": 40, "cols": 120}
    anything else                    -> written to the shell verbatim

Outbound, the server sends JSON status messages as text frames and the
shell's output as binary frames:

    {"type": "connected", "target": "vm1", "sessionId": "sess-1-..."}
    {"type": "error", "message": "..."}
    {"type": "closed", "reason": "..."}
"""

from __future__ import annotations

import enum
import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from termproxy.domain.errors import ProtocolError

logger = logging.getLogger(__name__)


class CloseCode(enum.IntEnum):
    """WebSocket close status codes used by the proxy."""

    NORMAL = 1000
    GOING_AWAY = 1001  # Server shutting down
    POLICY_VIOLATION = 1008  # Missing or unknown target
    UPSTREAM_FAILURE = 1011  # Remote shell failed or died


# ---------------------------------------------------------------------------
# Inbound (client -> proxy)
# ---------------------------------------------------------------------------


class InputMessage(BaseModel):
    """Terminal input typed by the user."""

    model_config = ConfigDict(frozen=True)

    type: Literal["input"] = "input"
    data: str

    def payload(self) -> bytes:
        # JSON may carry lone surrogates ("\ud800") that UTF-8 cannot encode
        return self.data.encode("utf-8", errors="replace")


class ResizeMessage(BaseModel):
    """The browser terminal changed size."""

    model_config = ConfigDict(frozen=True)

    type: Literal["resize"] = "resize"
    rows: int = Field(gt=0)
    cols: int = Field(gt=0)


class RawInput(BaseModel):
    """Fallback for any frame that is not a valid control message."""

    model_config = ConfigDict(frozen=True)

    data: bytes

    def payload(self) -> bytes:
        return self.data


ControlMessage = Annotated[
    Union[InputMessage, ResizeMessage],
    Field(discriminator="type"),
]

ClientMessage = Union[InputMessage, ResizeMessage, RawInput]

_control_adapter: TypeAdapter[Any] = TypeAdapter(ControlMessage)


def decode_control_message(payload: str | bytes) -> InputMessage | ResizeMessage:
    """Strictly decode a JSON control message.

    Raises:
        ProtocolError: If the payload is not JSON, not an object, has an
            unknown ``type`` or invalid fields.
    """
    try:
        document = json.loads(payload)
    except (ValueError, RecursionError) as e:
        # RecursionError: nesting too deep for the decoder
        raise ProtocolError(f"Not JSON: {e}") from e
    if not isinstance(document, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(document).__name__}")
    try:
        return _control_adapter.validate_python(document)
    except ValidationError as e:
        raise ProtocolError(f"Invalid control message: {e.error_count()} error(s)") from e


def parse_client_message(payload: str | bytes) -> ClientMessage:
    """Classify an inbound frame. Never raises, never drops the payload."""
    try:
        return decode_control_message(payload)
    except ProtocolError as e:
        logger.debug("Treating frame as raw input (%s)", e)
    data = payload if isinstance(payload, bytes) else payload.encode("utf-8", errors="replace")
    return RawInput(data=data)


# ---------------------------------------------------------------------------
# Outbound (proxy -> client)
# ---------------------------------------------------------------------------


class _ServerMessage(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ConnectedMessage(_ServerMessage):
    type: Literal["connected"] = "connected"
    target: str
    session_id: str


class ErrorMessage(_ServerMessage):
    type: Literal["error"] = "error"
    message: str


class ClosedMessage(_ServerMessage):
    type: Literal["closed"] = "closed"
    reason: str
