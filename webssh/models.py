"""
Message envelopes exchanged with the browser client.

Each WebSocket text frame carries exactly one envelope encoded as JSON.
Binary payloads travel as standard base64 in the ``data`` field.
"""

import base64
import binascii
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_serializer, field_validator

from webssh.errors import MalformedEnvelope


class MessageType(StrEnum):
    LOGIN = "login"
    PASSWORD = "password"
    PUBLICKEY = "publickey"
    STDIN = "stdin"
    RESIZE = "resize"
    STDOUT = "stdout"
    STDERR = "stderr"


class MessageEnvelope(BaseModel):
    """
    A single typed message.

    ``data`` holds the username, password, keystrokes or shell output
    depending on ``type``. ``rows`` and ``cols`` only mean something for
    ``resize``. A ``type`` the gateway does not know stays a plain string,
    and an absent one is empty, so the receiver can log and drop it.
    """

    type: MessageType | str = Field(default="", union_mode="left_to_right")
    data: bytes = b""
    rows: int = 0
    cols: int = 0

    @field_validator("data", mode="before")
    @classmethod
    def decode_data(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return b""
        if info.mode == "json" and isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as exc:
                raise ValueError(f"data is not valid base64: {exc}") from exc
        return value

    @field_serializer("data", when_used="json")
    def encode_data(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")

    @property
    def text(self) -> str:
        """``data`` decoded as UTF-8, for usernames and passwords."""
        return self.data.decode("utf-8", errors="replace")


def encode_envelope(envelope: MessageEnvelope) -> str:
    return envelope.model_dump_json()


def decode_envelope(raw: str | bytes) -> MessageEnvelope:
    """Parse one frame into an envelope, raising MalformedEnvelope on bad input."""
    try:
        return MessageEnvelope.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedEnvelope(f"invalid envelope: {exc.error_count()} error(s)") from exc
