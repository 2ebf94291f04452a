"""JSON control, config and status messages.

Displays answer queries on the CONTROL, CONFIG and STATUS ids with a JSON
body. Not every receiver follows the published schema, so decoding degrades
step by step: typed model, then untyped JSON, then plain text.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pyddp.errors import SerializationError
from pyddp.protocol import ID, AnyID

logger = logging.getLogger(__name__)

# Unsigned 32-bit integer as used by device firmware
U32 = Annotated[int, Field(ge=0, le=0xFFFFFFFF)]


class _Schema(BaseModel):
    # No coercion: "1" is not an int and "yes" is not a bool. A body that
    # only fits after coercion falls through to untyped JSON.
    model_config = ConfigDict(strict=True)


class Color(_Schema):
    r: U32
    g: U32
    b: U32


class Control(_Schema):
    """Effect control, all fields optional."""

    model_config = ConfigDict(populate_by_name=True)

    fx: Optional[str] = None
    intensity: Optional[U32] = Field(None, alias="int")
    spd: Optional[U32] = Field(None, description="Speed")
    dir: Optional[U32] = Field(None, description="Direction")
    colors: Optional[list[Color]] = None
    save: Optional[U32] = None
    power: Optional[U32] = None


class ControlRoot(_Schema):
    control: Control


class Port(_Schema):
    """One output port of a display controller."""

    port: U32
    ts: U32 = Field(description="Start pixel")
    l: U32 = Field(description="Pixel count")  # noqa: E741
    ss: U32 = Field(description="Strings")


class Config(_Schema):
    ip: Optional[str] = None
    nm: Optional[str] = None
    gw: Optional[str] = None
    ports: list[Port]


class ConfigRoot(_Schema):
    config: Config


class Status(_Schema):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    update: Optional[str] = None
    state: Optional[str] = None
    man: Optional[str] = Field(None, description="Manufacturer")
    model: Optional[str] = Field(None, alias="mod")
    ver: Optional[str] = None
    mac: Optional[str] = None
    push: Optional[bool] = None
    ntp: Optional[bool] = None


class StatusRoot(_Schema):
    status: Status


@dataclass(frozen=True)
class ParsedMessage:
    """Valid JSON that did not match the schema for its id."""

    id: AnyID
    value: Any


@dataclass(frozen=True)
class UnparsedMessage:
    """A text body that is not JSON."""

    id: AnyID
    text: str


Message = Union[ControlRoot, ConfigRoot, StatusRoot, ParsedMessage, UnparsedMessage]

_TYPED_MESSAGES: dict[ID, type[BaseModel]] = {
    ID.CONTROL: ControlRoot,
    ID.CONFIG: ConfigRoot,
    ID.STATUS: StatusRoot,
}


def message_id(message: Message) -> AnyID:
    """Get the id a message is sent on.

    Args:
        message: Any Message variant

    Returns:
        CONTROL, CONFIG or STATUS for typed messages, the tag otherwise
    """
    if isinstance(message, ControlRoot):
        return ID.CONTROL
    if isinstance(message, ConfigRoot):
        return ID.CONFIG
    if isinstance(message, StatusRoot):
        return ID.STATUS
    if isinstance(message, (ParsedMessage, UnparsedMessage)):
        return message.id
    raise TypeError(f"Not a DDP message: {type(message).__name__}")


def encode_message(message: Message) -> bytes:
    """Serialize a message body.

    Args:
        message: Any Message variant

    Returns:
        JSON bytes, or the UTF-8 text of an UnparsedMessage

    Raises:
        SerializationError: If the value cannot be represented as JSON
    """
    if isinstance(message, BaseModel):
        return message.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
    if isinstance(message, ParsedMessage):
        try:
            return json.dumps(message.value, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot encode message for id {message.id!r}: {e}") from e
    if isinstance(message, UnparsedMessage):
        return message.text.encode("utf-8")
    raise TypeError(f"Not a DDP message: {type(message).__name__}")


def _reject_constant(name: str) -> Any:
    # NaN, Infinity and -Infinity are not JSON
    raise ValueError(f"Invalid JSON constant {name}")


def decode_message(ident: AnyID, data: bytes) -> Message | None:
    """Decode a reply body for a JSON id.

    Tried in order: the typed model for the id, untyped JSON, UTF-8 text.

    Args:
        ident: Id from the packet header
        data: Payload bytes

    Returns:
        The first variant that decodes, or None if the id does not carry
        JSON or the body is not even valid UTF-8
    """
    model = _TYPED_MESSAGES.get(ident) if isinstance(ident, ID) else None
    if model is None:
        return None

    try:
        return model.model_validate_json(data)
    except ValidationError:
        logger.debug("Body for %s does not match %s", ident.name, model.__name__)

    try:
        text = bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("Body for %s is not UTF-8, leaving it raw", ident.name)
        return None

    try:
        return ParsedMessage(ident, json.loads(text, parse_constant=_reject_constant))
    except ValueError:
        return UnparsedMessage(ident, text)
