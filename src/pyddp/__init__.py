"""pyddp - Distributed Display Protocol (DDP) client library.

This library implements the DDP wire format used to stream pixel data to LED
displays such as WLED over UDP: header encoding and decoding, automatic
fragmentation of large frames, sequence numbering and JSON control messages.
A reference CLI and console display simulator are included.

Example:
    >>> from pyddp import Connection
    >>> conn = Connection("192.168.1.40:4048")
    >>> # Three RGB pixels: red, green, blue
    >>> conn.write(bytes([255, 0, 0, 0, 255, 0, 0, 0, 255]))
    19
"""

import importlib.metadata as _importlib_metadata

from pyddp.connection import Connection, parse_address, resolve_address
from pyddp.controller import Controller
from pyddp.display import FrameBuffer, render_ansi
from pyddp.errors import (
    AddressResolutionError,
    DDPError,
    SerializationError,
    TransportError,
    UnknownSenderError,
)
from pyddp.fragment import (
    MAX_CHUNK,
    Fragmenter,
    SequenceCounter,
    build_datagrams,
    iter_fragments,
)
from pyddp.message import (
    Color,
    Config,
    ConfigRoot,
    Control,
    ControlRoot,
    Message,
    ParsedMessage,
    Port,
    Status,
    StatusRoot,
    UnparsedMessage,
    decode_message,
    encode_message,
    message_id,
)
from pyddp.packet import Packet
from pyddp.protocol import (
    DEFAULT_PORT,
    HEADER_SIZE,
    ID,
    TIMECODE_HEADER_SIZE,
    AnyID,
    CustomID,
    DataType,
    Header,
    PacketType,
    PixelConfig,
    PixelFormat,
    id_from_byte,
    id_to_byte,
)

__version__: str = _importlib_metadata.version(__package__ or __name__)

__all__ = [
    # Version
    "__version__",
    # Connection (high-level API)
    "Connection",
    "Controller",
    "parse_address",
    "resolve_address",
    # Protocol (low-level)
    "Header",
    "PacketType",
    "PixelConfig",
    "DataType",
    "PixelFormat",
    "ID",
    "CustomID",
    "AnyID",
    "id_from_byte",
    "id_to_byte",
    "DEFAULT_PORT",
    "HEADER_SIZE",
    "TIMECODE_HEADER_SIZE",
    # Packets
    "Packet",
    # Fragmentation
    "MAX_CHUNK",
    "SequenceCounter",
    "Fragmenter",
    "iter_fragments",
    "build_datagrams",
    # Messages
    "Message",
    "Color",
    "Control",
    "ControlRoot",
    "Port",
    "Config",
    "ConfigRoot",
    "Status",
    "StatusRoot",
    "ParsedMessage",
    "UnparsedMessage",
    "message_id",
    "encode_message",
    "decode_message",
    # Display simulation
    "FrameBuffer",
    "render_ansi",
    # Errors
    "DDPError",
    "TransportError",
    "AddressResolutionError",
    "SerializationError",
    "UnknownSenderError",
]
