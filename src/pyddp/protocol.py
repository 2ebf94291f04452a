"""Low-level DDP header codec using construct.

This module provides sans-io encoding and decoding of the Distributed Display
Protocol header. It defines the packet type flag byte, the pixel config byte,
the id byte and the fixed 10-byte (14 with timecode) header that precedes
every datagram.

Wire layout, all multi-byte integers big-endian:

    offset 0:     packet type flags (VV-TSRQP)
    offset 1:     sequence number (1-15, 0 = not tracked)
    offset 2:     pixel config (C-TTTSSS)
    offset 3:     id
    offset 4-7:   data offset (u32)
    offset 8-9:   data length (u16)
    offset 10-13: timecode (u32, only present when the timecode flag is set)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, Union

from construct import (
    Adapter,
    BitsInteger,
    BitStruct,
    Flag,
    If,
    Int8ub,
    Int16ub,
    Int32ub,
    Optional,
    Padding,
    Struct,
)

# Protocol constants
DEFAULT_PORT = 4048
HEADER_SIZE = 10
TIMECODE_HEADER_SIZE = 14
TIMECODE_FLAG = 0x10  # bit 4 of the flag byte


@dataclass(frozen=True)
class PacketType:
    """Flag byte at offset 0.

    Attributes:
        version: Protocol version. Two bits on the wire, so only 1-3 are
            encodable; any other value is written as version 1.
        timecode: A 4-byte timecode follows the header (14-byte header)
        storage: Read from / write to persistent storage
        reply: Packet is a reply to a query
        query: Packet is a query
        push: Final packet of a logical update, display it now
    """

    version: int = 1
    timecode: bool = False
    storage: bool = False
    reply: bool = False
    query: bool = False
    push: bool = False

    def to_byte(self) -> int:
        """Encode to the flag byte."""
        return PacketTypeByte.build(self)[0]

    @classmethod
    def from_byte(cls, value: int) -> PacketType:
        """Decode a flag byte. Every byte value decodes."""
        return PacketTypeByte.parse(bytes([value & 0xFF]))


class DataType(IntEnum):
    """Pixel color space, bits 5-3 of the pixel config byte."""

    UNDEFINED = 0
    RGB = 1
    HSL = 2
    RGBW = 3
    GRAYSCALE = 4


class PixelFormat(IntEnum):
    """Pixel bit depth, bits 2-0 of the pixel config byte."""

    UNDEFINED = 0
    BITS_1 = 1
    BITS_4 = 2
    BITS_8 = 3
    BITS_16 = 4
    BITS_24 = 5
    BITS_32 = 6

    @property
    def bits(self) -> int:
        return _PIXEL_FORMAT_BITS[self]


_PIXEL_FORMAT_BITS = {
    PixelFormat.UNDEFINED: 0,
    PixelFormat.BITS_1: 1,
    PixelFormat.BITS_4: 4,
    PixelFormat.BITS_8: 8,
    PixelFormat.BITS_16: 16,
    PixelFormat.BITS_24: 24,
    PixelFormat.BITS_32: 32,
}


@dataclass(frozen=True)
class PixelConfig:
    """Pixel config byte at offset 2. Defaults to RGB, 8 bits per channel."""

    data_type: DataType = DataType.RGB
    data_size: PixelFormat = PixelFormat.BITS_24
    customer_defined: bool = False

    @property
    def bytes_per_pixel(self) -> int | None:
        """Whole bytes per pixel, or None for sub-byte and undefined sizes."""
        bits = self.data_size.bits
        if bits == 0 or bits % 8:
            return None
        return bits // 8

    def to_byte(self) -> int:
        """Encode to the pixel config byte."""
        return PixelConfigByte.build(self)[0]

    @classmethod
    def from_byte(cls, value: int) -> PixelConfig:
        """Decode a pixel config byte. Unknown type/size codes become UNDEFINED."""
        return PixelConfigByte.parse(bytes([value & 0xFF]))


class ID(IntEnum):
    """Canonical DDP ids.

    Every byte not listed here is a custom id, see CustomID.
    """

    RESERVED = 0
    DEFAULT = 1
    CONTROL = 246  # JSON control (read/write)
    CONFIG = 250  # JSON config (read/write)
    STATUS = 251  # JSON status (read only)
    DMX = 254  # DMX transit
    BROADCAST = 255  # all devices


@dataclass(frozen=True)
class CustomID:
    """Application-defined id carried in any byte not claimed by ID."""

    value: int

    @property
    def is_valid(self) -> bool:
        return 0 <= self.value <= 0xFF and self.value not in _CANONICAL_IDS


AnyID = Union[ID, CustomID]

_CANONICAL_IDS = frozenset(ID)


def id_from_byte(value: int) -> AnyID:
    """Decode an id byte. Total: every byte maps to exactly one id.

    Args:
        value: Id byte (0-255)

    Returns:
        The canonical ID, or CustomID for any other byte
    """
    value &= 0xFF
    if value in _CANONICAL_IDS:
        return ID(value)
    return CustomID(value)


def id_to_byte(ident: AnyID) -> int:
    """Encode an id to its byte.

    A CustomID whose value is out of range or collides with a canonical id
    encodes as ID.DEFAULT instead of corrupting another id's byte.

    Args:
        ident: ID or CustomID

    Returns:
        Id byte (0-255)
    """
    if isinstance(ident, CustomID):
        return ident.value if ident.is_valid else int(ID.DEFAULT)
    return int(ident)


def _check_range(name: str, value: int, maximum: int) -> None:
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} {value} out of range 0-{maximum:#x}")


def _enum_or_undefined(enum_cls: Any, value: int) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return enum_cls.UNDEFINED


class PacketTypeAdapter(Adapter):
    """Map the flag bit fields to and from PacketType."""

    def _decode(self, obj, context, path) -> PacketType:
        # Version bits 00 are not a valid version, treat them as version 1
        return PacketType(
            version=obj.version or 1,
            timecode=obj.timecode,
            storage=obj.storage,
            reply=obj.reply,
            query=obj.query,
            push=obj.push,
        )

    def _encode(self, obj: PacketType, context, path) -> dict:
        return {
            "version": obj.version if 1 <= obj.version <= 3 else 1,
            "timecode": obj.timecode,
            "storage": obj.storage,
            "reply": obj.reply,
            "query": obj.query,
            "push": obj.push,
        }


class PixelConfigAdapter(Adapter):
    """Map the pixel config bit fields to and from PixelConfig."""

    def _decode(self, obj, context, path) -> PixelConfig:
        return PixelConfig(
            data_type=_enum_or_undefined(DataType, obj.data_type),
            data_size=_enum_or_undefined(PixelFormat, obj.data_size),
            customer_defined=obj.customer_defined,
        )

    def _encode(self, obj: PixelConfig, context, path) -> dict:
        return {
            "customer_defined": obj.customer_defined,
            "data_type": int(obj.data_type),
            "data_size": int(obj.data_size),
        }


class IDAdapter(Adapter):
    """Map the id byte to and from ID / CustomID."""

    def _decode(self, obj, context, path) -> AnyID:
        return id_from_byte(obj)

    def _encode(self, obj: AnyID, context, path) -> int:
        return id_to_byte(obj)


# Byte 0: VV-TSRQP
PacketTypeByte = PacketTypeAdapter(
    BitStruct(
        "version" / BitsInteger(2),
        Padding(1),  # reserved
        "timecode" / Flag,
        "storage" / Flag,
        "reply" / Flag,
        "query" / Flag,
        "push" / Flag,
    )
)

# Byte 2: C-TTTSSS
PixelConfigByte = PixelConfigAdapter(
    BitStruct(
        "customer_defined" / Flag,
        Padding(1),  # reserved
        "data_type" / BitsInteger(3),
        "data_size" / BitsInteger(3),
    )
)

IDByte = IDAdapter(Int8ub)

HeaderStruct = Struct(
    "packet_type" / PacketTypeByte,
    "sequence_number" / Int8ub,
    "pixel_config" / PixelConfigByte,
    "id" / IDByte,
    "offset" / Int32ub,
    "length" / Int16ub,
    # A truncated timecode parses as None rather than failing
    "timecode" / If(lambda this: this.packet_type.timecode, Optional(Int32ub)),
)


@dataclass(frozen=True)
class Header:
    """DDP packet header.

    Attributes:
        packet_type: Flag byte
        sequence_number: 1-15, or 0 when sequence numbers are not used
        pixel_config: Pixel format of the payload
        id: Destination id
        offset: Byte offset into the receiver's frame buffer
        length: Payload bytes in this datagram
        timecode: Timecode, only meaningful when packet_type.timecode is set
    """

    packet_type: PacketType = field(default_factory=PacketType)
    sequence_number: int = 0
    pixel_config: PixelConfig = field(default_factory=PixelConfig)
    id: AnyID = ID.DEFAULT
    offset: int = 0
    length: int = 0
    timecode: int | None = None

    @property
    def size(self) -> int:
        """Encoded header size in bytes (10, or 14 with timecode)."""
        return TIMECODE_HEADER_SIZE if self.packet_type.timecode else HEADER_SIZE

    def with_timecode(self, timecode: int) -> Header:
        """Return a copy carrying a timecode, with the timecode flag set."""
        return replace(
            self,
            packet_type=replace(self.packet_type, timecode=True),
            timecode=timecode,
        )

    def encode(self) -> bytes:
        """Serialize the header.

        Returns:
            10 header bytes, or 14 when the timecode flag is set

        Raises:
            ValueError: If a numeric field does not fit its wire width
        """
        timecode = self.timecode or 0
        _check_range("sequence_number", self.sequence_number, 0xFF)
        _check_range("offset", self.offset, 0xFFFFFFFF)
        _check_range("length", self.length, 0xFFFF)
        if self.packet_type.timecode:
            _check_range("timecode", timecode, 0xFFFFFFFF)

        return HeaderStruct.build(
            {
                "packet_type": self.packet_type,
                "sequence_number": self.sequence_number,
                "pixel_config": self.pixel_config,
                "id": self.id,
                "offset": self.offset,
                "length": self.length,
                "timecode": timecode,
            }
        )

    @classmethod
    def decode(cls, data: bytes) -> Header:
        """Parse a header from the start of data.

        Args:
            data: Raw datagram bytes (header followed by any payload)

        Returns:
            Parsed Header. If the timecode flag is set but fewer than 14 bytes
            are available, timecode is None.

        Raises:
            ValueError: If data is shorter than the 10-byte header
        """
        if len(data) < HEADER_SIZE:
            raise ValueError(f"Header too short: {len(data)} bytes")

        parsed = HeaderStruct.parse(bytes(data[:TIMECODE_HEADER_SIZE]))
        return cls(
            packet_type=parsed.packet_type,
            sequence_number=parsed.sequence_number,
            pixel_config=parsed.pixel_config,
            id=parsed.id,
            offset=parsed.offset,
            length=parsed.length,
            timecode=parsed.timecode,
        )
