"""Decoded DDP packets.

Packet.decode is stateless and never raises, so it can be used by any
receiver: the connection dispatcher, a display simulator or a capture
analyzer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pyddp.message import Message, decode_message
from pyddp.protocol import HEADER_SIZE, TIMECODE_FLAG, TIMECODE_HEADER_SIZE, Header

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Packet:
    """A header, its raw payload and, for replies, the decoded message.

    Attributes:
        header: Parsed header
        data: Payload bytes, always kept even when a message was decoded
        parsed: Decoded reply message, or None
    """

    header: Header = field(default_factory=Header)
    data: bytes = b""
    parsed: Message | None = None

    @classmethod
    def from_data(cls, header: Header, data: bytes) -> Packet:
        """Wrap a header and payload without decoding any message."""
        return cls(header=header, data=bytes(data))

    @classmethod
    def decode(cls, data: bytes) -> Packet:
        """Parse a received datagram.

        Args:
            data: Raw datagram bytes

        Returns:
            The decoded Packet. Input too short for its header yields an
            empty default Packet.
        """
        if len(data) < HEADER_SIZE:
            logger.debug("Datagram too short for a header: %d bytes", len(data))
            return cls()

        header_size = TIMECODE_HEADER_SIZE if data[0] & TIMECODE_FLAG else HEADER_SIZE
        if len(data) < header_size:
            logger.debug("Datagram too short for a timecode header: %d bytes", len(data))
            return cls()

        header = Header.decode(data[:header_size])
        payload = bytes(data[header_size:])

        parsed = None
        if header.packet_type.reply:
            parsed = decode_message(header.id, payload)

        return cls(header=header, data=payload, parsed=parsed)

    def encode(self) -> bytes:
        """Serialize header and payload into one datagram."""
        return self.header.encode() + self.data
