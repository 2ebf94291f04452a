"""Payload fragmentation and sequence numbering.

A logical update larger than one datagram is split into chunks of at most
MAX_CHUNK bytes. Each chunk gets its own header carrying the next sequence
number, the chunk length and its byte offset in the receiver's frame buffer.
The push flag is set on the last chunk only.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Generator

from pyddp.errors import TransportError
from pyddp.protocol import Header

logger = logging.getLogger(__name__)

# 480 RGB pixels per datagram
MAX_CHUNK = 480 * 3
SEND_BUFFER_SIZE = 1500
MAX_SEQUENCE = 15
MAX_OFFSET = 0xFFFFFFFF


class SequenceCounter:
    """4-bit transmission counter cycling 1..15. Zero is never produced."""

    def __init__(self) -> None:
        self._value = 1

    @property
    def value(self) -> int:
        return self._value

    def advance(self) -> int:
        """Move to the next sequence number, wrapping 15 -> 1.

        Returns:
            The new value
        """
        self._value = 1 if self._value >= MAX_SEQUENCE else self._value + 1
        return self._value

    def reset(self) -> None:
        self._value = 1

    def __repr__(self) -> str:
        return f"SequenceCounter(value={self._value})"


def check_offset_range(offset: int, size: int) -> None:
    """Check that size bytes starting at offset are addressable by a u32 offset.

    Raises:
        ValueError: If offset is negative or the last byte lies past 0xFFFFFFFF
    """
    if offset < 0:
        raise ValueError(f"Offset must not be negative, got {offset}")
    last = offset + max(size, 1) - 1
    if last > MAX_OFFSET:
        raise ValueError(
            f"Write of {size} bytes at offset {offset} ends past the maximum offset {MAX_OFFSET:#x}"
        )


def iter_fragments(
    template: Header, payload: bytes, counter: SequenceCounter
) -> Generator[tuple[Header, memoryview], None, None]:
    """Split a payload into per-datagram headers and chunks.

    The counter advances after each fragment is consumed, so a consumer that
    stops early (e.g. on a send error) leaves it pointing at the first
    unsent sequence number.

    Args:
        template: Header with pixel_config, id and base offset already set
        payload: Full payload to send
        counter: Sequence counter to stamp and advance

    Yields:
        (header, chunk) for each fragment in order

    Raises:
        ValueError: If the payload would not fit below the 32-bit offset
            limit. Raised before the first fragment is produced.
    """
    view = memoryview(payload)
    total = len(view)
    check_offset_range(template.offset, total)
    for start in range(0, total, MAX_CHUNK):
        chunk = view[start : start + MAX_CHUNK]
        header = replace(
            template,
            packet_type=replace(template.packet_type, push=start + MAX_CHUNK >= total),
            sequence_number=counter.value,
            offset=template.offset + start,
            length=len(chunk),
        )
        yield header, chunk
        counter.advance()


def build_datagrams(
    template: Header, payload: bytes, counter: SequenceCounter
) -> list[bytes]:
    """Build every datagram for a payload without sending anything.

    Args:
        template: Header with pixel_config, id and base offset already set
        payload: Full payload to send
        counter: Sequence counter to stamp and advance

    Returns:
        Complete datagrams (header + chunk) in send order
    """
    return [header.encode() + chunk for header, chunk in iter_fragments(template, payload, counter)]


class Fragmenter:
    """Serialize fragments into a reusable buffer and hand them to a sender.

    The buffer and counter are plain mutable state: one Fragmenter must not
    be driven by more than one thread at a time.
    """

    def __init__(
        self, counter: SequenceCounter | None = None, buffer_size: int = SEND_BUFFER_SIZE
    ) -> None:
        if buffer_size < SEND_BUFFER_SIZE:
            raise ValueError(
                f"Send buffer must be at least {SEND_BUFFER_SIZE} bytes, got {buffer_size}"
            )
        self.counter = counter if counter is not None else SequenceCounter()
        self._buffer = bytearray(buffer_size)

    def send(
        self,
        template: Header,
        payload: bytes,
        send_datagram: Callable[[memoryview], int],
    ) -> int:
        """Fragment payload and send each datagram.

        Args:
            template: Header with pixel_config, id and base offset already set
            payload: Full payload to send; empty sends nothing
            send_datagram: Called once per datagram, returns bytes sent

        Returns:
            Total bytes sent (headers + payload) across all datagrams

        Raises:
            TransportError: If a send fails. Remaining fragments are not sent
                and fragments already sent are not recalled.
        """
        sent = 0
        buffer = self._buffer
        for header, chunk in iter_fragments(template, payload, self.counter):
            header_bytes = header.encode()
            header_len = len(header_bytes)
            end = header_len + len(chunk)
            buffer[:header_len] = header_bytes
            buffer[header_len:end] = chunk

            try:
                sent += send_datagram(memoryview(buffer)[:end])
            except OSError as e:
                raise TransportError(
                    f"Failed to send fragment seq={header.sequence_number} "
                    f"offset={header.offset}: {e}"
                ) from e

            logger.debug(
                "Sent fragment seq=%d offset=%d length=%d push=%s",
                header.sequence_number,
                header.offset,
                header.length,
                header.packet_type.push,
            )
        return sent
