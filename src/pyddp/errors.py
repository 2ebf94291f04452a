"""Exception types raised by pyddp.

Decoding never raises: malformed inbound data degrades to an empty packet or
an unparsed message instead. These exceptions cover the outbound path and
connection setup.
"""

from __future__ import annotations


class DDPError(Exception):
    """Base exception for all DDP errors."""


class TransportError(DDPError):
    """Sending or receiving a datagram failed."""


class AddressResolutionError(DDPError):
    """The destination address could not be resolved."""


class SerializationError(DDPError):
    """An outbound message could not be encoded as JSON."""


class UnknownSenderError(DDPError):
    """A datagram arrived from an address with no registered connection."""

    def __init__(self, address: tuple[str, int], data: bytes) -> None:
        super().__init__(
            f"invalid sender, did you forget to connect()? (data from {address[0]}:{address[1]}"
            f" - {len(data)} bytes)"
        )
        self.address = address
        self.data = data
