"""Connection to a single DDP display.

A Connection turns pixel writes and JSON messages into fragmented datagrams
and sends them over a UDP socket. Replies from the display are fed into the
connection's inbound queue by a Controller and read with get_incoming().
"""

from __future__ import annotations

import logging
import queue
import socket
from typing import Protocol, Tuple, Union, runtime_checkable

from pyddp.errors import AddressResolutionError
from pyddp.fragment import Fragmenter
from pyddp.message import Message, encode_message, message_id
from pyddp.packet import Packet
from pyddp.protocol import DEFAULT_PORT, ID, AnyID, Header, PixelConfig

logger = logging.getLogger(__name__)

Address = Union[str, Tuple[str, int]]


@runtime_checkable
class DatagramSocket(Protocol):
    """The part of socket.socket a Connection needs."""

    family: int

    def sendto(self, data, address) -> int: ...

    def close(self) -> None: ...


def parse_address(addr: Address) -> tuple[str, int]:
    """Split an address into host and port.

    Accepts ("host", port), "host:port", "[v6addr]:port" or a bare host,
    which gets the standard DDP port.

    Raises:
        AddressResolutionError: If the port is not a valid number
    """
    if isinstance(addr, tuple):
        host, port = addr
    else:
        host, sep, port_str = addr.rpartition(":")
        if not sep or addr.endswith("]") or (":" in host and not host.startswith("[")):
            # bare hostname or bare IPv6 address
            host, port_str = addr, str(DEFAULT_PORT)
        host = host.strip("[]")
        try:
            port = int(port_str)
        except ValueError:
            raise AddressResolutionError(f"Invalid port in address {addr!r}") from None

    if not 0 <= int(port) <= 0xFFFF:
        raise AddressResolutionError(f"Port out of range in address {addr!r}")
    return host, int(port)


def resolve_address(addr: Address, family: int = socket.AF_INET) -> tuple[str, int]:
    """Resolve an address to a socket address usable with sendto().

    Args:
        addr: Address in any form accepted by parse_address
        family: Address family of the socket that will send

    Returns:
        (ip, port)

    Raises:
        AddressResolutionError: If the host cannot be resolved
    """
    host, port = parse_address(addr)
    try:
        infos = socket.getaddrinfo(host, port, family, socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as e:
        raise AddressResolutionError(f"No valid socket address for {host}:{port}: {e}") from e
    if not infos:
        raise AddressResolutionError(f"No valid socket address for {host}:{port}")
    sockaddr = infos[0][4]
    return sockaddr[0], sockaddr[1]


class Connection:
    """Send pixel data and messages to one display.

    Each write stamps sequence numbers from the connection's counter and
    assembles datagrams in a shared send buffer, so a Connection must only
    be written from one thread at a time. Wrap it in a lock if several
    threads need to write.

    Example:
        >>> with Connection("192.168.1.40:4048") as conn:
        ...     conn.write(bytes([255, 0, 0, 0, 0, 255]))  # red, blue
    """

    def __init__(
        self,
        addr: Address,
        pixel_config: PixelConfig | None = None,
        id: AnyID = ID.DEFAULT,
        sock: DatagramSocket | None = None,
    ) -> None:
        """Create a connection.

        Args:
            addr: Display address; the DDP port is 4048
            pixel_config: Pixel format for write()/write_offset() (default RGB, 24 bits)
            id: Destination id for pixel writes
            sock: UDP socket to send on. If None, an IPv4 socket bound to an
                ephemeral port is created and closed with the connection.

        Raises:
            AddressResolutionError: If addr cannot be resolved
        """
        self.pixel_config = pixel_config if pixel_config is not None else PixelConfig()
        self.id = id

        self._owns_socket = sock is None
        if sock is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind(("0.0.0.0", 0))
        self._socket = sock

        try:
            self.addr = resolve_address(addr, sock.family)
        except AddressResolutionError:
            self.close()
            raise

        self._fragmenter = Fragmenter()
        self._incoming: queue.SimpleQueue[Packet] = queue.SimpleQueue()

    @property
    def sequence_number(self) -> int:
        """Sequence number the next datagram will carry."""
        return self._fragmenter.counter.value

    def write(self, data: bytes) -> int:
        """Write pixel data starting at offset 0.

        Data larger than one datagram is split automatically.

        Args:
            data: Raw pixel bytes, e.g. R,G,B triplets for RGB

        Returns:
            Total bytes sent across all datagrams

        Raises:
            TransportError: If the socket send fails
        """
        return self.write_offset(data, 0)

    def write_offset(self, data: bytes, offset: int) -> int:
        """Write pixel data starting at a byte offset in the display buffer.

        Args:
            data: Raw pixel bytes
            offset: Byte offset (not pixel index); for RGB, pixel n is at 3 * n

        Returns:
            Total bytes sent across all datagrams

        Raises:
            ValueError: If offset is negative or the data would extend past
                offset 0xFFFFFFFF. Nothing is sent.
            TransportError: If the socket send fails
        """
        header = Header(pixel_config=self.pixel_config, id=self.id, offset=offset)
        return self._fragmenter.send(header, bytes(data), self._send_datagram)

    def write_message(self, message: Message) -> int:
        """Send a JSON message, e.g. a ControlRoot to change effect or brightness.

        The header id is taken from the message.

        Args:
            message: Any Message variant

        Returns:
            Total bytes sent across all datagrams

        Raises:
            SerializationError: If the message cannot be encoded
            TransportError: If the socket send fails
        """
        payload = encode_message(message)
        header = Header(id=message_id(message))
        return self._fragmenter.send(header, payload, self._send_datagram)

    def get_incoming(self) -> Packet | None:
        """Return the next packet received from the display, without blocking.

        Returns:
            The oldest queued Packet, or None if nothing has arrived
        """
        try:
            return self._incoming.get_nowait()
        except queue.Empty:
            return None

    def deliver(self, packet: Packet) -> None:
        """Queue a packet received from this display.

        The queue is unbounded: a caller that never reads get_incoming()
        keeps every reply in memory.
        """
        self._incoming.put(packet)

    def close(self) -> None:
        """Close the socket if this connection created it."""
        if self._owns_socket:
            self._socket.close()

    def _send_datagram(self, datagram: memoryview) -> int:
        return self._socket.sendto(datagram, self.addr)

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Connection(addr={self.addr[0]}:{self.addr[1]}, id={self.id!r}, "
            f"pixel_config={self.pixel_config!r}, sequence_number={self.sequence_number})"
        )
