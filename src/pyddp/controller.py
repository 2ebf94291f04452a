"""Receive-side dispatcher for DDP replies.

A Controller owns one UDP socket, hands out Connections that send on it and
runs a background thread that reads replies and routes each one to the
Connection registered for the sender's IP address.
"""

from __future__ import annotations

import logging
import select
import socket
import threading

from pyddp.connection import Address, Connection
from pyddp.errors import UnknownSenderError
from pyddp.packet import Packet
from pyddp.protocol import DEFAULT_PORT, ID, AnyID, PixelConfig

logger = logging.getLogger(__name__)

# 1500 bytes should be enough for anyone
RECV_BUFFER_SIZE = 1500


class Controller:
    """Listen for replies and dispatch them to per-display Connections.

    Example:
        >>> with Controller() as controller:
        ...     conn = controller.connect("192.168.1.40")
        ...     conn.write(bytes([255, 0, 0]))
        ...     packet = conn.get_incoming()
    """

    def __init__(
        self,
        sock: socket.socket | None = None,
        bind: tuple[str, int] = ("0.0.0.0", DEFAULT_PORT),
        poll_interval: float = 0.2,
    ) -> None:
        """Create a controller.

        Args:
            sock: Bound UDP socket. If None, one is bound to `bind` and
                closed with the controller.
            bind: Local address used when no socket is given
            poll_interval: Seconds the receive thread waits between stop checks
        """
        self._owns_socket = sock is None
        if sock is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind(bind)
        self._socket = sock
        self.poll_interval = poll_interval

        # Source IP -> connection. Single dict operations are atomic, so the
        # receive thread can read while connect()/disconnect() write.
        self._connections: dict[str, Connection] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def local_address(self) -> tuple[str, int]:
        return self._socket.getsockname()[:2]

    def connect(
        self,
        addr: Address,
        pixel_config: PixelConfig | None = None,
        id: AnyID = ID.DEFAULT,
    ) -> Connection:
        """Create a Connection sending on this controller's socket.

        Replies from the display's IP are queued on the returned connection.

        Raises:
            AddressResolutionError: If addr cannot be resolved
        """
        conn = Connection(addr, pixel_config, id, sock=self._socket)
        self._connections[conn.addr[0]] = conn
        logger.debug("Registered display %s:%d", conn.addr[0], conn.addr[1])
        return conn

    def disconnect(self, conn: Connection) -> None:
        """Stop routing replies to a connection."""
        if self._connections.get(conn.addr[0]) is conn:
            del self._connections[conn.addr[0]]

    def dispatch(self, data: bytes, address: tuple[str, int]) -> Packet:
        """Decode one datagram and queue it on the sender's connection.

        Args:
            data: Received datagram
            address: Sender (ip, port)

        Returns:
            The decoded packet

        Raises:
            UnknownSenderError: If no connection is registered for the sender
        """
        conn = self._connections.get(address[0])
        if conn is None:
            raise UnknownSenderError(address, bytes(data))

        packet = Packet.decode(data)
        conn.deliver(packet)
        return packet

    def start(self) -> None:
        """Start the background receive thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._receive_loop, name="ddp-receive", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the receive thread and wait for it to exit."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def close(self) -> None:
        self.stop()
        if self._owns_socket:
            self._socket.close()

    def _receive_loop(self) -> None:
        while not self._stop.is_set():
            try:
                ready, _, _ = select.select([self._socket], [], [], self.poll_interval)
            except (OSError, ValueError) as e:
                logger.warning("Receive socket unusable, stopping: %s", e)
                return
            if not ready:
                continue

            try:
                data, address = self._socket.recvfrom(RECV_BUFFER_SIZE)
            except OSError as e:
                logger.warning("Error receiving packet: %s", e)
                continue

            try:
                packet = self.dispatch(data, address)
            except UnknownSenderError as e:
                logger.warning("Dropping datagram: %s", e)
                continue

            logger.debug(
                "Received seq=%d id=%r (%d bytes) from %s",
                packet.header.sequence_number,
                packet.header.id,
                len(packet.data),
                address[0],
            )

    def __enter__(self) -> Controller:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
