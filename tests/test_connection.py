"""
Unit tests for Connection

Most tests use a fake socket; the loopback tests send real UDP datagrams.
"""

import socket

import pytest

from conftest import FakeSocket
from pyddp.connection import Connection, parse_address, resolve_address
from pyddp.errors import AddressResolutionError, SerializationError, TransportError
from pyddp.message import Control, ControlRoot, ParsedMessage
from pyddp.packet import Packet
from pyddp.protocol import ID, CustomID, DataType, Header, PixelConfig, PixelFormat

RGB = [255, 0, 0, 0, 255, 0, 0, 0, 255]


@pytest.fixture
def conn(fake_socket):
    return Connection("127.0.0.1:4048", sock=fake_socket)


class TestAddress:
    """Tests for address parsing and resolution"""

    def test_host_and_port(self):
        assert parse_address("192.168.1.40:4048") == ("192.168.1.40", 4048)

    def test_default_port(self):
        assert parse_address("192.168.1.40") == ("192.168.1.40", 4048)

    def test_tuple(self):
        assert parse_address(("10.0.0.1", 1234)) == ("10.0.0.1", 1234)

    def test_ipv6(self):
        assert parse_address("[::1]:5000") == ("::1", 5000)
        assert parse_address("::1") == ("::1", 4048)

    def test_bad_port(self):
        with pytest.raises(AddressResolutionError):
            parse_address("10.0.0.1:notaport")
        with pytest.raises(AddressResolutionError):
            parse_address(("10.0.0.1", 70000))

    def test_resolve_numeric(self):
        assert resolve_address("127.0.0.1:4048") == ("127.0.0.1", 4048)

    def test_resolve_failure(self):
        with pytest.raises(AddressResolutionError):
            resolve_address("no-such-host.invalid:4048")

    def test_connection_construction_fails(self, fake_socket):
        with pytest.raises(AddressResolutionError):
            Connection("no-such-host.invalid", sock=fake_socket)


class TestWrite:
    """Tests for pixel writes"""

    def test_three_pixels(self, conn, fake_socket):
        assert conn.write(RGB) == 19
        assert fake_socket.sent == [
            (
                bytes([0x41, 0x01, 0x0D, 0x01, 0x00, 0x00, 0x00, 0x00, 0x00, 0x09]) + bytes(RGB),
                ("127.0.0.1", 4048),
            )
        ]

    def test_sequence_numbers(self, conn, fake_socket):
        for _ in range(5):
            conn.write([255, 0, 0])
        assert [d[1] for d in fake_socket.datagrams] == [1, 2, 3, 4, 5]
        assert conn.sequence_number == 6

    def test_sequence_wraps(self, conn, fake_socket):
        for _ in range(16):
            conn.write([255, 0, 0])
        assert fake_socket.datagrams[15][1] == 1
        assert all(d[1] != 0 for d in fake_socket.datagrams)

    def test_write_offset(self, conn, fake_socket):
        conn.write_offset([128, 128, 128], 30)
        header = Header.decode(fake_socket.datagrams[0])
        assert header.offset == 30
        assert header.length == 3

    def test_large_write_offsets_accumulate(self, conn, fake_socket):
        sent = conn.write_offset(bytes(2000), 100)
        headers = [Header.decode(d) for d in fake_socket.datagrams]
        assert [(h.offset, h.length, h.packet_type.push) for h in headers] == [
            (100, 1440, False),
            (1540, 560, True),
        ]
        assert [h.sequence_number for h in headers] == [1, 2]
        assert sent == 2020

    @pytest.mark.parametrize("offset", [-3, 2**32 + 30, 2**32 - 2])
    def test_offset_out_of_range_rejected(self, conn, fake_socket, offset):
        with pytest.raises(ValueError, match="[Oo]ffset"):
            conn.write_offset(bytes(3), offset)
        assert fake_socket.sent == []
        assert conn.sequence_number == 1

    def test_large_write_past_offset_limit_sends_nothing(self, conn, fake_socket):
        with pytest.raises(ValueError):
            conn.write_offset(bytes(2000), 2**32 - 1500)
        assert fake_socket.sent == []

    def test_write_ending_at_offset_limit(self, conn, fake_socket):
        conn.write_offset(bytes(3), 2**32 - 3)
        assert Header.decode(fake_socket.datagrams[0]).offset == 2**32 - 3

    def test_empty_write(self, conn, fake_socket):
        assert conn.write(b"") == 0
        assert fake_socket.sent == []

    def test_pixel_config_and_id_used(self, fake_socket):
        config = PixelConfig(DataType.RGBW, PixelFormat.BITS_32)
        conn = Connection("127.0.0.1", config, CustomID(9), sock=fake_socket)
        conn.write(bytes(4))
        header = Header.decode(fake_socket.datagrams[0])
        assert header.pixel_config == config
        assert header.id == CustomID(9)

    def test_transport_error(self):
        sock = FakeSocket(fail_after=1)
        conn = Connection("127.0.0.1", sock=sock)
        with pytest.raises(TransportError):
            conn.write(bytes(3000))
        assert len(sock.sent) == 1


class TestWriteMessage:
    """Tests for JSON message writes"""

    def test_control_message(self, conn, fake_socket):
        conn.write_message(ControlRoot(control=Control(power=1)))
        packet = Packet.decode(fake_socket.datagrams[0])
        assert packet.header.id == ID.CONTROL
        assert packet.header.packet_type.push
        assert packet.data == b'{"control":{"power":1}}'

    def test_untyped_message_uses_tag(self, conn, fake_socket):
        conn.write_message(ParsedMessage(CustomID(42), {"brightness": 128}))
        assert fake_socket.datagrams[0][3] == 42

    def test_serialization_error_sends_nothing(self, conn, fake_socket):
        with pytest.raises(SerializationError):
            conn.write_message(ParsedMessage(ID.CONTROL, object()))
        assert fake_socket.sent == []

    def test_messages_share_sequence(self, conn, fake_socket):
        conn.write([1, 2, 3])
        conn.write_message(ParsedMessage(ID.CONFIG, None))
        assert [d[1] for d in fake_socket.datagrams] == [1, 2]


class TestIncoming:
    """Tests for the inbound queue"""

    def test_empty(self, conn):
        assert conn.get_incoming() is None

    def test_fifo(self, conn):
        first = Packet.from_data(Header(sequence_number=1), b"a")
        second = Packet.from_data(Header(sequence_number=2), b"b")
        conn.deliver(first)
        conn.deliver(second)
        assert conn.get_incoming() is first
        assert conn.get_incoming() is second
        assert conn.get_incoming() is None


class TestSocketOwnership:
    def test_given_socket_not_closed(self, fake_socket):
        with Connection("127.0.0.1", sock=fake_socket):
            pass
        assert not fake_socket.closed

    def test_own_socket_closed(self):
        conn = Connection("127.0.0.1")
        conn.close()
        assert conn._socket.fileno() == -1


class TestLoopback:
    """Tests over a real UDP socket"""

    def test_conn(self, display_socket):
        with Connection(display_socket.getsockname()) as conn:
            conn.write([255, 0, 0, 255, 0, 0, 255, 0, 0])
            data, _ = display_socket.recvfrom(1500)
        assert data == bytes(
            [0x41, 0x01, 0x0D, 0x01, 0, 0, 0, 0, 0x00, 0x09]
            + [0xFF, 0x00, 0x00, 0xFF, 0x00, 0x00, 0xFF, 0x00, 0x00]
        )

    def test_chunking(self, display_socket):
        client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        client.bind(("127.0.0.1", 0))
        try:
            conn = Connection(display_socket.getsockname(), sock=client)
            conn.write(bytes([128]) * 2000)
            sizes = [len(display_socket.recvfrom(1500)[0]) for _ in range(2)]
        finally:
            client.close()
        assert sizes == [1450, 570]
