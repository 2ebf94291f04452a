"""Shared fixtures for pyddp tests."""

import socket

import pytest


class FakeSocket:
    """Records datagrams instead of sending them.

    Args:
        fail_after: Raise OSError on the send after this many successful sends
    """

    family = socket.AF_INET

    def __init__(self, fail_after=None):
        self.sent = []
        self.closed = False
        self.fail_after = fail_after

    def sendto(self, data, address):
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise OSError("Network is unreachable")
        self.sent.append((bytes(data), address))
        return len(data)

    def close(self):
        self.closed = True

    @property
    def datagrams(self):
        return [data for data, _ in self.sent]


@pytest.fixture
def fake_socket():
    return FakeSocket()


@pytest.fixture
def display_socket():
    """A UDP socket on localhost standing in for a display."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(1.0)
    yield sock
    sock.close()
