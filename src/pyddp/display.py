"""Receiver-side frame buffer for simulating a DDP display."""

from __future__ import annotations

from typing import Iterator

from pyddp.packet import Packet


class FrameBuffer:
    """Pixel memory of a simulated display.

    Packets are copied in at their header offset. Data past the end of the
    buffer is dropped.
    """

    def __init__(self, num_pixels: int, channels: int = 3) -> None:
        if num_pixels <= 0:
            raise ValueError(f"num_pixels must be positive, got {num_pixels}")
        if channels not in (1, 3, 4):
            raise ValueError(f"channels must be 1, 3 or 4, got {channels}")
        self.num_pixels = num_pixels
        self.channels = channels
        self.data = bytearray(num_pixels * channels)

    def apply(self, packet: Packet) -> bool:
        """Copy a packet's payload into the buffer.

        Args:
            packet: Decoded packet

        Returns:
            True if the packet had the push flag set (frame complete)
        """
        start = packet.header.offset
        if start < len(self.data):
            end = min(start + len(packet.data), len(self.data))
            self.data[start:end] = packet.data[: end - start]
        return packet.header.packet_type.push

    def pixels(self) -> Iterator[tuple[int, int, int]]:
        """Iterate over pixels as RGB tuples.

        Grayscale is expanded to gray RGB; the white channel of RGBW is ignored.
        """
        step = self.channels
        for i in range(0, len(self.data), step):
            if step == 1:
                v = self.data[i]
                yield (v, v, v)
            else:
                yield (self.data[i], self.data[i + 1], self.data[i + 2])

    def clear(self) -> None:
        self.data[:] = bytes(len(self.data))


def render_ansi(frame: FrameBuffer) -> str:
    """Render a frame as one line of 24-bit ANSI colored blocks.

    Args:
        frame: Frame buffer to render

    Returns:
        String starting with a carriage return, ready to write to a terminal
    """
    blocks = "".join(f"\x1b[48;2;{r};{g};{b}m " for r, g, b in frame.pixels())
    return f"\r\x1b[0m{blocks}\x1b[0m "
