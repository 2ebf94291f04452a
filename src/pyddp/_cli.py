"""CLI application for driving DDP displays.

This module provides a command-line interface for sending images, gradients or
random noise to DDP displays, sending JSON control messages, and running a
console display simulator that renders received pixels in the terminal.
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import socket
import sys
import time
from typing import TYPE_CHECKING

from PIL import Image

from pyddp.connection import Connection
from pyddp.display import FrameBuffer, render_ansi
from pyddp.errors import DDPError
from pyddp.message import ControlRoot, ParsedMessage
from pyddp.packet import Packet
from pyddp.protocol import DEFAULT_PORT, ID

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PIXELS = 100


def parse_rgb_color(color_str: str) -> tuple[int, int, int]:
    """Parse a color string to an RGB tuple.

    Accepts formats:
        - Hex: "#ff8000", "0xff8000" or "ff8000"
        - RGB: "r,g,b" where each is 0-255

    Raises:
        ValueError: If format is invalid
    """
    color_str = color_str.strip()

    if "," in color_str:
        parts = color_str.split(",")
        if len(parts) != 3:
            raise ValueError(f"RGB format requires 3 components, got {len(parts)}")
        r, g, b = (int(p.strip()) for p in parts)
        if not (0 <= r <= 255 and 0 <= g <= 255 and 0 <= b <= 255):
            raise ValueError("RGB values must be 0-255")
        return r, g, b

    for prefix in ("#", "0x", "0X"):
        if color_str.startswith(prefix):
            color_str = color_str[len(prefix) :]
            break
    if len(color_str) != 6:
        raise ValueError("Hex color must have 6 digits")
    value = int(color_str, 16)
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF


def generate_random_pixel_data(num_pixels: int) -> bytes:
    """Generate random RGB pixel data (3 bytes per pixel)."""
    return random.randbytes(num_pixels * 3)


def generate_gradient(
    num_pixels: int,
    start: tuple[int, int, int],
    end: tuple[int, int, int],
    shift: int = 0,
) -> bytes:
    """Generate a linear RGB gradient.

    Args:
        num_pixels: Number of pixels
        start: Color of the first pixel
        end: Color the ramp approaches at the last pixel
        shift: Rotate the ramp by this many pixels (wraps around)

    Returns:
        RGB pixel data (3 bytes per pixel)
    """
    pixel_data = bytearray(num_pixels * 3)
    for i in range(num_pixels):
        t = ((i + shift) % num_pixels) / num_pixels
        for c in range(3):
            pixel_data[i * 3 + c] = round(start[c] + (end[c] - start[c]) * t)
    return bytes(pixel_data)


def load_and_convert_image(image_path: str, width: int, height: int) -> bytes:
    """Load an image, resize it to fit dimensions, and convert to RGB bytes.

    The image is resized to fit within the target dimensions while preserving aspect
    ratio, then center-cropped to the exact size. A strip is a height of 1.

    Args:
        image_path: Path to image file
        width: Target width in pixels
        height: Target height in pixels

    Returns:
        RGB pixel data in row-major order (3 bytes per pixel)
    """
    img_raw = Image.open(image_path)

    img: PILImage
    if img_raw.mode != "RGB":
        img = img_raw.convert("RGB")
    else:
        img = img_raw

    target_aspect = width / height
    img_aspect = img.width / img.height

    if img_aspect > target_aspect:
        # Image is wider - fit by height
        new_height = height
        new_width = max(width, int(height * img_aspect))
    else:
        # Image is taller - fit by width
        new_width = width
        new_height = max(height, int(width / img_aspect))

    img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

    left = (new_width - width) // 2
    top = (new_height - height) // 2
    img = img.crop((left, top, left + width, top + height))

    return img.tobytes()


def send_frames(
    host: str,
    port: int,
    width: int,
    height: int = 1,
    offset: int = 0,
    fps: float = 30.0,
    count: int = 1,
    loop: bool = False,
    image_path: str | None = None,
    gradient: tuple[tuple[int, int, int], tuple[int, int, int]] | None = None,
    verbose: bool = False,
) -> int:
    """Send frames to a display.

    Args:
        host: Display host
        port: Display port
        width: Frame width in pixels
        height: Frame height in pixels (1 for a strip)
        offset: Byte offset to write at
        fps: Frames per second when sending more than one frame
        count: Number of frames to send (ignored with loop)
        loop: Send until interrupted
        image_path: Send this image instead of random noise
        gradient: Send a scrolling (start, end) gradient instead of random noise
        verbose: Print per-frame details

    Returns:
        Exit code (0 for success)
    """
    num_pixels = width * height
    print(f"[*] Sending to {host}:{port} ({num_pixels} pixels, offset {offset})")

    image_data: bytes | None = None
    if image_path:
        print(f"[*] Loading image: {image_path}")
        image_data = load_and_convert_image(image_path, width, height)

    frame_interval = 1.0 / fps if fps > 0 else 0.0

    try:
        with Connection((host, port)) as conn:
            frame = 0
            while loop or frame < count:
                loop_start = time.perf_counter()

                if image_data is not None:
                    pixel_data = image_data
                elif gradient is not None:
                    pixel_data = generate_gradient(num_pixels, *gradient, shift=frame)
                else:
                    pixel_data = generate_random_pixel_data(num_pixels)

                sent = conn.write_offset(pixel_data, offset)
                frame += 1

                if verbose:
                    print(f"  [Frame #{frame}] {sent} bytes, next seq {conn.sequence_number}")

                if loop or frame < count:
                    elapsed = time.perf_counter() - loop_start
                    if frame_interval > elapsed:
                        time.sleep(frame_interval - elapsed)

            print(f"[*] Sent {frame} frame(s)")
            return 0

    except KeyboardInterrupt:
        print("\n[*] Interrupted by user")
        return 0

    except (DDPError, ValueError) as e:
        print(f"\n[!] ERROR: {e}", file=sys.stderr)
        return 1


def send_control(host: str, port: int, body: str, raw: bool = False) -> int:
    """Send a JSON body to a display's control id.

    Args:
        host: Display host
        port: Display port
        body: JSON text; validated as a control message unless raw
        raw: Send the JSON untyped under the control id

    Returns:
        Exit code (0 for success)
    """
    try:
        if raw:
            message = ParsedMessage(ID.CONTROL, json.loads(body))
        else:
            message = ControlRoot.model_validate_json(body)
    except ValueError as e:
        print(f"[!] Error: Invalid control message: {e}", file=sys.stderr)
        return 1

    try:
        with Connection((host, port)) as conn:
            sent = conn.write_message(message)
    except DDPError as e:
        print(f"[!] ERROR: {e}", file=sys.stderr)
        return 1

    print(f"[*] Sent control message ({sent} bytes)")
    return 0


def serve(bind: str, port: int, num_pixels: int, channels: int = 3, verbose: bool = False) -> int:
    """Run a console display simulator.

    Args:
        bind: Local address to listen on
        port: Local port to listen on
        num_pixels: Number of pixels to render
        channels: Bytes per pixel (1, 3 or 4)
        verbose: Log every packet

    Returns:
        Exit code (0 for success)
    """
    frame = FrameBuffer(num_pixels, channels)
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    try:
        sock.bind((bind, port))
        print(f"[*] DDP console display listening on {bind}:{port} ({num_pixels} pixels)")

        while True:
            try:
                data, src = sock.recvfrom(2048)
            except OSError as e:
                print(f"\n[!] Error receiving packet: {e}", file=sys.stderr)
                continue

            packet = Packet.decode(data)
            if verbose:
                logger.debug(
                    "%s:%d seq=%d offset=%d len=%d push=%s",
                    src[0],
                    src[1],
                    packet.header.sequence_number,
                    packet.header.offset,
                    len(packet.data),
                    packet.header.packet_type.push,
                )

            if frame.apply(packet):
                sys.stdout.write(render_ansi(frame))
                sys.stdout.flush()

    except KeyboardInterrupt:
        print("\n\x1b[0m[*] Interrupted by user")
        return 0

    except OSError as e:
        print(f"[!] ERROR: {e}", file=sys.stderr)
        return 1

    finally:
        sock.close()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Stream pixels and control messages to DDP displays",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed packet info")
    subparsers = parser.add_subparsers(dest="command", required=True)

    send_parser = subparsers.add_parser("send", help="Send pixel frames")
    send_parser.add_argument("--host", default=DEFAULT_HOST, help=f"Display IP (default: {DEFAULT_HOST})")
    send_parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help=f"Display port (default: {DEFAULT_PORT})"
    )
    send_parser.add_argument(
        "--pixels",
        type=int,
        default=DEFAULT_PIXELS,
        help=f"Frame width in pixels (default: {DEFAULT_PIXELS})",
    )
    send_parser.add_argument(
        "--height", type=int, default=1, help="Frame height for matrix displays (default: 1)"
    )
    send_parser.add_argument(
        "--offset", type=int, default=0, help="Byte offset to write at (default: 0)"
    )
    send_parser.add_argument("--fps", type=float, default=30.0, help="Frame rate (default: 30)")
    send_parser.add_argument("--count", type=int, default=1, help="Frames to send (default: 1)")
    send_parser.add_argument("--loop", action="store_true", help="Send until interrupted")
    source = send_parser.add_mutually_exclusive_group()
    source.add_argument("--image", type=str, help="Path to image file")
    source.add_argument(
        "--gradient",
        nargs=2,
        metavar=("START", "END"),
        help="Scrolling gradient between two colors (hex or r,g,b)",
    )

    control_parser = subparsers.add_parser("control", help="Send a JSON control message")
    control_parser.add_argument("body", help='JSON body, e.g. \'{"control": {"power": 1}}\'')
    control_parser.add_argument("--host", default=DEFAULT_HOST, help=f"Display IP (default: {DEFAULT_HOST})")
    control_parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help=f"Display port (default: {DEFAULT_PORT})"
    )
    control_parser.add_argument(
        "--raw", action="store_true", help="Send the JSON as-is without schema validation"
    )

    serve_parser = subparsers.add_parser("serve", help="Run a console display simulator")
    serve_parser.add_argument("--bind", default="0.0.0.0", help="Listen address (default: 0.0.0.0)")
    serve_parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help=f"Listen port (default: {DEFAULT_PORT})"
    )
    serve_parser.add_argument(
        "--pixels",
        type=int,
        default=DEFAULT_PIXELS,
        help=f"Pixels to render (default: {DEFAULT_PIXELS})",
    )
    serve_parser.add_argument(
        "--channels", type=int, choices=(1, 3, 4), default=3, help="Bytes per pixel (default: 3)"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    if args.command == "send":
        gradient = None
        if args.gradient:
            try:
                gradient = (parse_rgb_color(args.gradient[0]), parse_rgb_color(args.gradient[1]))
            except ValueError as e:
                print(f"[!] Error: Invalid gradient color: {e}", file=sys.stderr)
                sys.exit(1)
        exit_code = send_frames(
            args.host,
            args.port,
            args.pixels,
            height=args.height,
            offset=args.offset,
            fps=args.fps,
            count=args.count,
            loop=args.loop,
            image_path=args.image,
            gradient=gradient,
            verbose=args.verbose,
        )
    elif args.command == "control":
        exit_code = send_control(args.host, args.port, args.body, raw=args.raw)
    else:
        exit_code = serve(
            args.bind, args.port, args.pixels, channels=args.channels, verbose=args.verbose
        )

    sys.exit(exit_code)
