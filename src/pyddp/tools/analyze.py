#!/usr/bin/env python3
"""Analyze DDP traffic in a pcap/pcapng capture."""

from __future__ import annotations

import argparse
import sys
from collections import Counter
from dataclasses import dataclass, field

from scapy.layers.inet import IP, UDP
from scapy.utils import rdpcap

from pyddp.fragment import MAX_SEQUENCE
from pyddp.message import ParsedMessage, UnparsedMessage
from pyddp.packet import Packet
from pyddp.protocol import DEFAULT_PORT, CustomID


@dataclass
class CaptureSummary:
    """Aggregate statistics over a stream of DDP packets."""

    packets: int = 0
    payload_bytes: int = 0
    frames: int = 0
    replies: int = 0
    ids: Counter = field(default_factory=Counter)
    gaps: list[tuple[int, int, int]] = field(default_factory=list)


def next_sequence(seq: int) -> int:
    return 1 if seq >= MAX_SEQUENCE else seq + 1


def sequence_gaps(seqs: list[int]) -> list[tuple[int, int, int]]:
    """Find breaks in a sequence number stream.

    Sequence number 0 means "not tracked" and is skipped.

    Args:
        seqs: Sequence numbers in capture order

    Returns:
        List of (index, expected, actual) for every unexpected sequence number
    """
    gaps = []
    expected = None
    for i, seq in enumerate(seqs):
        if seq == 0:
            continue
        if expected is not None and seq != expected:
            gaps.append((i, expected, seq))
        expected = next_sequence(seq)
    return gaps


def id_name(ident) -> str:
    if isinstance(ident, CustomID):
        return f"CUSTOM({ident.value})"
    return ident.name


def summarize(packets: list[Packet]) -> CaptureSummary:
    """Summarize decoded packets.

    Replies are excluded from the sequence gap check since they come from a
    different sender.
    """
    summary = CaptureSummary()
    seqs = []
    for packet in packets:
        summary.packets += 1
        summary.payload_bytes += len(packet.data)
        summary.ids[id_name(packet.header.id)] += 1
        if packet.header.packet_type.reply:
            summary.replies += 1
            continue
        seqs.append(packet.header.sequence_number)
        if packet.header.packet_type.push:
            summary.frames += 1
    summary.gaps = sequence_gaps(seqs)
    return summary


def format_packet(num: int, packet: Packet, verbose: bool = False) -> list[str]:
    """Format one packet as printable lines."""
    h = packet.header
    flags = "".join(
        c if on else "-"
        for c, on in (
            ("T", h.packet_type.timecode),
            ("S", h.packet_type.storage),
            ("R", h.packet_type.reply),
            ("Q", h.packet_type.query),
            ("P", h.packet_type.push),
        )
    )
    lines = [
        f"[#{num}] v{h.packet_type.version} {flags} seq={h.sequence_number:2d} "
        f"id={id_name(h.id)} offset={h.offset} len={h.length} "
        f"type={h.pixel_config.data_type.name}/{h.pixel_config.data_size.bits}"
    ]
    if h.length != len(packet.data):
        lines.append(f"  [!] Length field {h.length} != payload {len(packet.data)}")
    if h.timecode is not None:
        lines.append(f"  Timecode: {h.timecode}")
    if packet.parsed is not None:
        if isinstance(packet.parsed, ParsedMessage):
            lines.append(f"  → Untyped JSON: {packet.parsed.value!r}")
        elif isinstance(packet.parsed, UnparsedMessage):
            lines.append(f"  → Text: {packet.parsed.text!r}")
        else:
            lines.append(f"  → {type(packet.parsed).__name__}: {packet.parsed.model_dump_json()}")
    if verbose:
        if len(packet.data) <= 16:
            lines.append(f"  Raw: {packet.data.hex(' ')}")
        else:
            lines.append(f"  Raw: {packet.data[:16].hex(' ')} ... (truncated)")
    return lines


def read_ddp_packets(path: str, port: int = DEFAULT_PORT) -> list[Packet]:
    """Extract and decode DDP datagrams to or from a UDP port."""
    packets = []
    for p in rdpcap(path):
        if IP not in p or UDP not in p:
            continue
        udp = p[UDP]
        if port not in (udp.sport, udp.dport):
            continue
        packets.append(Packet.decode(bytes(udp.payload)))
    return packets


def main():
    parser = argparse.ArgumentParser(description="Decode DDP datagrams from a pcap/pcapng file")
    parser.add_argument("pcap", help="Path to pcap/pcapng file")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help=f"DDP UDP port (default: {DEFAULT_PORT})"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show payload hex dumps")
    args = parser.parse_args()

    print(f"[*] Reading {args.pcap}...")
    try:
        packets = read_ddp_packets(args.pcap, args.port)
    except (OSError, ValueError) as e:
        print(f"[!] Error reading pcap: {e}")
        sys.exit(1)

    print("=" * 80)
    for num, packet in enumerate(packets):
        for line in format_packet(num, packet, verbose=args.verbose):
            print(line)

    summary = summarize(packets)
    print("=" * 80)
    print(f"Packets:       {summary.packets}")
    print(f"Payload bytes: {summary.payload_bytes}")
    print(f"Frames (push): {summary.frames}")
    print(f"Replies:       {summary.replies}")
    print("Ids:           " + ", ".join(f"{k}={v}" for k, v in summary.ids.most_common()))
    if summary.gaps:
        print(f"Sequence gaps: {len(summary.gaps)}")
        for index, expected, actual in summary.gaps:
            print(f"  data packet #{index}: expected {expected}, got {actual}")
    else:
        print("Sequence gaps: none")


if __name__ == "__main__":
    main()
