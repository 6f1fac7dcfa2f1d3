"""
BetaCrew Packet Decoder Module
==============================

Encodes request frames and decodes fixed-width trade packets of the
BetaCrew exchange feed.

Request Frame (2 bytes, client -> server):
- Offset 0: Call type (int8) - 1 = stream all packets, 2 = resend one packet
- Offset 1: Resend sequence (int8) - 0 for call type 1

Response Packet (17 bytes, server -> client, Big-Endian):
- Offset 0-3:   Symbol (4 bytes ASCII, NUL-padded)
- Offset 4:     Buy/sell indicator (1 byte ASCII, 'B' or 'S')
- Offset 5-8:   Quantity (int32)
- Offset 9-12:  Price (int32)
- Offset 13-16: Packet sequence (int32)

There is no length prefix or packet count on the wire: a response is a plain
concatenation of 17-byte packets.

Limitation: the resend parameter is a single byte, so only sequences
0-127 can be requested individually (the byte is a signed int8).
"""

import struct
import logging
from typing import Dict

logger = logging.getLogger(__name__)

CALL_TYPE_STREAM_ALL = 1
CALL_TYPE_RESEND_PACKET = 2

REQUEST_SIZE = 2
MAX_RESEND_SEQUENCE = 127

# symbol, side, quantity, price, sequence
PACKET_FORMAT = '>4s1siii'
PACKET_SIZE = struct.calcsize(PACKET_FORMAT)  # 17 bytes

VALID_SIDES = ('B', 'S')


class MalformedPacketError(ValueError):
    """Raised when a complete 17-byte slice does not hold a valid packet."""


def encode_request(call_type: int, param: int = 0) -> bytes:
    """
    Build a 2-byte request frame.

    Args:
        call_type: CALL_TYPE_STREAM_ALL or CALL_TYPE_RESEND_PACKET
        param: Sequence to resend (0 for stream all)

    Returns:
        2-byte frame ready to write to the socket

    Raises:
        ValueError: If call_type or param does not fit a signed byte
                    (-128..127)
    """
    try:
        return struct.pack('>bb', call_type, param)
    except struct.error as e:
        raise ValueError(
            f"Request does not fit the 2-byte frame: call_type={call_type}, param={param} ({e})"
        ) from e


def decode_packet(buffer: bytes) -> Dict:
    """
    Decode one packet from the start of a buffer.

    Only the first PACKET_SIZE bytes are read. Callers must never pass a
    shorter buffer.

    Args:
        buffer: At least 17 bytes of packet data

    Returns:
        Dictionary with symbol, side, quantity, price and sequence

    Raises:
        ValueError: If buffer is shorter than PACKET_SIZE
        MalformedPacketError: If the bytes do not form a valid packet
    """
    if len(buffer) < PACKET_SIZE:
        raise ValueError(f"Packet buffer too short: {len(buffer)} < {PACKET_SIZE} bytes")

    raw_symbol, raw_side, quantity, price, sequence = struct.unpack_from(PACKET_FORMAT, buffer)

    try:
        symbol = raw_symbol.decode('ascii').replace('\x00', '')
        side = raw_side.decode('ascii').replace('\x00', '')
    except UnicodeDecodeError as e:
        raise MalformedPacketError(f"Non-ASCII text field in packet {bytes(buffer[:PACKET_SIZE]).hex()}") from e

    if side not in VALID_SIDES:
        raise MalformedPacketError(f"Invalid buy/sell indicator {side!r} in packet {bytes(buffer[:PACKET_SIZE]).hex()}")

    # Sequences are 1-based
    if sequence < 1:
        raise MalformedPacketError(f"Invalid packet sequence {sequence}")

    packet = {
        'symbol': symbol,
        'side': side,
        'quantity': quantity,
        'price': price,
        'sequence': sequence
    }
    logger.debug(f"Decoded packet: {packet}")
    return packet


def encode_packet(packet: Dict) -> bytes:
    """
    Encode a packet dictionary into its 17-byte wire form.

    Symbols shorter than 4 characters are right-padded with NUL bytes.
    """
    symbol = packet['symbol'].encode('ascii')
    if len(symbol) > 4:
        raise ValueError(f"Symbol longer than 4 characters: {packet['symbol']!r}")

    return struct.pack(
        PACKET_FORMAT,
        symbol.ljust(4, b'\x00'),
        packet['side'].encode('ascii'),
        packet['quantity'],
        packet['price'],
        packet['sequence']
    )
