"""
BetaCrew Stream Decoder Module
==============================

Turns an arbitrarily chunked TCP byte stream into decoded packets.

TCP delivers bytes, not packets: a single recv() may return half a packet,
several packets, or several packets plus a fragment of the next one. The
decoder keeps the unconsumed tail between calls and emits one packet for
every complete 17-byte slice.

One StreamDecoder belongs to exactly one connection. A new connection must
use a new instance.
"""

import logging
from typing import Dict, List

from betacrew_feed.decoder import PACKET_SIZE, decode_packet

logger = logging.getLogger(__name__)


class StreamDecoder:
    """Accumulates stream bytes and slices them into fixed-width packets."""

    def __init__(self):
        self._buffer = bytearray()
        self.stats = {
            'chunks_fed': 0,
            'bytes_fed': 0,
            'packets_decoded': 0
        }

    def feed(self, chunk: bytes) -> List[Dict]:
        """
        Append a chunk and decode every complete packet now available.

        Args:
            chunk: Bytes exactly as returned by the transport

        Returns:
            Packets decoded from this call, in wire order (may be empty)

        Raises:
            MalformedPacketError: If a complete slice is not a valid packet.
                                  The stream is unusable after this.
        """
        self.stats['chunks_fed'] += 1
        self.stats['bytes_fed'] += len(chunk)
        self._buffer.extend(chunk)

        packets = []
        offset = 0
        while len(self._buffer) - offset >= PACKET_SIZE:
            packets.append(decode_packet(self._buffer[offset:offset + PACKET_SIZE]))
            offset += PACKET_SIZE

        if offset:
            del self._buffer[:offset]

        self.stats['packets_decoded'] += len(packets)
        if packets:
            logger.debug(f"Decoded {len(packets)} packets from {len(chunk)}-byte chunk "
                         f"({len(self._buffer)} bytes pending)")
        return packets

    @property
    def pending(self) -> int:
        """Number of bytes held back waiting for the rest of a packet."""
        return len(self._buffer)

    @property
    def has_partial(self) -> bool:
        return bool(self._buffer)

    def get_stats(self) -> Dict:
        """Get decoder statistics."""
        return self.stats.copy()
