"""
BetaCrew Packet Receiver Module
===============================

Drives one request/response exchange per TCP connection.

Two operations, each on its own fresh connection:

1. stream_all: send call type 1, decode packets until the server closes the
   connection, store every packet in the collector.
2. recover_packet: send call type 2 for a single sequence, decode until one
   packet arrives (or the server closes), close locally and return it.

Error Handling:
- Initial stream connect failure -> OSError propagates (nothing to recover from)
- Reset/timeout during the stream -> logged, phase ends with partial data
- Any failure during a recovery -> logged, returns None
- Malformed packet -> decoding of the current connection stops
"""

import socket
import logging
from typing import Callable, Dict, Optional

from betacrew_feed.connection import ExchangeConnection, create_connection
from betacrew_feed.data_collector import PacketCollector
from betacrew_feed.decoder import (
    CALL_TYPE_RESEND_PACKET,
    CALL_TYPE_STREAM_ALL,
    MAX_RESEND_SEQUENCE,
    MalformedPacketError,
    encode_request,
)
from betacrew_feed.sequence_tracker import SequenceTracker
from betacrew_feed.stream_decoder import StreamDecoder

logger = logging.getLogger(__name__)


class PacketReceiver:
    """
    Session controller for the BetaCrew exchange protocol.

    Responsibilities:
    - Open exactly one connection per operation and always close it
    - Send the request frame as soon as the connection is up
    - Feed received chunks to a per-connection StreamDecoder
    - Convert transport failures into "nothing received" results
    - Statistics tracking and logging
    """

    def __init__(self, config: dict,
                 connection_factory: Callable[[dict], ExchangeConnection] = create_connection):
        """
        Initialize packet receiver.

        Args:
            config: Configuration dictionary ('server', 'timeout', 'buffer_size')
            connection_factory: Builds an unconnected ExchangeConnection from config
        """
        self.config = config
        self.connection_factory = connection_factory

        self.stats = {
            'connections_opened': 0,
            'bytes_received': 0,
            'packets_received': 0,
            'recovery_requests': 0,
            'recovery_succeeded': 0,
            'recovery_failed': 0,
            'timeouts': 0,
            'malformed_packets': 0,
            'errors': 0
        }

    def stream_all(self, collector: PacketCollector, tracker: SequenceTracker) -> Dict:
        """
        Request every packet from the beginning and collect them.

        Each decoded packet is stored in the collector and its sequence is
        recorded in the tracker. The phase ends when the server closes the
        connection, or early on a transport error or malformed data.

        Args:
            collector: Packet store for this run
            tracker: Sequence tracker for this run

        Returns:
            Summary dict: {'packets': int, 'closed_by_server': bool, 'error': str or None}

        Raises:
            OSError: If the connection cannot be established
        """
        connection = self.connection_factory(self.config)
        connection.connect()
        self.stats['connections_opened'] += 1
        logger.info(f"✓ Connected to BetaCrew exchange server at {connection.host}:{connection.port}")

        summary = {'packets': 0, 'closed_by_server': False, 'error': None}
        decoder = StreamDecoder()

        try:
            connection.send(encode_request(CALL_TYPE_STREAM_ALL))

            while True:
                chunk = connection.receive()
                if not chunk:
                    summary['closed_by_server'] = True
                    logger.info("Connection closed by server")
                    break

                self.stats['bytes_received'] += len(chunk)
                for packet in decoder.feed(chunk):
                    collector.add(packet)
                    tracker.record_observed(packet['sequence'])
                    summary['packets'] += 1
                    self.stats['packets_received'] += 1
                    logger.debug(f"Received packet with sequence: {packet['sequence']}")

        except socket.timeout:
            self.stats['timeouts'] += 1
            summary['error'] = 'timeout'
            logger.error(f"✗ Timed out after {connection.timeout}s waiting for stream data - "
                         f"ending stream with {summary['packets']} packets")

        except MalformedPacketError as e:
            self.stats['malformed_packets'] += 1
            summary['error'] = 'malformed'
            logger.error(f"✗ Malformed packet in stream, abandoning connection: {e}")

        except OSError as e:
            self.stats['errors'] += 1
            summary['error'] = str(e)
            logger.error(f"✗ Connection error: {e}")

        finally:
            connection.disconnect()

        if decoder.has_partial:
            logger.warning(f"Discarding {decoder.pending} trailing bytes of an incomplete packet")

        logger.info(f"Stream phase finished: {summary['packets']} packets received")
        return summary

    def recover_packet(self, sequence: int,
                       collector: Optional[PacketCollector] = None) -> Optional[Dict]:
        """
        Request a single packet by sequence on a new connection.

        The connection is closed locally as soon as one packet has been
        decoded. Further packets decoded from the same chunk are merged into
        the collector when one is given. Never raises for transport conditions.

        Args:
            sequence: Sequence number to resend (0-127)
            collector: Packet store receiving any extra packets of the reply

        Returns:
            The first decoded packet, or None if nothing usable arrived
        """
        self.stats['recovery_requests'] += 1

        if not 0 <= sequence <= MAX_RESEND_SEQUENCE:
            self.stats['recovery_failed'] += 1
            logger.error(f"✗ Cannot request packet {sequence}: resend parameter is a signed byte "
                         f"(max {MAX_RESEND_SEQUENCE})")
            return None

        connection = self.connection_factory(self.config)
        decoder = StreamDecoder()
        packet = None

        try:
            connection.connect()
            self.stats['connections_opened'] += 1
            connection.send(encode_request(CALL_TYPE_RESEND_PACKET, sequence))

            while packet is None:
                chunk = connection.receive()
                if not chunk:
                    logger.warning(f"Server closed connection before sending packet {sequence}")
                    break

                self.stats['bytes_received'] += len(chunk)
                packets = decoder.feed(chunk)
                if packets:
                    packet = packets[0]
                    self.stats['packets_received'] += len(packets)
                    extras = packets[1:]
                    if extras and collector is not None:
                        merged = sum(1 for extra in extras if collector.add_if_missing(extra))
                        logger.info(f"Merged {merged} of {len(extras)} extra packets from resend of {sequence}")
                    elif extras:
                        logger.warning(f"Ignoring {len(extras)} extra packets in resend of {sequence}")

        except socket.timeout:
            self.stats['timeouts'] += 1
            logger.error(f"✗ Timed out requesting packet {sequence}")

        except MalformedPacketError as e:
            self.stats['malformed_packets'] += 1
            logger.error(f"✗ Malformed response requesting packet {sequence}: {e}")

        except OSError as e:
            self.stats['errors'] += 1
            logger.error(f"✗ Error requesting packet {sequence}: {e}")

        finally:
            connection.disconnect()

        if packet is None:
            self.stats['recovery_failed'] += 1
        else:
            self.stats['recovery_succeeded'] += 1
        return packet

    def get_stats(self) -> Dict:
        """Get receiver statistics."""
        return self.stats.copy()

    def log_statistics(self):
        """Log statistics about connections and received packets."""
        logger.info("=" * 60)
        logger.info("PACKET RECEIVER STATISTICS")
        logger.info("=" * 60)
        logger.info(f"Connections Opened:   {self.stats['connections_opened']:,}")
        logger.info(f"Bytes Received:       {self.stats['bytes_received']:,}")
        logger.info(f"Packets Received:     {self.stats['packets_received']:,}")
        logger.info("-" * 60)
        logger.info(f"Recovery Requests:    {self.stats['recovery_requests']:,}")
        logger.info(f"Recovery Succeeded:   {self.stats['recovery_succeeded']:,}")
        logger.info(f"Recovery Failed:      {self.stats['recovery_failed']:,}")
        logger.info("-" * 60)
        logger.info(f"Timeouts:             {self.stats['timeouts']:,}")
        logger.info(f"Malformed Packets:    {self.stats['malformed_packets']:,}")
        logger.info(f"Errors:               {self.stats['errors']:,}")
        logger.info("=" * 60)
