"""
BetaCrew Recovery Orchestrator Tests
====================================

End-to-end tests of stream -> gap analysis -> recovery -> finalize against
an in-memory fake exchange.

Test Coverage:
- One recovery run per missing sequence, ascending order
- Failed recoveries leave gaps and do not halt the run
- At most one connection open at any time
- Completeness flag and saver hand-off
- Initial connection failure
"""

import unittest
from unittest.mock import Mock
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from betacrew_feed.decoder import CALL_TYPE_STREAM_ALL, encode_packet
from betacrew_feed.packet_receiver import PacketReceiver
from betacrew_feed.recovery import RecoveryOrchestrator


def make_packet(sequence: int) -> dict:
    return {'symbol': 'AAPL', 'side': 'B' if sequence % 2 else 'S',
            'quantity': sequence * 5, 'price': 1000 + sequence, 'sequence': sequence}


class FakeExchange:
    """
    In-memory exchange: serves the stream from `streamed` and resends from
    `available`. Sequences listed in `failing` refuse the resend connection.
    `bundled` maps a resent sequence to extra sequences sent in the same reply.
    """

    def __init__(self, streamed, available=None, failing=(), refuse_stream=False, bundled=None):
        self.streamed = list(streamed)
        self.available = set(available or ())
        self.bundled = dict(bundled or {})
        self.failing = set(failing)
        self.refuse_stream = refuse_stream
        self.requests = []
        self.open_connections = 0
        self.max_open_connections = 0

    def connection_factory(self, config):
        return FakeConnection(self)


class FakeConnection:
    host = 'fake'
    port = 0
    timeout = 1

    def __init__(self, exchange: FakeExchange):
        self.exchange = exchange
        self.chunks = []
        self.open = False

    def connect(self):
        if self.exchange.refuse_stream and not self.exchange.requests:
            raise ConnectionRefusedError("Connection refused")
        self.open = True
        self.exchange.open_connections += 1
        self.exchange.max_open_connections = max(self.exchange.max_open_connections,
                                                 self.exchange.open_connections)

    def send(self, frame: bytes):
        call_type, param = frame[0], frame[1]
        self.exchange.requests.append((call_type, param))
        if param in self.exchange.failing:
            raise ConnectionResetError("Connection reset by peer")

        if call_type == CALL_TYPE_STREAM_ALL:
            data = b''.join(encode_packet(make_packet(seq)) for seq in self.exchange.streamed)
            # irregular chunking
            self.chunks = [data[i:i + 23] for i in range(0, len(data), 23)] + [b'']
        elif param in self.exchange.available:
            sequences = [param] + list(self.exchange.bundled.get(param, ()))
            self.chunks = [b''.join(encode_packet(make_packet(seq)) for seq in sequences)]
        else:
            self.chunks = [b'']

    def receive(self) -> bytes:
        return self.chunks.pop(0)

    def disconnect(self):
        if self.open:
            self.open = False
            self.exchange.open_connections -= 1


class TestRecoveryOrchestrator(unittest.TestCase):
    """Test the complete client procedure."""

    def setUp(self):
        """Set up test fixtures."""
        self.config = {'timeout': 1}

    def _orchestrator(self, exchange: FakeExchange, saver=None) -> RecoveryOrchestrator:
        receiver = PacketReceiver(self.config, connection_factory=exchange.connection_factory)
        return RecoveryOrchestrator(receiver, saver)

    def test_single_gap_recovered(self):
        """{1,2,4,5} -> one resend for 3 -> complete 1..5."""
        exchange = FakeExchange(streamed=[1, 2, 4, 5], available=[3])
        saver = Mock()
        orchestrator = self._orchestrator(exchange, saver)

        result = orchestrator.run()

        self.assertEqual(exchange.requests, [(1, 0), (2, 3)])
        self.assertEqual(result['missing'], [3])
        self.assertEqual(result['recovered'], [3])
        self.assertEqual(result['failed'], [])
        self.assertTrue(result['complete'])
        self.assertEqual([p['sequence'] for p in result['packets']], [1, 2, 3, 4, 5])
        self.assertEqual(result['packets'][2], make_packet(3))
        saver.save_packets.assert_called_once_with(result['packets'])
        self.assertEqual(orchestrator.state, RecoveryOrchestrator.STATE_DONE)

    def test_failed_recovery_leaves_gap(self):
        """{1,3} with failing resend for 2 -> {1,3}, incomplete."""
        exchange = FakeExchange(streamed=[1, 3], failing=[2])
        result = self._orchestrator(exchange).run()

        self.assertEqual(exchange.requests, [(1, 0), (2, 2)])
        self.assertEqual(result['failed'], [2])
        self.assertFalse(result['complete'])
        self.assertEqual([p['sequence'] for p in result['packets']], [1, 3])

    def test_failures_do_not_halt_recovery(self):
        """Every missing sequence is attempted in ascending order."""
        exchange = FakeExchange(streamed=[1, 6], available=[2, 4, 5], failing=[3])
        result = self._orchestrator(exchange).run()

        self.assertEqual([param for call, param in exchange.requests if call == 2], [2, 3, 4, 5])
        self.assertEqual(result['recovered'], [2, 4, 5])
        self.assertEqual(result['failed'], [3])
        self.assertFalse(result['complete'])

    def test_one_connection_at_a_time(self):
        """No two connections are ever open together."""
        exchange = FakeExchange(streamed=[2, 5, 9], available=[1, 3, 4, 6, 7, 8])
        result = self._orchestrator(exchange).run()

        self.assertTrue(result['complete'])
        self.assertEqual(exchange.max_open_connections, 1)
        self.assertEqual(exchange.open_connections, 0)

    def test_extra_packets_in_resend_fill_later_gaps(self):
        """Extra packets in one resend reply fill later gaps without new requests."""
        exchange = FakeExchange(streamed=[1, 5], available=[2], bundled={2: [3, 4]})
        result = self._orchestrator(exchange).run()

        self.assertEqual([param for call, param in exchange.requests if call == 2], [2])
        self.assertEqual(result['recovered'], [2, 3, 4])
        self.assertEqual(result['failed'], [])
        self.assertTrue(result['complete'])
        self.assertEqual(result['packets'][3], make_packet(4))

    def test_no_gaps_skips_recovery(self):
        """A complete stream goes straight to finalizing."""
        exchange = FakeExchange(streamed=[1, 2, 3])
        result = self._orchestrator(exchange).run()

        self.assertEqual(exchange.requests, [(1, 0)])
        self.assertEqual(result['missing'], [])
        self.assertTrue(result['complete'])
        self.assertIsNone(result['output_path'])

    def test_resend_closed_without_data(self):
        """A resend that returns nothing counts as failed."""
        exchange = FakeExchange(streamed=[1, 3])
        result = self._orchestrator(exchange).run()

        self.assertEqual(result['failed'], [2])

    def test_initial_connection_refused(self):
        """Initial connection failure is raised with nothing recovered."""
        exchange = FakeExchange(streamed=[1], refuse_stream=True)
        orchestrator = self._orchestrator(exchange)

        with self.assertRaises(ConnectionRefusedError):
            orchestrator.run()

        self.assertEqual(orchestrator.state, RecoveryOrchestrator.STATE_STREAMING_ALL)

    def test_mismatched_resend_not_counted(self):
        """A resend answering with another sequence does not fill the gap."""
        def stream_all(collector, tracker):
            for sequence in (1, 3):
                collector.add(make_packet(sequence))
                tracker.record_observed(sequence)
            return {'packets': 2, 'closed_by_server': True, 'error': None}

        receiver = Mock()
        receiver.stream_all.side_effect = stream_all
        receiver.recover_packet.return_value = make_packet(3)

        orchestrator = RecoveryOrchestrator(receiver)
        result = orchestrator.run()

        receiver.recover_packet.assert_called_once_with(2, orchestrator.collector)
        self.assertEqual(result['failed'], [2])
        self.assertEqual(len(result['packets']), 2)

    def test_run_only_once(self):
        """An orchestrator owns one run's state."""
        exchange = FakeExchange(streamed=[1])
        orchestrator = self._orchestrator(exchange)
        orchestrator.run()

        with self.assertRaises(RuntimeError):
            orchestrator.run()


if __name__ == '__main__':
    unittest.main(verbosity=2)
