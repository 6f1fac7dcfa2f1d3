"""
BetaCrew Sequence Tracker and Packet Collector Tests
====================================================

Test Coverage:
- Idempotent sequence recording
- Missing sequence computation against max sequence
- Collector uniqueness (stream replaces, recovery ignores)
- Sorted output and completeness check
"""

import unittest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from betacrew_feed.sequence_tracker import SequenceTracker
from betacrew_feed.data_collector import PacketCollector


def make_packet(sequence: int, symbol: str = 'AAPL') -> dict:
    return {'symbol': symbol, 'side': 'B', 'quantity': 100, 'price': 1500, 'sequence': sequence}


class TestSequenceTracker(unittest.TestCase):
    """Test gap detection."""

    def test_missing_single_gap(self):
        """Observed {1,2,4,5} up to 5 -> [3]."""
        tracker = SequenceTracker()
        for seq in (1, 2, 4, 5):
            tracker.record_observed(seq)

        self.assertEqual(tracker.missing_up_to(5), [3])

    def test_missing_matches_set_difference(self):
        """Missing list is {1..max} minus observed, ascending."""
        observed = {2, 3, 7, 11, 12}
        tracker = SequenceTracker()
        for seq in observed:
            tracker.record_observed(seq)

        for max_seq in (0, 1, 5, 12, 15):
            with self.subTest(max_seq=max_seq):
                expected = sorted(set(range(1, max_seq + 1)) - observed)
                self.assertEqual(tracker.missing_up_to(max_seq), expected)

    def test_no_gaps(self):
        """A contiguous run has nothing missing."""
        tracker = SequenceTracker()
        for seq in range(1, 6):
            tracker.record_observed(seq)
        self.assertEqual(tracker.missing_up_to(5), [])

    def test_empty_tracker(self):
        """Nothing observed means max 0 and no gaps."""
        tracker = SequenceTracker()
        self.assertEqual(tracker.max_sequence, 0)
        self.assertEqual(tracker.missing_up_to(tracker.max_sequence), [])

    def test_record_observed_idempotent(self):
        """Recording the same sequence twice keeps one entry."""
        tracker = SequenceTracker()
        tracker.record_observed(4)
        tracker.record_observed(4)

        self.assertEqual(len(tracker), 1)
        self.assertIn(4, tracker)
        self.assertEqual(tracker.max_sequence, 4)

    def test_trailing_drop_undetectable(self):
        """A dropped final packet is not reported (max is what was seen)."""
        tracker = SequenceTracker()
        for seq in (1, 2, 3):
            tracker.record_observed(seq)
        self.assertEqual(tracker.missing_up_to(tracker.max_sequence), [])


class TestPacketCollector(unittest.TestCase):
    """Test the sequence-keyed packet store."""

    def test_add_duplicate_does_not_duplicate(self):
        """Stream duplicates replace instead of adding a second entry."""
        collector = PacketCollector()
        collector.add(make_packet(1, 'AAPL'))
        collector.add(make_packet(1, 'MSFT'))

        self.assertEqual(len(collector), 1)
        self.assertEqual(collector.get(1)['symbol'], 'MSFT')
        self.assertEqual(collector.get_stats()['duplicates_replaced'], 1)

    def test_add_if_missing_ignores_known(self):
        """Recovered packets never overwrite collected ones."""
        collector = PacketCollector()
        collector.add(make_packet(2, 'AAPL'))

        self.assertFalse(collector.add_if_missing(make_packet(2, 'MSFT')))
        self.assertEqual(collector.get(2)['symbol'], 'AAPL')
        self.assertTrue(collector.add_if_missing(make_packet(1)))
        self.assertEqual(len(collector), 2)
        self.assertEqual(collector.get_stats()['packets_recovered'], 1)

    def test_sorted_packets(self):
        """Output is ordered by sequence regardless of arrival order."""
        collector = PacketCollector()
        for seq in (5, 1, 4, 2, 3):
            collector.add(make_packet(seq))

        self.assertEqual([p['sequence'] for p in collector.sorted_packets()], [1, 2, 3, 4, 5])

    def test_contiguous(self):
        """1..count without gaps is complete."""
        collector = PacketCollector()
        for seq in (3, 1, 2):
            collector.add(make_packet(seq))
        self.assertTrue(collector.is_contiguous())

    def test_not_contiguous(self):
        """A gap or a run not starting at 1 is incomplete."""
        with_gap = PacketCollector()
        for seq in (1, 3):
            with_gap.add(make_packet(seq))
        self.assertFalse(with_gap.is_contiguous())

        not_from_one = PacketCollector()
        for seq in (2, 3):
            not_from_one.add(make_packet(seq))
        self.assertFalse(not_from_one.is_contiguous())

    def test_empty_is_contiguous(self):
        self.assertTrue(PacketCollector().is_contiguous())


if __name__ == '__main__':
    unittest.main(verbosity=2)
