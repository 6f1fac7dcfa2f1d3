"""
BetaCrew Packet Collector Module
================================

Holds every packet obtained during one client run, keyed by sequence.

Responsibilities:
- Store packets from the stream-all phase (unconditionally)
- Merge packets from recovery runs (only if the sequence is new)
- Produce the final list ordered by sequence
- Completeness check: sequences must form the run 1..count
- Statistics tracking (stored, duplicates, recovered, ignored)

Sequence numbers are unique by construction: the store is a dict keyed by
sequence, so a repeated sequence can never produce two entries.
"""

import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class PacketCollector:
    """
    Sequence-keyed store of decoded packets.

    Grows monotonically for the lifetime of one run. Owned by a single
    RecoveryOrchestrator.
    """

    def __init__(self):
        self._packets: Dict[int, Dict] = {}
        self.stats = {
            'packets_stored': 0,
            'duplicates_replaced': 0,
            'packets_recovered': 0,
            'duplicates_ignored': 0
        }

    def add(self, packet: Dict):
        """
        Store a packet from the stream-all phase.

        A packet whose sequence is already present replaces the stored one
        and is counted as a duplicate.
        """
        sequence = packet['sequence']
        if sequence in self._packets:
            self.stats['duplicates_replaced'] += 1
            logger.warning(f"Duplicate sequence {sequence} in stream - keeping latest packet")
        else:
            self.stats['packets_stored'] += 1
        self._packets[sequence] = packet

    def add_if_missing(self, packet: Dict) -> bool:
        """
        Store a recovered packet unless its sequence is already present.

        Returns:
            True if the packet was stored, False if it was ignored
        """
        sequence = packet['sequence']
        if sequence in self._packets:
            self.stats['duplicates_ignored'] += 1
            logger.debug(f"Ignoring already collected sequence {sequence}")
            return False

        self._packets[sequence] = packet
        self.stats['packets_stored'] += 1
        self.stats['packets_recovered'] += 1
        return True

    def get(self, sequence: int) -> Optional[Dict]:
        return self._packets.get(sequence)

    def sorted_packets(self) -> List[Dict]:
        """All packets ordered by ascending sequence."""
        return [self._packets[seq] for seq in sorted(self._packets)]

    def is_contiguous(self) -> bool:
        """
        Check that the collected sequences are exactly 1..count.

        An empty collector is trivially contiguous.
        """
        return all(seq == index for index, seq in enumerate(sorted(self._packets), start=1))

    def __contains__(self, sequence: int) -> bool:
        return sequence in self._packets

    def __len__(self) -> int:
        return len(self._packets)

    def get_stats(self) -> Dict:
        """Get collector statistics."""
        return self.stats.copy()
