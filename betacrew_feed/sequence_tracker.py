"""
BetaCrew Sequence Tracker Module
================================

Tracks observed packet sequences and computes gaps.

Sequences are 1-based and contiguous on the server side, so every integer
in [1, max_seq] that was never observed is a gap.

Blind spot: gaps are measured against the highest sequence seen during the
stream-all phase. If the last packet in server order was dropped, nothing
indicates that it existed and it is not reported as missing.
"""

import logging
from typing import List, Set

logger = logging.getLogger(__name__)


class SequenceTracker:
    """Set of observed sequence numbers."""

    def __init__(self):
        self._observed: Set[int] = set()

    def record_observed(self, sequence: int):
        """Mark a sequence as received. Repeated calls have no further effect."""
        self._observed.add(sequence)

    def missing_up_to(self, max_seq: int) -> List[int]:
        """
        List sequences in [1, max_seq] that were never observed.

        Args:
            max_seq: Highest sequence expected (inclusive)

        Returns:
            Missing sequences in ascending order (empty if max_seq < 1)
        """
        missing = [seq for seq in range(1, max_seq + 1) if seq not in self._observed]
        logger.debug(f"Gap analysis up to {max_seq}: {len(missing)} missing")
        return missing

    @property
    def max_sequence(self) -> int:
        """Highest observed sequence, 0 if nothing was observed."""
        return max(self._observed, default=0)

    def __contains__(self, sequence: int) -> bool:
        return sequence in self._observed

    def __len__(self) -> int:
        return len(self._observed)
