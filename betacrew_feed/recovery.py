"""
BetaCrew Recovery Orchestrator Module
=====================================

Runs the complete client procedure:

    idle -> streaming_all -> gap_analysis -> recovering -> finalizing -> done

1. Stream every packet from the server (one connection).
2. Compute missing sequences in [1, max sequence seen].
3. Request each missing sequence, strictly one at a time in ascending
   order, each on its own connection. A failed recovery is logged and the
   loop moves on; nothing is retried. Sequences that already arrived as
   extra packets of an earlier resend reply are not requested again.
4. Sort the collected packets, check completeness and hand them to the saver.

At most one connection is open at any time. The collector and tracker are
owned by the orchestrator instance; nothing is shared between runs.
"""

import logging
from typing import Dict, List, Optional

from betacrew_feed.data_collector import PacketCollector
from betacrew_feed.packet_receiver import PacketReceiver
from betacrew_feed.saver import DataSaver
from betacrew_feed.sequence_tracker import SequenceTracker

logger = logging.getLogger(__name__)


class RecoveryOrchestrator:
    """Sequences the stream-all phase and the per-packet recovery runs."""

    STATE_IDLE = 'idle'
    STATE_STREAMING_ALL = 'streaming_all'
    STATE_GAP_ANALYSIS = 'gap_analysis'
    STATE_RECOVERING = 'recovering'
    STATE_FINALIZING = 'finalizing'
    STATE_DONE = 'done'

    def __init__(self, receiver: PacketReceiver, saver: Optional[DataSaver] = None):
        """
        Args:
            receiver: Session controller used for every connection
            saver: Persistence collaborator; output is not written if None
        """
        self.receiver = receiver
        self.saver = saver
        self.collector = PacketCollector()
        self.tracker = SequenceTracker()
        self.state = self.STATE_IDLE

    def _transition(self, state: str):
        logger.debug(f"Recovery state: {self.state} -> {state}")
        self.state = state

    def run(self) -> Dict:
        """
        Execute the full procedure once.

        Returns:
            Result dictionary:
            {
                'packets': [...],          # ordered by sequence
                'complete': bool,          # sequences are exactly 1..count
                'max_sequence': int,       # highest sequence seen while streaming
                'missing': [int, ...],     # gaps detected after streaming
                'recovered': [int, ...],
                'failed': [int, ...],
                'stream_error': str or None,
                'output_path': Path or None
            }

        Raises:
            OSError: If the initial stream connection cannot be established
            RuntimeError: If run() is called a second time
        """
        if self.state != self.STATE_IDLE:
            raise RuntimeError(f"Orchestrator already used (state={self.state})")

        self._transition(self.STATE_STREAMING_ALL)
        summary = self.receiver.stream_all(self.collector, self.tracker)

        self._transition(self.STATE_GAP_ANALYSIS)
        max_sequence = self.tracker.max_sequence
        missing = self.tracker.missing_up_to(max_sequence)
        logger.info(f"Detected {len(missing)} missing sequences: {', '.join(map(str, missing))}")

        recovered: List[int] = []
        failed: List[int] = []
        if missing:
            self._transition(self.STATE_RECOVERING)
            logger.info("Requesting missing packets...")
            for sequence in missing:
                if sequence in self.collector:
                    logger.info(f"Sequence {sequence} already arrived with an earlier resend")
                    recovered.append(sequence)
                elif self._recover(sequence):
                    recovered.append(sequence)
                else:
                    failed.append(sequence)

        self._transition(self.STATE_FINALIZING)
        packets = self.collector.sorted_packets()
        complete = self.collector.is_contiguous()
        if complete:
            logger.info("All packet sequences received successfully")
        else:
            logger.warning("Warning: There may still be missing sequences in the output")

        output_path = None
        if self.saver is not None:
            output_path = self.saver.save_packets(packets)

        self._transition(self.STATE_DONE)
        return {
            'packets': packets,
            'complete': complete,
            'max_sequence': max_sequence,
            'missing': missing,
            'recovered': recovered,
            'failed': failed,
            'stream_error': summary.get('error'),
            'output_path': output_path
        }

    def _recover(self, sequence: int) -> bool:
        """Run one recovery to completion. True if the sequence is now collected."""
        packet = self.receiver.recover_packet(sequence, self.collector)
        if packet is None:
            return False

        if packet['sequence'] != sequence:
            logger.warning(f"Requested sequence {sequence} but received {packet['sequence']}")

        if self.collector.add_if_missing(packet):
            self.tracker.record_observed(packet['sequence'])
            logger.info(f"Received missing packet with sequence: {packet['sequence']}")

        return sequence in self.collector
