"""
Termination oracle for bounded replay.

Rules, in order, for each received record:
1. event time > window end          → RUN_DONE (record is not presented)
2. otherwise the record is presented; offset >= high - 1 marks its
   partition done                   → PARTITION_DONE
3. otherwise                        → CONTINUE

The run is complete once every assigned partition is done. The watermark
snapshot is a closed bound: data written after it was taken is not chased.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Set

from k2cli.models import PartitionAssignment, Record, WatermarkSnapshot

logger = logging.getLogger(__name__)


class Verdict(enum.Enum):
    CONTINUE = "continue"
    PARTITION_DONE = "partition_done"
    RUN_DONE = "run_done"


@dataclass
class ConsumptionState:
    """Per-run mutable state, owned by the single thread running the loop."""

    messages_read: bool = False
    presented: int = 0
    done: Set[int] = field(default_factory=set)


class TerminationOracle:
    def __init__(
        self,
        window_end_ms: int,
        snapshot: WatermarkSnapshot,
        assignment: PartitionAssignment,
    ) -> None:
        self.window_end_ms = window_end_ms
        self.snapshot = snapshot
        self.partitions: Set[int] = set(assignment.partitions)
        self.state = ConsumptionState()

        for p in sorted(self.partitions):
            start = assignment.offset_for(p)
            high = snapshot.high(p)
            # Nothing to read: empty partition, or the start lies at/after the
            # snapshot tail (-1 = no record at or after the requested time).
            if snapshot.is_empty(p) or start == -1 or start >= high:
                logger.debug("partition %d has nothing to replay (start=%d, high=%d)", p, start, high)
                self.state.done.add(p)

    @property
    def complete(self) -> bool:
        return self.partitions <= self.state.done

    def evaluate(self, record: Record) -> Verdict:
        self.state.messages_read = True

        if record.timestamp is not None and record.timestamp > self.window_end_ms:
            return Verdict.RUN_DONE

        self.state.presented += 1
        if record.partition not in self.partitions or record.partition in self.state.done:
            return Verdict.CONTINUE
        high = self.snapshot.high(record.partition)
        if record.offset >= high - 1:
            self.state.done.add(record.partition)
            logger.debug("partition %d reached watermark %d", record.partition, high)
            return Verdict.PARTITION_DONE
        return Verdict.CONTINUE
