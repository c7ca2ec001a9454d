"""
Plain data types shared by the consumption engine.

The engine never touches confluent-kafka ``Message`` / metadata objects
directly: the broker client converts them into the snapshots below, which keeps
the engine testable against an in-memory fake broker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from confluent_kafka import TIMESTAMP_NOT_AVAILABLE, Message, TopicPartition


@dataclass(frozen=True)
class Record:
    """One fetched record with the metadata the sink needs."""

    topic: str
    partition: int
    offset: int
    timestamp: Optional[int]  # epoch millis; None when the broker has none
    key: Optional[bytes] = None
    payload: Optional[bytes] = None
    headers: Tuple[Tuple[str, Optional[bytes]], ...] = ()

    @classmethod
    def from_message(cls, msg: Message) -> "Record":
        ts_type, ts = msg.timestamp()
        return cls(
            topic=msg.topic(),
            partition=msg.partition(),
            offset=msg.offset(),
            timestamp=None if ts_type == TIMESTAMP_NOT_AVAILABLE else ts,
            key=msg.key(),
            payload=msg.value(),
            headers=tuple(msg.headers() or ()),
        )


@dataclass(frozen=True)
class PartitionInfo:
    id: int
    leader: int = -1
    replicas: Tuple[int, ...] = ()
    isrs: Tuple[int, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True)
class TopicInfo:
    name: str
    partitions: Tuple[PartitionInfo, ...] = ()
    error: Optional[str] = None

    @property
    def partition_ids(self) -> List[int]:
        return sorted(p.id for p in self.partitions)


@dataclass(frozen=True)
class ClusterInfo:
    topics: Dict[str, TopicInfo] = field(default_factory=dict)
    broker_count: int = 0
    orig_broker_id: int = -1
    orig_broker_name: str = ""


@dataclass(frozen=True)
class PartitionStart:
    partition: int
    offset: int


@dataclass(frozen=True)
class PartitionAssignment:
    """
    Where consumption starts, per partition of one topic.

    Created once by the offset translator and never mutated afterwards.
    Offsets may be librdkafka logical offsets (e.g. OFFSET_END or a tail
    offset) as well as concrete positions.
    """

    topic: str
    starts: Tuple[PartitionStart, ...]

    @property
    def partitions(self) -> List[int]:
        return [s.partition for s in self.starts]

    def offset_for(self, partition: int) -> int:
        for s in self.starts:
            if s.partition == partition:
                return s.offset
        raise KeyError(partition)

    def topic_partitions(self) -> List[TopicPartition]:
        return [TopicPartition(self.topic, s.partition, s.offset) for s in self.starts]


@dataclass(frozen=True)
class WatermarkSnapshot:
    """(low, high) per partition, captured once before the poll loop starts."""

    marks: Dict[int, Tuple[int, int]]

    def high(self, partition: int) -> int:
        return self.marks[partition][1]

    def is_empty(self, partition: int) -> bool:
        low, high = self.marks[partition]
        return high <= low
