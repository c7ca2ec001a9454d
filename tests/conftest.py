from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from confluent_kafka import KafkaException, TopicPartition

from k2cli.errors import TransientBrokerError
from k2cli.models import ClusterInfo, PartitionInfo, Record, TopicInfo
from k2cli.sink import MessageSink

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)


def make_record(partition: int, offset: int, timestamp: Optional[int] = None,
                topic: str = "orders", payload: bytes = b"x") -> Record:
    return Record(
        topic=topic,
        partition=partition,
        offset=offset,
        timestamp=NOW_MS - 60_000 + offset if timestamp is None else timestamp,
        payload=payload,
    )


class FakeBroker:
    """
    In-memory stand-in for BrokerClient.

    ``logs`` maps partition → list of records (index == offset). poll() hands
    out records round-robin across assigned partitions starting at the
    assigned offsets; ``script`` entries, when present, are returned first
    (None = empty poll, Exception instance = raised).
    """

    def __init__(self, topic: str = "orders", logs: Optional[Dict[int, List[Record]]] = None) -> None:
        self.topic = topic
        self.logs: Dict[int, List[Record]] = logs if logs is not None else {}
        self.script: List[object] = []
        self.calls: List[Tuple[str, object]] = []
        self.positions: Dict[int, int] = {}
        self.acked: List[Record] = []
        self.subscribed: List[str] = []
        self.metadata_error: Optional[Exception] = None
        self.translate_error: Optional[Exception] = None
        self.watermark_error: Optional[Exception] = None
        self.closed = False

    # ---- metadata / offsets ----

    def fetch_metadata(self, topic, timeout):
        self.calls.append(("fetch_metadata", (topic, timeout)))
        if self.metadata_error is not None:
            raise self.metadata_error
        partitions = tuple(PartitionInfo(id=p, leader=1, replicas=(1,), isrs=(1,)) for p in sorted(self.logs))
        return ClusterInfo(
            topics={self.topic: TopicInfo(name=self.topic, partitions=partitions)},
            broker_count=1,
            orig_broker_id=1,
            orig_broker_name="localhost:9092/1",
        )

    def translate_times(self, partitions, timeout=None):
        self.calls.append(("translate_times", ([(tp.partition, tp.offset) for tp in partitions], timeout)))
        if self.translate_error is not None:
            raise self.translate_error
        out = []
        for tp in partitions:
            offset = -1
            for rec in self.logs.get(tp.partition, []):
                if rec.timestamp is not None and rec.timestamp >= tp.offset:
                    offset = rec.offset
                    break
            out.append(TopicPartition(tp.topic, tp.partition, offset))
        return out

    def fetch_watermarks(self, topic, partition, timeout):
        self.calls.append(("fetch_watermarks", (topic, partition)))
        if self.watermark_error is not None:
            raise self.watermark_error
        return 0, len(self.logs.get(partition, []))

    # ---- consumption ----

    def assign(self, assignment):
        self.calls.append(("assign", [(s.partition, s.offset) for s in assignment.starts]))
        for s in assignment.starts:
            high = len(self.logs.get(s.partition, []))
            if s.offset <= -2000:
                self.positions[s.partition] = max(0, high - (-2000 - s.offset))
            elif s.offset < 0:
                self.positions[s.partition] = high
            else:
                self.positions[s.partition] = s.offset

    def _next(self) -> Optional[Record]:
        for p in sorted(self.positions):
            pos = self.positions[p]
            log = self.logs.get(p, [])
            if pos < len(log):
                self.positions[p] = pos + 1
                return log[pos]
        return None

    def poll(self, timeout):
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, Exception):
                raise item
            if item is not None:
                return item
            return None
        return self._next()

    def subscribe(self, topics):
        self.subscribed = list(topics)
        for p in self.logs:
            self.positions.setdefault(p, 0)

    def receive(self, timeout):
        return self.poll(timeout)

    def acknowledge(self, record):
        self.acked.append(record)

    def close(self):
        self.closed = True


@pytest.fixture
def out() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def sink(out) -> MessageSink:
    return MessageSink(stream=out)


@pytest.fixture
def single_partition_broker() -> FakeBroker:
    return FakeBroker(logs={0: [make_record(0, i) for i in range(100)]})


@pytest.fixture
def kafka_error() -> KafkaException:
    return KafkaException("broker down")


@pytest.fixture
def transient() -> TransientBrokerError:
    return TransientBrokerError("Broker: Leader not available")
