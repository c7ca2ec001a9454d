"""
Offset translation: turn a Window's start into a per-partition starting offset.

Two paths:
- time-based start → ask the broker (offsets_for_times), TWICE. A single
  lookup against a segment that was just rolled can come back with a
  provisional, earlier offset; the identical second request returns the
  settled answer, and that's the one we keep. The first call honours the
  caller's timeout, the second waits without bound.
- literal tail count N → librdkafka logical offset OFFSET_TAIL(N), resolved by
  the client itself once the partition is assigned. No extra round trip.

Every failure here is fatal: we never start a partial replay.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from confluent_kafka import KafkaException, TopicPartition

from k2cli.errors import NoPartitions, NoSuchTopic, TranslationError
from k2cli.models import PartitionAssignment, PartitionStart, TopicInfo
from k2cli.window import Window

if TYPE_CHECKING:
    from k2cli.broker import BrokerClient

logger = logging.getLogger(__name__)

# librdkafka: RD_KAFKA_OFFSET_TAIL_BASE; OFFSET_TAIL(n) == -2000 - n
OFFSET_TAIL_BASE: int = -2000


def tail_offset(count: int) -> int:
    """Logical offset meaning "``count`` records before the partition's high watermark"."""
    return OFFSET_TAIL_BASE - abs(count)


def fetch_topic(broker: "BrokerClient", topic: str, timeout: float) -> TopicInfo:
    """Metadata for ``topic``; NoSuchTopic / NoPartitions when it can't be read from."""
    cluster = broker.fetch_metadata(topic, timeout)
    info = cluster.topics.get(topic)
    if info is None or info.error is not None:
        reason = info.error if info is not None else "not found"
        raise NoSuchTopic(f"topic {topic!r} is not available: {reason}")
    if not info.partitions:
        raise NoPartitions(f"No partitions found for {topic}.")
    return info


def _lookup(broker: "BrokerClient", request: List[TopicPartition], timeout: Optional[float]) -> List[TopicPartition]:
    try:
        result: List[TopicPartition] = broker.translate_times(request, timeout)
    except KafkaException as exc:
        raise TranslationError(f"offsets_for_times failed: {exc}") from exc
    for tp in result:
        if tp.error is not None:
            raise TranslationError(
                f"offsets_for_times failed for {tp.topic}[{tp.partition}]: {tp.error}"
            )
    return result


def translate(broker: "BrokerClient", topic: str, window: Window, timeout: float) -> PartitionAssignment:
    """
    Compute where each partition of ``topic`` starts for ``window``.

    Raises:
        MissingStartCondition: window has neither a time start nor a tail count.
        MetadataError / NoSuchTopic / NoPartitions: topic can't be described.
        TranslationError: time → offset lookup failed.
    """
    window.require_start()
    info = fetch_topic(broker, topic, timeout)
    partitions: List[int] = info.partition_ids

    if window.has_time_start:
        start_ms = window.start_ms
        request = [TopicPartition(topic, p, start_ms) for p in partitions]
        _lookup(broker, request, timeout)
        # same timestamps again; accept the second answer
        request = [TopicPartition(topic, p, start_ms) for p in partitions]
        result = _lookup(broker, request, None)
        starts = tuple(
            PartitionStart(tp.partition, tp.offset)
            for tp in sorted(result, key=lambda tp: tp.partition)
        )
        logger.info(
            "start %s → %s",
            window.start_time.isoformat(),
            ", ".join(f"{topic}[{s.partition}]@{s.offset}" for s in starts),
        )
    else:
        offset = tail_offset(window.tail_count)
        starts = tuple(PartitionStart(p, offset) for p in partitions)
        logger.info("starting %d records before the tail of %s", window.tail_count, topic)

    return PartitionAssignment(topic=topic, starts=starts)
