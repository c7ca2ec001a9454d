"""
Thin wrapper around a confluent-kafka ``Consumer``.

The replay and tail loops only talk to ``BrokerClient``; it turns library
objects into the plain snapshots from ``k2cli.models`` and library errors into
``K2Error`` subclasses. Tests substitute an in-memory fake with the same
methods.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from confluent_kafka import Consumer, KafkaError, KafkaException, Message, TopicPartition

from k2cli.config import ClientSettings
from k2cli.errors import ClientCreationError, MetadataError, TransientBrokerError, WatermarkError
from k2cli.models import ClusterInfo, PartitionAssignment, PartitionInfo, Record, TopicInfo

logger = logging.getLogger(__name__)


def _fmt_tps(tps: List[TopicPartition]) -> str:
    """Pretty-print a list of TopicPartition objects."""
    return ", ".join(f"{tp.topic}[{tp.partition}]" for tp in tps)


def _on_commit(err: Optional[KafkaError], partitions: List[TopicPartition]) -> None:
    # Async acknowledgments are never awaited; this is the only place their outcome shows up.
    if err is not None:
        logger.error("commit failed: %s on %s", err, _fmt_tps(partitions))
    else:
        logger.debug("committed %s", [(p.topic, p.partition, p.offset) for p in partitions])


def make_consumer(settings: ClientSettings, mode: str) -> Consumer:
    """
    Build a Consumer for ``mode`` ("list", "read" or "tail").

    librdkafka's own log lines are routed to the standard logging tree only
    when ``settings.client_logs`` is set.
    """
    conf: Dict[str, Any] = settings.consumer_conf(mode)
    if settings.client_logs:
        conf["logger"] = logging.getLogger("k2cli.librdkafka")
    if mode == "tail":
        conf["on_commit"] = _on_commit
    try:
        return Consumer(conf)
    except KafkaException as exc:
        raise ClientCreationError(
            f"Could not create consumer from broker list {settings.brokers} : {exc}"
        ) from exc


def _cluster_info(md: Any) -> ClusterInfo:
    topics: Dict[str, TopicInfo] = {}
    for name, tmd in md.topics.items():
        partitions: Tuple[PartitionInfo, ...] = tuple(
            PartitionInfo(
                id=pmd.id,
                leader=pmd.leader,
                replicas=tuple(pmd.replicas),
                isrs=tuple(pmd.isrs),
                error=str(pmd.error) if pmd.error is not None else None,
            )
            for _, pmd in sorted(tmd.partitions.items())
        )
        topics[name] = TopicInfo(
            name=name,
            partitions=partitions,
            error=str(tmd.error) if tmd.error is not None else None,
        )
    return ClusterInfo(
        topics=topics,
        broker_count=len(md.brokers),
        orig_broker_id=md.orig_broker_id,
        orig_broker_name=md.orig_broker_name,
    )


class BrokerClient:
    """Broker operations used by the consumption engine."""

    def __init__(self, consumer: Consumer) -> None:
        self._consumer = consumer

    # ---- metadata / offsets ----

    def fetch_metadata(self, topic: Optional[str], timeout: float) -> ClusterInfo:
        try:
            md = self._consumer.list_topics(topic=topic, timeout=timeout)
        except KafkaException as exc:
            raise MetadataError(f"failed to fetch metadata: {exc}") from exc
        return _cluster_info(md)

    def translate_times(
        self, partitions: List[TopicPartition], timeout: Optional[float] = None
    ) -> List[TopicPartition]:
        """
        Map timestamps (carried in ``TopicPartition.offset``) to offsets.

        ``timeout=None`` waits without bound. KafkaException propagates; the
        offset translator decides what it means.
        """
        if timeout is None:
            return self._consumer.offsets_for_times(partitions)
        return self._consumer.offsets_for_times(partitions, timeout=timeout)

    def fetch_watermarks(self, topic: str, partition: int, timeout: float) -> Tuple[int, int]:
        marks: Optional[Tuple[int, int]] = self._consumer.get_watermark_offsets(
            TopicPartition(topic, partition), timeout=timeout
        )
        # None means the query timed out
        if marks is None:
            raise WatermarkError(
                f"error partition watermark {topic}[{partition}]: timed out after {timeout}s"
            )
        return marks

    # ---- bounded replay ----

    def assign(self, assignment: PartitionAssignment) -> None:
        # The TopicPartitions carry the starting offsets; assign() positions
        # the fetcher there, so no separate seek is needed.
        tps = assignment.topic_partitions()
        logger.info("assigning %s", _fmt_tps(tps))
        self._consumer.assign(tps)

    def poll(self, timeout: float) -> Optional[Record]:
        """
        Fetch one record, waiting up to ``timeout`` seconds.

        Returns None on timeout; raises TransientBrokerError for an inline error.
        """
        msg: Optional[Message] = self._consumer.poll(timeout)
        if msg is None:
            return None
        err: Optional[KafkaError] = msg.error()
        if err is not None:
            if err.code() == KafkaError._PARTITION_EOF:
                # not an error: end of partition for now
                return None
            raise TransientBrokerError(str(err))
        return Record.from_message(msg)

    # ---- tail ----

    def subscribe(self, topics: List[str]) -> None:
        def on_assign(consumer: Consumer, partitions: List[TopicPartition]) -> None:
            logger.info("now responsible for: %s", _fmt_tps(partitions))

        def on_revoke(consumer: Consumer, partitions: List[TopicPartition]) -> None:
            logger.info("giving up: %s", _fmt_tps(partitions))

        self._consumer.subscribe(topics, on_assign=on_assign, on_revoke=on_revoke)

    def receive(self, timeout: float) -> Optional[Record]:
        """Same as poll(); the tail loop calls it with a short tick so it can notice a stop request."""
        return self.poll(timeout)

    def acknowledge(self, record: Record) -> None:
        """Fire-and-forget commit of the position after ``record``."""
        tp = TopicPartition(record.topic, record.partition, record.offset + 1)
        try:
            self._consumer.commit(offsets=[tp], asynchronous=True)
        except KafkaException as exc:
            raise TransientBrokerError(f"commit rejected: {exc}") from exc

    def close(self) -> None:
        self._consumer.close()
