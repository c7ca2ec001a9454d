"""
Bounded replay: read one topic from a resolved start until the window end or
the watermark snapshot, then stop.

    translate → assign → snapshot watermarks → poll until done

Poll outcomes:
- record            → oracle verdict; present unless it's past the window end
- nothing, none read yet  → PollTimeout (an empty window is a config problem, not lag)
- nothing, some read      → caught up for now, poll again
- inline broker error     → logged, loop continues

Offsets are never committed, so two runs over the same absolute window yield
the same records.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Tuple

from confluent_kafka import KafkaException

from k2cli.errors import PollTimeout, TransientBrokerError, WatermarkError
from k2cli.models import PartitionAssignment, WatermarkSnapshot
from k2cli.offsets import translate
from k2cli.oracle import TerminationOracle, Verdict
from k2cli.window import Window

if TYPE_CHECKING:
    from k2cli.broker import BrokerClient
    from k2cli.sink import MessageSink

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    WINDOW_END = "window_end"
    WATERMARK = "watermark"


@dataclass(frozen=True)
class ReplayResult:
    outcome: Outcome
    presented: int


def snapshot_watermarks(broker: "BrokerClient", assignment: PartitionAssignment, timeout: float) -> WatermarkSnapshot:
    marks: Dict[int, Tuple[int, int]] = {}
    for p in assignment.partitions:
        try:
            marks[p] = tuple(broker.fetch_watermarks(assignment.topic, p, timeout))
        except KafkaException as exc:
            raise WatermarkError(f"error partition watermark {assignment.topic}[{p}]: {exc}") from exc
    logger.info(
        "watermarks: %s",
        ", ".join(f"[{p}] {lo}..{hi}" for p, (lo, hi) in sorted(marks.items())),
    )
    return WatermarkSnapshot(marks)


def run_poll_loop(broker: "BrokerClient", oracle: TerminationOracle, sink: "MessageSink", timeout: float) -> ReplayResult:
    """Drive poll() until the oracle says stop. Assignment must already be in place."""
    state = oracle.state
    while True:
        try:
            record = broker.poll(timeout)
        except TransientBrokerError as exc:
            logger.error("Kafka error: %s", exc)
            continue

        if record is None:
            if not state.messages_read:
                raise PollTimeout("Polling timed out no messages read.")
            logger.debug("no records this cycle, polling again")
            continue

        verdict = oracle.evaluate(record)
        if verdict is Verdict.RUN_DONE:
            logger.info(
                "%s[%d]@%d is past the window end, stopping",
                record.topic, record.partition, record.offset,
            )
            return ReplayResult(Outcome.WINDOW_END, state.presented)

        sink.present(record)
        if oracle.complete:
            logger.info("all partitions reached their watermark")
            return ReplayResult(Outcome.WATERMARK, state.presented)


def replay(broker: "BrokerClient", topic: str, window: Window, sink: "MessageSink", timeout: float) -> ReplayResult:
    """
    Replay ``window`` of ``topic`` into ``sink``.

    Raises:
        MissingStartCondition, NoSuchTopic, NoPartitions, MetadataError,
        TranslationError, WatermarkError, PollTimeout.
    """
    assignment = translate(broker, topic, window, timeout)
    broker.assign(assignment)
    snapshot = snapshot_watermarks(broker, assignment, timeout)
    oracle = TerminationOracle(window.end_ms, snapshot, assignment)
    return run_poll_loop(broker, oracle, sink, timeout)
