"""
Live tail: subscribe and print records until asked to stop.

There is no end condition. The caller owns ``stop`` (a threading.Event),
normally set from a SIGINT/SIGTERM handler. Each presented record is
acknowledged with an async commit that is never awaited.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, List

from k2cli.errors import TransientBrokerError

if TYPE_CHECKING:
    from k2cli.broker import BrokerClient
    from k2cli.sink import MessageSink

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S: float = 0.5


def tail(
    broker: "BrokerClient",
    topics: List[str],
    sink: "MessageSink",
    stop: threading.Event,
    poll_interval: float = DEFAULT_POLL_INTERVAL_S,
) -> int:
    """
    Follow ``topics`` until ``stop`` is set.

    Returns:
        int: number of records presented.
    """
    broker.subscribe(topics)
    logger.info("tailing %s", ", ".join(topics))

    presented: int = 0
    while not stop.is_set():
        try:
            record = broker.receive(poll_interval)
            if record is None:
                continue
            sink.present(record)
            presented += 1
            broker.acknowledge(record)
        except TransientBrokerError as exc:
            logger.error("Kafka error: %s", exc)

    logger.info("tail stopped after %d records", presented)
    return presented
