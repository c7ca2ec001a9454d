"""
Publish a single record (`k2 write`).

produce() is asynchronous: the record is buffered and a delivery report is
called once the broker acks (or gives up). We flush right away and turn a
failed or missing report into PublishError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from confluent_kafka import KafkaError, KafkaException, Message, Producer

from k2cli.config import ClientSettings
from k2cli.errors import ClientCreationError, InvalidHeader, PublishError

logger = logging.getLogger(__name__)


def parse_headers(items: Optional[Iterable[str]]) -> List[Tuple[str, str]]:
    """Turn ``["name=value", ...]`` into header pairs, keeping order and repeats."""
    headers: List[Tuple[str, str]] = []
    for item in items or ():
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise InvalidHeader(f"expected header name=value, got {item!r}")
        headers.append((name.strip(), value))
    return headers


def make_producer(settings: ClientSettings) -> Producer:
    conf: Dict[str, Any] = settings.producer_conf()
    if settings.client_logs:
        conf["logger"] = logging.getLogger("k2cli.librdkafka")
    try:
        return Producer(conf)
    except KafkaException as exc:
        raise ClientCreationError(
            f"Could not create producer for broker list {settings.brokers} : {exc}"
        ) from exc


def publish(
    producer: Producer,
    topic: str,
    message: str,
    key: Optional[str] = None,
    headers: Optional[List[Tuple[str, str]]] = None,
    timeout: float = 10.0,
) -> None:
    """
    Send ``message`` to ``topic`` and wait for the broker's acknowledgment.

    Raises:
        PublishError: the record was rejected, failed delivery, or is still
            queued once ``timeout`` seconds have passed.
    """
    report: Dict[str, Any] = {"err": None, "delivered": False}

    def delivery_report(err: Optional[KafkaError], msg: Message) -> None:
        if err is not None:
            report["err"] = err
        else:
            report["delivered"] = True
            logger.info("delivered to %s[%s]@%s", msg.topic(), msg.partition(), msg.offset())

    try:
        producer.produce(
            topic,
            value=message.encode("utf-8"),
            key=key.encode("utf-8") if key is not None else None,
            headers=headers or None,
            on_delivery=delivery_report,
        )
    except (KafkaException, BufferError) as exc:
        raise PublishError(f"Could not write message: {exc}") from exc

    remaining: int = producer.flush(timeout)
    if report["err"] is not None:
        raise PublishError(f"Could not write message: {report['err']}")
    if remaining > 0 or not report["delivered"]:
        raise PublishError(f"Could not write message: not delivered within {timeout}s")
