"""
Client configuration.

librdkafka is configured with plain dicts of dotted property names, one dict
per kind of client:

- list   → metadata only
- read   → bounded replay; auto-commit AND offset store disabled so repeated
           runs replay the same window (nothing is ever persisted)
- tail   → group subscription; positions acknowledged explicitly (async commit)
- write  → a producer; must NOT carry group.id

Defaults can be overridden from the environment (K2_BROKERS, K2_GROUP) or
per-run with ``-X key=value`` which wins over everything else.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from k2cli.errors import InvalidConfigProperty

DEFAULT_BROKERS: str = "localhost:9092"
DEFAULT_GROUP: str = "example"
DEFAULT_TIMEOUT_MS: int = 10_000

_CLIENT_ID_SAFE = re.compile(r"[A-Za-z0-9._-]")


def sanitize_client_id(raw: str) -> str:
    """Replace every character librdkafka rejects in client.id with ``_<ord>``."""
    return "".join(c if _CLIENT_ID_SAFE.fullmatch(c) else f"_{ord(c)}" for c in raw)


def default_client_id() -> str:
    return sanitize_client_id(os.environ.get("USER", "unknown"))


def parse_properties(items: Optional[Iterable[str]]) -> Dict[str, str]:
    """Turn ``["key=value", ...]`` into a dict; raise on entries without '='."""
    props: Dict[str, str] = {}
    for item in items or ():
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise InvalidConfigProperty(f"expected key=value, got {item!r}")
        props[key.strip()] = value
    return props


@dataclass
class ClientSettings:
    brokers: str = field(default_factory=lambda: os.environ.get("K2_BROKERS", DEFAULT_BROKERS))
    group: str = field(default_factory=lambda: os.environ.get("K2_GROUP", DEFAULT_GROUP))
    client_id: str = field(default_factory=default_client_id)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    extra: Dict[str, str] = field(default_factory=dict)
    # route librdkafka's own log lines through the logging tree
    client_logs: bool = False

    @property
    def timeout(self) -> float:
        """Timeout in seconds, the unit confluent-kafka calls take."""
        return self.timeout_ms / 1000.0

    def _base(self) -> Dict[str, Any]:
        return {
            "bootstrap.servers": self.brokers,
            "group.id": self.group,
            "client.id": self.client_id,
        }

    def consumer_conf(self, mode: str) -> Dict[str, Any]:
        conf: Dict[str, Any] = self._base()
        if mode == "read":
            conf.update({
                "enable.partition.eof": False,
                "session.timeout.ms": self.timeout_ms,
                "enable.auto.commit": False,          # never commit during replay
                "auto.offset.reset": "earliest",
                "enable.auto.offset.store": False,
            })
        elif mode == "tail":
            conf.update({
                "enable.partition.eof": False,
                "session.timeout.ms": self.timeout_ms,
                "enable.auto.commit": False,          # we acknowledge each record ourselves
            })
        elif mode != "list":
            raise ValueError(f"unknown consumer mode: {mode}")
        conf.update(self.extra)
        return conf

    def producer_conf(self) -> Dict[str, Any]:
        conf: Dict[str, Any] = {
            "bootstrap.servers": self.brokers,
            "client.id": self.client_id,
        }
        conf.update(self.extra)
        return conf
