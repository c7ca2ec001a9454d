"""
Message sink: how a record is written to stdout.

Formatting is driven by two closed enums:

- Verbosity  (from the number of -v flags)
- FormatHint (how to treat the payload: plain text or JSON)

Default output is one JSON object per line:
    {"timestamp": 1714557600000, "topic": "orders", "message": "..."}

At TOO_MUCH verbosity a detailed line is printed instead, followed by one line
per header.
"""

from __future__ import annotations

import enum
import json
import logging
import sys
from typing import Any, Optional, TextIO

from k2cli.models import Record

logger = logging.getLogger(__name__)


class Verbosity(enum.IntEnum):
    SILENT = 0
    SOFT = 1
    LOUD = 2
    TOO_MUCH = 3

    @classmethod
    def from_count(cls, count: int) -> "Verbosity":
        return cls(min(max(count, 0), cls.TOO_MUCH))


class FormatHint(enum.Enum):
    TEXT = "text"
    JSON = "json"


def _decode_payload(record: Record) -> str:
    if record.payload is None:
        return ""
    try:
        return record.payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.error("Error while deserializing message payload: %s", exc)
        return ""


class MessageSink:
    def __init__(
        self,
        verbosity: Verbosity = Verbosity.SILENT,
        format_hint: FormatHint = FormatHint.TEXT,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.verbosity = verbosity
        self.format_hint = format_hint
        self.stream: TextIO = stream or sys.stdout

    def _message_value(self, text: str) -> Any:
        if self.format_hint is FormatHint.JSON and text:
            try:
                return json.loads(text)
            except ValueError:
                logger.debug("payload is not JSON, printing it as a string")
        return text

    def render(self, record: Record) -> str:
        text: str = _decode_payload(record)
        timestamp: int = record.timestamp if record.timestamp is not None else 0

        if self.verbosity >= Verbosity.TOO_MUCH:
            lines = [
                f"key:'{record.key!r}', topic:'{record.topic}', partition:{record.partition}, "
                f"offset:{record.offset}, timestamp:{timestamp}, payload:{text}"
            ]
            for name, value in record.headers:
                lines.append(f"  Header {name!r}: {value!r}")
            return "\n".join(lines)

        return json.dumps(
            {"timestamp": timestamp, "topic": record.topic, "message": self._message_value(text)},
            ensure_ascii=False,
        )

    def present(self, record: Record) -> None:
        print(self.render(record), file=self.stream, flush=True)
