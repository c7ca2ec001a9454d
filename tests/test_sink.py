from __future__ import annotations

import json

import pytest

from k2cli.models import Record
from k2cli.sink import FormatHint, MessageSink, Verbosity


def _record(**kw) -> Record:
    base = dict(topic="orders", partition=2, offset=41, timestamp=1714564800000,
                key=b"k1", payload=b'{"a": 1}', headers=(("trace", b"abc"),))
    base.update(kw)
    return Record(**base)


def test_default_output_is_one_json_line(out) -> None:
    MessageSink(stream=out).present(_record())
    assert json.loads(out.getvalue()) == {
        "timestamp": 1714564800000,
        "topic": "orders",
        "message": '{"a": 1}',
    }


def test_json_hint_embeds_payload(out) -> None:
    MessageSink(format_hint=FormatHint.JSON, stream=out).present(_record())
    assert json.loads(out.getvalue())["message"] == {"a": 1}


def test_json_hint_falls_back_to_text(out) -> None:
    MessageSink(format_hint=FormatHint.JSON, stream=out).present(_record(payload=b"plain"))
    assert json.loads(out.getvalue())["message"] == "plain"


def test_missing_timestamp_and_payload(out) -> None:
    MessageSink(stream=out).present(_record(timestamp=None, payload=None))
    assert json.loads(out.getvalue()) == {"timestamp": 0, "topic": "orders", "message": ""}


def test_undecodable_payload_is_logged(out, caplog) -> None:
    MessageSink(stream=out).present(_record(payload=b"\xff\xfe"))
    assert json.loads(out.getvalue())["message"] == ""
    assert "deserializing" in caplog.text


def test_too_much_verbosity_prints_details_and_headers() -> None:
    text = MessageSink(verbosity=Verbosity.TOO_MUCH).render(_record())
    lines = text.splitlines()
    assert lines[0] == (
        "key:'b'k1'', topic:'orders', partition:2, offset:41, "
        "timestamp:1714564800000, payload:{\"a\": 1}"
    )
    assert lines[1] == "  Header 'trace': b'abc'"


@pytest.mark.parametrize("count, level", [(0, Verbosity.SILENT), (1, Verbosity.SOFT),
                                          (2, Verbosity.LOUD), (3, Verbosity.TOO_MUCH),
                                          (7, Verbosity.TOO_MUCH)])
def test_verbosity_from_count(count, level) -> None:
    assert Verbosity.from_count(count) is level
