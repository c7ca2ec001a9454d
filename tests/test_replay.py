from __future__ import annotations

import pytest

from conftest import NOW, NOW_MS, FakeBroker, make_record
from k2cli.errors import MissingStartCondition, PollTimeout, WatermarkError
from k2cli.replay import Outcome, replay
from k2cli.sink import MessageSink
from k2cli.timeparse import parse_absolute
from k2cli.window import Window, resolve


class CollectingSink:
    def __init__(self) -> None:
        self.records = []

    def present(self, record) -> None:
        self.records.append(record)


def _offsets(sink):
    return [(r.partition, r.offset) for r in sink.records]


def test_reads_from_start_to_watermark(single_partition_broker) -> None:
    # record i has timestamp NOW_MS - 60_000 + i
    window = resolve(start_abs="2024-05-01T11:59:00.040+00:00", now=NOW)
    sink = CollectingSink()

    result = replay(single_partition_broker, "orders", window, sink, timeout=1.0)

    assert result.outcome is Outcome.WATERMARK
    assert [o for _, o in _offsets(sink)] == list(range(40, 100))
    assert result.presented == 60


def test_stops_on_first_record_past_window_end(single_partition_broker) -> None:
    window = Window(
        start_time=parse_absolute("2024-05-01T11:59:00+00:00"),
        end_time=parse_absolute("2024-05-01T11:59:00.009+00:00"),
    )
    sink = CollectingSink()

    result = replay(single_partition_broker, "orders", window, sink, timeout=1.0)

    assert result.outcome is Outcome.WINDOW_END
    assert [o for _, o in _offsets(sink)] == list(range(0, 10))
    # nothing after offset 10 was pulled from the log
    assert single_partition_broker.positions[0] == 11


def test_tail_count_reads_last_records_of_each_partition() -> None:
    broker = FakeBroker(logs={
        0: [make_record(0, i) for i in range(10)],
        1: [make_record(1, i) for i in range(4)],
    })
    sink = CollectingSink()

    result = replay(broker, "orders", resolve(literal_offset=-3, now=NOW), sink, timeout=1.0)

    assert result.outcome is Outcome.WATERMARK
    assert sorted(_offsets(sink)) == [(0, 7), (0, 8), (0, 9), (1, 1), (1, 2), (1, 3)]


def test_replay_is_repeatable() -> None:
    logs = {p: [make_record(p, i) for i in range(20)] for p in range(3)}
    window = resolve(
        start_abs="2024-05-01T11:59:00.005+00:00",
        end_abs="2024-05-01T12:00:00+00:00",
        now=NOW,
    )

    runs = []
    for _ in range(2):
        sink = CollectingSink()
        replay(FakeBroker(logs=logs), "orders", window, sink, timeout=1.0)
        runs.append(_offsets(sink))

    assert runs[0] == runs[1]
    assert len(runs[0]) == 3 * 15


def test_zero_records_then_timeout_is_fatal(single_partition_broker) -> None:
    single_partition_broker.script = [None]
    with pytest.raises(PollTimeout):
        replay(single_partition_broker, "orders", resolve(literal_offset=5, now=NOW), CollectingSink(), 1.0)


def test_empty_topic_times_out() -> None:
    broker = FakeBroker(logs={0: []})
    with pytest.raises(PollTimeout):
        replay(broker, "orders", resolve(literal_offset=5, now=NOW), CollectingSink(), 1.0)


def test_empty_polls_after_first_record_keep_polling(single_partition_broker) -> None:
    single_partition_broker.script = [make_record(0, 97), None, None, None]
    sink = CollectingSink()

    result = replay(single_partition_broker, "orders", resolve(literal_offset=2, now=NOW), sink, 1.0)

    assert result.outcome is Outcome.WATERMARK
    assert _offsets(sink) == [(0, 97), (0, 98), (0, 99)]


def test_transient_errors_are_logged_and_skipped(single_partition_broker, transient, caplog) -> None:
    single_partition_broker.script = [transient]
    sink = CollectingSink()

    result = replay(single_partition_broker, "orders", resolve(literal_offset=1, now=NOW), sink, 1.0)

    assert _offsets(sink) == [(0, 99)]
    assert result.outcome is Outcome.WATERMARK
    assert "Leader not available" in caplog.text


def test_transient_error_does_not_count_as_read(single_partition_broker, transient) -> None:
    single_partition_broker.script = [transient, None]
    with pytest.raises(PollTimeout):
        replay(single_partition_broker, "orders", resolve(literal_offset=1, now=NOW), CollectingSink(), 1.0)


def test_watermark_failure_is_fatal(single_partition_broker, kafka_error) -> None:
    single_partition_broker.watermark_error = kafka_error
    with pytest.raises(WatermarkError):
        replay(single_partition_broker, "orders", resolve(literal_offset=1, now=NOW), CollectingSink(), 1.0)


def test_missing_start_is_rejected_before_io(single_partition_broker) -> None:
    with pytest.raises(MissingStartCondition):
        replay(single_partition_broker, "orders", Window(end_time=NOW), CollectingSink(), 1.0)
    assert single_partition_broker.calls == []


def test_assign_then_snapshot_order(single_partition_broker) -> None:
    replay(single_partition_broker, "orders", resolve(literal_offset=1, now=NOW), CollectingSink(), 1.0)
    names = [c[0] for c in single_partition_broker.calls]
    assert names == ["fetch_metadata", "assign", "fetch_watermarks"]


def test_records_reach_a_real_sink(single_partition_broker, out) -> None:
    replay(single_partition_broker, "orders", resolve(literal_offset=2, now=NOW),
           MessageSink(stream=out), 1.0)
    lines = out.getvalue().splitlines()
    assert len(lines) == 2
    assert '"topic": "orders"' in lines[0]
    assert str(NOW_MS - 60_000 + 98) in lines[0]
