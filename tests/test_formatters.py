import json
from datetime import datetime, timedelta, timezone

import pytest

from cloudlog.entry import LogEntry
from cloudlog.errors import FormatError, is_format_error
from cloudlog.formatters import Formatter, LokiFormatter, StringFormatter

TS = datetime(2023, 6, 15, 12, 30, 0, tzinfo=timezone.utc)
TS_NANOS = "1686832200000000000"


def entry(**keyvals):
    return LogEntry(timestamp=TS, job="test-job", level="info", keyvals=keyvals)


def content_of(loki_entry, index=0):
    return loki_entry.streams[0].values[index][1]


def test_loki_format_batch():
    formatter = LokiFormatter(label_keys=["user_id", "request_id"])
    entries = [
        LogEntry(timestamp=TS, job="test-job", level="info",
                 keyvals={"message": "Test message 1", "user_id": "user-123",
                          "request_id": "req-456"}),
        LogEntry(timestamp=TS, job="test-job", level="error",
                 keyvals={"message": "Test message 2", "error": "Something went wrong"}),
    ]
    result = json.loads(formatter.format_batch("test-job", entries).to_json())
    streams = result["streams"]
    assert len(streams) == 1
    assert streams[0]["stream"] == {
        "job": "test-job", "user_id": "user-123", "request_id": "req-456"}
    values = streams[0]["values"]
    assert len(values) == 2
    for value, source in zip(values, entries):
        assert json.loads(value[1])["message"] == source.keyvals["message"]


def test_loki_custom_field_names():
    formatter = LokiFormatter(
        timestamp_field="@timestamp", level_field="severity", job_field="service")
    data = json.loads(content_of(formatter.format(entry(message="Test message"))))
    assert data == {
        "@timestamp": "2023-06-15T12:30:00Z",
        "service": "test-job",
        "severity": "info",
        "message": "Test message",
    }


def test_loki_custom_time_format():
    formatter = LokiFormatter(time_format="%a, %d %b %Y %H:%M:%S %Z")
    data = json.loads(content_of(formatter.format(entry(message="Test message"))))
    assert data["timestamp"] == "Thu, 15 Jun 2023 12:30:00 UTC"


def test_loki_default_content_is_sorted_json():
    result = LokiFormatter().format(entry(message="Test message"))
    assert content_of(result) == (
        '{"job":"test-job","level":"info","message":"Test message",'
        '"timestamp":"2023-06-15T12:30:00Z"}'
    )
    assert result.streams[0].values[0][0] == TS_NANOS
    assert result.streams[0].stream == {"job": "test-job"}


def test_loki_rfc3339_with_offset():
    ts = datetime(2023, 6, 15, 12, 30, tzinfo=timezone(timedelta(hours=3)))
    loki_entry = LokiFormatter().format(LogEntry(timestamp=ts, job="j", level="info"))
    assert json.loads(content_of(loki_entry))["timestamp"] == "2023-06-15T12:30:00+03:00"


def test_loki_labels():
    formatter = LokiFormatter(label_keys=("user_id", "request_id", "trace_id"))
    result = formatter.format(entry(
        message="Test message", user_id="user-123", request_id="req-456",
        trace_id="trace-789", ip="192.168.1.1"))
    assert result.streams[0].stream == {
        "job": "test-job", "user_id": "user-123",
        "request_id": "req-456", "trace_id": "trace-789"}


def test_loki_label_values_are_text():
    formatter = LokiFormatter(label_keys=("retry", "count"))
    labels = formatter.format(entry(retry=True, count=3)).streams[0].stream
    assert labels == {"job": "test-job", "retry": "true", "count": "3"}


def test_loki_keyvals_override_standard_fields():
    data = json.loads(content_of(LokiFormatter().format(entry(level="custom"))))
    assert data["level"] == "custom"


def test_loki_edge_cases():
    zero = LogEntry(timestamp=datetime(1, 1, 1, tzinfo=timezone.utc), job="", level="")
    data = json.loads(content_of(LokiFormatter().format(zero)))
    assert data == {"timestamp": "0001-01-01T00:00:00Z", "job": "", "level": ""}

    result = LokiFormatter(label_keys=()).format(LogEntry(job="test-job", level="info"))
    assert result.streams[0].stream == {"job": "test-job"}


def test_loki_unserializable_value_raises_format_error():
    with pytest.raises(FormatError) as info:
        LokiFormatter().format(entry(obj=object()))
    assert is_format_error(info.value)
    assert "failed to format log content" in str(info.value)


def test_loki_batch_skips_unformattable_entries():
    result = LokiFormatter().format_batch("test-job", [entry(message="ok"), entry(bad=float("nan"))])
    values = result.streams[0].values
    assert len(values) == 1
    assert json.loads(values[0][1])["message"] == "ok"


@pytest.mark.parametrize("formatter", [LokiFormatter(), StringFormatter()])
def test_empty_batch_has_no_streams(formatter):
    assert formatter.format_batch("job", []).streams == []


def test_string_formatter_default():
    result = StringFormatter().format(entry(message="Test message", user_id="user-123"))
    line = content_of(result)
    assert line == (
        "time=2023-06-15T12:30:00Z job=test-job level=info "
        "message=Test message user_id=user-123 "
    )
    assert result.streams[0].stream == {"job": "test-job"}
    assert result.streams[0].values[0][0] == TS_NANOS


def test_string_formatter_custom_settings():
    formatter = StringFormatter(
        time_format="%Y-%m-%d", key_value_separator=": ", pair_separator=" | ")
    line = content_of(formatter.format(entry(message="Test message", user_id="user-123")))
    assert line == (
        "time: 2023-06-15 | job: test-job | level: info | "
        "message: Test message | user_id: user-123 | "
    )
    pairs = [p for p in line.split(" | ") if p]
    assert len(pairs) == 5
    assert all(len(p.split(": ", 1)) == 2 for p in pairs)


def test_string_formatter_empty_entry():
    zero = LogEntry(timestamp=datetime(1, 1, 1, tzinfo=timezone.utc), job="", level="")
    line = content_of(StringFormatter().format(zero))
    assert line == "time=0001-01-01T00:00:00Z job= level= "


def test_string_formatter_defaults():
    formatter = StringFormatter()
    assert formatter.key_value_separator == "="
    assert formatter.pair_separator == " "


def test_string_formatter_renders_bool_lowercase():
    assert StringFormatter().render(entry(retry=True)).endswith("retry=true ")


def test_string_formatter_batch():
    ts2 = datetime(2023, 6, 15, 12, 31, 0, tzinfo=timezone.utc)
    entries = [
        entry(message="Test message 1", user_id="user-123"),
        LogEntry(timestamp=ts2, job="test-job", level="error",
                 keyvals={"message": "Test message 2", "error": "Something went wrong"}),
    ]
    result = StringFormatter().format_batch("test-job", entries)
    assert result.streams[0].stream == {"job": "test-job"}
    values = result.streams[0].values
    assert len(values) == 2
    first, second = values[0][1], values[1][1]
    assert "time=2023-06-15T12:30:00Z" in first
    assert "level=info" in first
    assert "message=Test message 1" in first
    assert "user_id=user-123" in first
    assert "time=2023-06-15T12:31:00Z" in second
    assert "level=error" in second
    assert "error=Something went wrong" in second
    assert values[1][0] == "1686832260000000000"


def test_formatter_is_abstract():
    with pytest.raises(TypeError):
        Formatter()