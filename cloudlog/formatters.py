"""Formatters that turn log entries into Loki push payloads."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from cloudlog.client import LokiEntry, LokiStream
from cloudlog.entry import LogEntry
from cloudlog.errors import FormatError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.astimezone()


def _unix_nanos(ts: datetime) -> str:
    delta = _aware(ts) - _EPOCH
    return str((delta // timedelta(microseconds=1)) * 1000)


def _rfc3339(ts: datetime) -> str:
    ts = _aware(ts)
    base = (
        f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}"
        f"T{ts.hour:02d}:{ts.minute:02d}:{ts.second:02d}"
    )
    offset = ts.utcoffset() or timedelta(0)
    if not offset:
        return base + "Z"
    minutes_total = int(offset.total_seconds()) // 60
    sign = "+" if minutes_total >= 0 else "-"
    hours, minutes = divmod(abs(minutes_total), 60)
    return f"{base}{sign}{hours:02d}:{minutes:02d}"


def _format_time(ts: datetime, time_format: str | None) -> str:
    """Format with a strftime pattern, or as RFC 3339 when no pattern is set."""
    if time_format is None:
        return _rfc3339(ts)
    return ts.strftime(time_format)


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "<nil>"
    return str(value)


class Formatter(ABC):
    """Converts log entries into Loki entries."""

    @abstractmethod
    def format(self, entry: LogEntry) -> LokiEntry:
        """Convert one entry into a Loki entry."""

    @abstractmethod
    def format_batch(self, job: str, entries: Iterable[LogEntry]) -> LokiEntry:
        """Convert entries of one job into a single Loki entry with one stream."""


@dataclass
class LokiFormatter(Formatter):
    """Renders each entry as a JSON line, optionally promoting keys to stream labels.

    ``time_format`` is a strftime pattern; ``None`` selects RFC 3339.
    """

    label_keys: Sequence[str] = ()
    time_format: str | None = None
    timestamp_field: str = "timestamp"
    level_field: str = "level"
    job_field: str = "job"

    def __post_init__(self) -> None:
        self.label_keys = tuple(self.label_keys)

    def format(self, entry: LogEntry) -> LokiEntry:
        try:
            content = self._content(entry)
        except (TypeError, ValueError) as exc:
            raise FormatError(f"failed to format log content: {exc}") from exc
        stream = LokiStream(
            stream=self._labels(entry.job, entry.keyvals),
            values=[[_unix_nanos(entry.timestamp), content]],
        )
        return LokiEntry(streams=[stream])

    def format_batch(self, job: str, entries: Iterable[LogEntry]) -> LokiEntry:
        entries = list(entries)
        if not entries:
            return LokiEntry(streams=[])
        values = []
        for entry in entries:
            try:
                content = self._content(entry)
            except (TypeError, ValueError):
                continue
            values.append([_unix_nanos(entry.timestamp), content])
        stream = LokiStream(stream=self._labels(job, entries[0].keyvals), values=values)
        return LokiEntry(streams=[stream])

    def _labels(self, job: str, keyvals: Mapping[str, Any]) -> dict[str, str]:
        labels = {"job": job}
        labels.update({key: _text(keyvals[key]) for key in self.label_keys if key in keyvals})
        return labels

    def _content(self, entry: LogEntry) -> str:
        data: dict[str, Any] = {
            self.timestamp_field: _format_time(entry.timestamp, self.time_format),
            self.job_field: entry.job,
            self.level_field: entry.level,
        }
        data.update(entry.keyvals)
        return json.dumps(
            data,
            sort_keys=True,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )


@dataclass
class StringFormatter(Formatter):
    """Renders each entry as a human-readable ``key=value`` line.

    ``time_format`` is a strftime pattern; ``None`` selects RFC 3339.
    """

    time_format: str | None = None
    key_value_separator: str = "="
    pair_separator: str = " "

    def render(self, entry: LogEntry) -> str:
        """Return the text line for one entry."""
        pairs = [
            ("time", _format_time(entry.timestamp, self.time_format)),
            ("job", entry.job),
            ("level", entry.level),
            *entry.keyvals.items(),
        ]
        return "".join(
            f"{key}{self.key_value_separator}{_text(value)}{self.pair_separator}"
            for key, value in pairs
        )

    def format(self, entry: LogEntry) -> LokiEntry:
        stream = LokiStream(
            stream={"job": entry.job},
            values=[[_unix_nanos(entry.timestamp), self.render(entry)]],
        )
        return LokiEntry(streams=[stream])

    def format_batch(self, job: str, entries: Iterable[LogEntry]) -> LokiEntry:
        entries = list(entries)
        if not entries:
            return LokiEntry(streams=[])
        values = [[_unix_nanos(e.timestamp), self.render(e)] for e in entries]
        return LokiEntry(streams=[LokiStream(stream={"job": job}, values=values)])