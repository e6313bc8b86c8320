"""The log entry record passed to formatters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class LogEntry:
    """A single log record with its metadata."""

    timestamp: datetime = field(default_factory=_now)
    job: str = ""
    level: str = ""
    keyvals: dict[str, Any] = field(default_factory=dict)


def new_log_entry(job: str, level: str, *args: Any) -> LogEntry:
    """Build an entry stamped now from alternating keys and values.

    Pairs whose key is not a string, and a trailing key without a value, are skipped.
    """
    keyvals = {key: value for key, value in zip(args[0::2], args[1::2]) if isinstance(key, str)}
    return LogEntry(job=job, level=level, keyvals=keyvals)