"""The logger interface and a logger that delivers every entry synchronously."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from cloudlog.client import LogSender
from cloudlog.entry import new_log_entry
from cloudlog.errors import FormatError
from cloudlog.formatters import Formatter, LokiFormatter

DEFAULT_JOB = "application"


def merge_keyvals(metadata: Mapping[str, Any], *args: Any) -> dict[str, Any]:
    """Return a copy of ``metadata`` updated with alternating keys and values.

    Pairs whose key is not a string, and a trailing key without a value, are skipped.
    """
    merged = dict(metadata)
    merged.update(
        (key, value) for key, value in zip(args[0::2], args[1::2]) if isinstance(key, str)
    )
    return merged


class Logger(ABC):
    """Structured logger: leveled messages with key-value pairs and derived loggers."""

    def info(self, message: str, *args: Any) -> None:
        """Log an informational message."""
        self._log("info", message, args)

    def error(self, message: str, *args: Any) -> None:
        """Log an error message."""
        self._log("error", message, args)

    def debug(self, message: str, *args: Any) -> None:
        """Log a debug message."""
        self._log("debug", message, args)

    def warn(self, message: str, *args: Any) -> None:
        """Log a warning message."""
        self._log("warn", message, args)

    @abstractmethod
    def _log(self, level: str, message: str, args: tuple[Any, ...]) -> None:
        """Record one message at the given level."""

    @abstractmethod
    def flush(self) -> None:
        """Make sure every pending entry has been delivered."""

    @abstractmethod
    def close(self) -> None:
        """Shut the logger down and release its resources."""

    @abstractmethod
    def with_context(self, *args: Any) -> Logger:
        """Return a logger that adds the given key-value pairs to every entry."""

    @abstractmethod
    def with_job(self, job: str) -> Logger:
        """Return a logger that logs under another job name."""

    def __enter__(self) -> Logger:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SyncLogger(Logger):
    """Formats and sends each entry before the logging call returns."""

    def __init__(
        self,
        sender: LogSender,
        *,
        formatter: Formatter | None = None,
        job: str = DEFAULT_JOB,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self.sender = sender
        self.formatter = formatter if formatter is not None else LokiFormatter()
        self.job = job
        self.metadata: dict[str, Any] = dict(metadata or {})

    def _log(self, level: str, message: str, args: tuple[Any, ...]) -> None:
        keyvals: list[Any] = ["message", message, *args]
        for key, value in self.metadata.items():
            keyvals.extend((key, value))
        entry = new_log_entry(self.job, level, *keyvals)

        try:
            formatted = self.formatter.format(entry)
        except FormatError:
            raise
        except Exception as exc:
            raise FormatError(f"failed to format log entry: {exc}") from exc

        self.sender.send(formatted)

    def flush(self) -> None:
        """Nothing is buffered, so there is nothing to flush."""

    def close(self) -> None:
        """Nothing is held open, so there is nothing to release."""

    def _derive(self, job: str, metadata: Mapping[str, Any]) -> SyncLogger:
        return SyncLogger(self.sender, formatter=self.formatter, job=job, metadata=metadata)

    def with_context(self, *args: Any) -> SyncLogger:
        return self._derive(self.job, merge_keyvals(self.metadata, *args))

    def with_job(self, job: str) -> SyncLogger:
        return self._derive(job, self.metadata)