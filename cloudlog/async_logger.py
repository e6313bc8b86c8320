"""A logger that queues entries and delivers them in batches from worker threads."""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cloudlog.client import LogSender, LokiEntry
from cloudlog.entry import LogEntry, new_log_entry
from cloudlog.errors import (
    BufferFullError,
    ErrorHandler,
    LoggerClosedError,
    LogTimeoutError,
    ProcessingError,
    ShutdownError,
    noop_error_handler,
)
from cloudlog.formatters import Formatter, LokiFormatter
from cloudlog.sync_logger import DEFAULT_JOB, Logger, merge_keyvals

DEFAULT_MAX_REQUEST_SIZE = 5 * 1024 * 1024
DEFAULT_BUFFER_SIZE = 1000
DEFAULT_BATCH_SIZE = 100
DEFAULT_FLUSH_INTERVAL = 5.0
DEFAULT_WORKER_COUNT = 2
ESTIMATED_ENTRY_OVERHEAD = 100
FLUSH_TIMEOUT = 2.0

# Longest a worker or blocked producer waits before re-checking for flush or shutdown.
_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class _QueuedEntry:
    job: str
    level: str
    message: str
    keyvals: tuple[Any, ...]
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_log_entry(self) -> LogEntry:
        pairs: list[Any] = ["message", self.message, *self.keyvals]
        for key, value in self.metadata.items():
            pairs.extend((key, value))
        return new_log_entry(self.job, self.level, *pairs)


def _positive(value: float, default: float) -> float:
    return value if value > 0 else default


class _Pipeline:
    """The queue and worker threads shared by a logger and the loggers derived from it."""

    def __init__(
        self,
        sender: LogSender,
        formatter: Formatter,
        buffer_size: int,
        batch_size: int,
        flush_interval: float,
        workers: int,
        block_on_full: bool,
        max_request_size: int,
        error_handler: ErrorHandler,
    ) -> None:
        self.sender = sender
        self.formatter = formatter
        self.buffer_size = buffer_size
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.workers = workers
        self.block_on_full = block_on_full
        self.max_request_size = max_request_size
        self.error_handler = error_handler

        self.queue: queue.Queue[_QueuedEntry] = queue.Queue(maxsize=buffer_size)
        self.cond = threading.Condition()
        self.pending = 0
        self.closed = False
        self.done = threading.Event()
        self.flush_now = threading.Event()
        self.threads = [
            threading.Thread(target=self._work, name=f"cloudlog-worker-{n}", daemon=True)
            for n in range(workers)
        ]
        for thread in self.threads:
            thread.start()

    # producer side

    def enqueue(self, item: _QueuedEntry) -> None:
        with self.cond:
            if self.closed:
                raise LoggerClosedError("cannot log to closed logger")
            self.pending += 1
        try:
            if self.block_on_full:
                self._put_blocking(item)
            else:
                try:
                    self.queue.put_nowait(item)
                except queue.Full:
                    raise BufferFullError("log buffer is full") from None
        except BaseException:
            self._settle(1)
            raise

    def _put_blocking(self, item: _QueuedEntry) -> None:
        while True:
            try:
                self.queue.put(item, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                if self.done.is_set():
                    raise ShutdownError("logger is shutting down") from None

    def flush(self) -> None:
        deadline = time.monotonic() + FLUSH_TIMEOUT
        with self.cond:
            while self.pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LogTimeoutError("timed out waiting for flush to complete")
                self.flush_now.set()
                self.cond.wait(remaining)
            self.flush_now.clear()

    def close(self) -> None:
        with self.cond:
            if self.closed:
                raise LoggerClosedError()
            self.closed = True
        try:
            self.flush()
        except LogTimeoutError as exc:
            raise LogTimeoutError(f"failed to flush logs during close: {exc.detail}") from exc
        self.done.set()
        for thread in self.threads:
            thread.join()

    def is_closed(self) -> bool:
        with self.cond:
            return self.closed

    # worker side

    def _settle(self, count: int) -> None:
        with self.cond:
            self.pending -= count
            self.cond.notify_all()

    def _work(self) -> None:
        batch: list[_QueuedEntry] = []
        last_tick = time.monotonic()
        while True:
            wait = min(_POLL_INTERVAL, max(0.0, last_tick + self.flush_interval - time.monotonic()))
            try:
                batch.append(self.queue.get(timeout=wait))
            except queue.Empty:
                pass

            if self.done.is_set():
                while True:
                    try:
                        batch.append(self.queue.get_nowait())
                    except queue.Empty:
                        break
                self._run_batch(batch)
                return

            now = time.monotonic()
            ticked = now - last_tick >= self.flush_interval
            if ticked:
                last_tick = now
            if batch and (len(batch) >= self.batch_size or ticked or self.flush_now.is_set()):
                self._run_batch(batch)
                batch = []

    def _run_batch(self, batch: list[_QueuedEntry]) -> None:
        if not batch:
            return
        try:
            self._process_batch(batch)
        finally:
            self._settle(len(batch))

    def _process_batch(self, batch: list[_QueuedEntry]) -> None:
        by_job: dict[str, list[LogEntry]] = {}
        for item in batch:
            by_job.setdefault(item.job, []).append(item.to_log_entry())

        combined = LokiEntry(streams=[])
        estimated = 0
        for job, entries in by_job.items():
            try:
                job_entry = self.formatter.format_batch(job, entries)
            except Exception as exc:
                self.error_handler(ProcessingError(f"batch formatting failed: {exc}"))
                self._process_single_entries(entries)
                continue

            estimated += self._estimate_size(job_entry)
            if estimated > self.max_request_size and combined.streams:
                self._deliver(combined, "sending batch failed")
                combined = LokiEntry(streams=[])
                estimated = 0
            combined.streams.extend(job_entry.streams)

        if combined.streams:
            self._deliver(combined, "sending final batch failed")

    def _process_single_entries(self, entries: list[LogEntry]) -> None:
        for entry in entries:
            try:
                formatted = self.formatter.format(entry)
            except Exception as exc:
                self.error_handler(ProcessingError(f"individual formatting failed: {exc}"))
                continue
            self._deliver(formatted, "sending individual entry failed")

    def _deliver(self, entry: LokiEntry, what: str) -> None:
        try:
            self.sender.send(entry)
        except Exception as exc:
            self.error_handler(ProcessingError(f"{what}: {exc}"))

    @staticmethod
    def _estimate_size(entry: LokiEntry) -> int:
        return sum(
            len(value[1].encode("utf-8")) + ESTIMATED_ENTRY_OVERHEAD
            for stream in entry.streams
            for value in stream.values
            if len(value) >= 2
        )


class AsyncLogger(Logger):
    """Queues entries without blocking and sends them in batches from worker threads.

    Loggers derived with ``with_context`` or ``with_job`` share the queue, the workers
    and the closed state of the logger they came from.
    """

    def __init__(
        self,
        sender: LogSender,
        *,
        formatter: Formatter | None = None,
        job: str = DEFAULT_JOB,
        metadata: Mapping[str, Any] | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        workers: int = DEFAULT_WORKER_COUNT,
        block_on_full: bool = False,
        max_request_size: int = DEFAULT_MAX_REQUEST_SIZE,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._pipeline = _Pipeline(
            sender=sender,
            formatter=formatter if formatter is not None else LokiFormatter(),
            buffer_size=int(_positive(buffer_size, DEFAULT_BUFFER_SIZE)),
            batch_size=int(_positive(batch_size, DEFAULT_BATCH_SIZE)),
            flush_interval=float(_positive(flush_interval, DEFAULT_FLUSH_INTERVAL)),
            workers=int(_positive(workers, DEFAULT_WORKER_COUNT)),
            block_on_full=block_on_full,
            max_request_size=int(_positive(max_request_size, DEFAULT_MAX_REQUEST_SIZE)),
            error_handler=error_handler if error_handler is not None else noop_error_handler,
        )
        self.job = job
        self.metadata: dict[str, Any] = dict(metadata or {})

    @classmethod
    def _sharing(cls, pipeline: _Pipeline, job: str, metadata: Mapping[str, Any]) -> AsyncLogger:
        logger = cls.__new__(cls)
        logger._pipeline = pipeline
        logger.job = job
        logger.metadata = dict(metadata)
        return logger

    @property
    def formatter(self) -> Formatter:
        return self._pipeline.formatter

    @property
    def buffer_size(self) -> int:
        return self._pipeline.buffer_size

    @property
    def batch_size(self) -> int:
        return self._pipeline.batch_size

    @property
    def flush_interval(self) -> float:
        return self._pipeline.flush_interval

    @property
    def workers(self) -> int:
        return self._pipeline.workers

    @property
    def block_on_full(self) -> bool:
        return self._pipeline.block_on_full

    @property
    def max_request_size(self) -> int:
        return self._pipeline.max_request_size

    @property
    def error_handler(self) -> ErrorHandler:
        return self._pipeline.error_handler

    def _log(self, level: str, message: str, args: tuple[Any, ...]) -> None:
        item = _QueuedEntry(
            job=self.job,
            level=level,
            message=message,
            keyvals=tuple(args),
            metadata=dict(self.metadata),
        )
        self._pipeline.enqueue(item)

    def flush(self) -> None:
        """Wait until every queued entry has been processed."""
        if self._pipeline.is_closed():
            raise LoggerClosedError()
        self._pipeline.flush()

    def close(self) -> None:
        """Stop accepting entries, deliver what is queued and stop the workers."""
        self._pipeline.close()

    def is_closed(self) -> bool:
        return self._pipeline.is_closed()

    def with_context(self, *args: Any) -> AsyncLogger:
        if self.is_closed():
            return self
        return self._sharing(self._pipeline, self.job, merge_keyvals(self.metadata, *args))

    def with_job(self, job: str) -> AsyncLogger:
        if self.is_closed():
            return self
        return self._sharing(self._pipeline, job, self.metadata)