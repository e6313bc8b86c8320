# cloudlog

Structured key-value logging for Grafana Loki and other log backends.

`cloudlog` turns calls such as `logger.info("User logged in", "user_id", "12345")`
into Loki push-API payloads. The package has no runtime dependencies beyond the
standard library.

## Modules

- `cloudlog.client`: `LokiEntry` and `LokiStream` (the push payload), the
  `LogSender` protocol, `LokiClient` (HTTP POST with basic authentication) and
  `UrllibTransport`.
- `cloudlog.entry`: the `LogEntry` record and `new_log_entry(job, level, *args)`.
- `cloudlog.formatters`: the `Formatter` base class, `LokiFormatter` and
  `StringFormatter`.
- `cloudlog.sync_logger`: the `Logger` base class, `SyncLogger` and
  `merge_keyvals`.
- `cloudlog.async_logger`: `AsyncLogger`, which batches entries on worker threads.
- `cloudlog.errors`: the exception classes and their check functions.

## Installation

```
pip install cloudlog
```

## Quick start

```python
from cloudlog.client import LokiClient
from cloudlog.sync_logger import SyncLogger

sender = LokiClient(
    "http://localhost:3100/loki/api/v1/push",
    "user",
    "token",
    timeout=5.0,
)
logger = SyncLogger(sender, job="my-service")

logger.info("User logged in", "user_id", "12345", "method", "oauth")
```

`LokiClient` uses a `UrllibTransport` when no transport is given. The `timeout`
keyword (in seconds) is applied to that transport; a value of zero or less means
no timeout. Any object with a `do(request)` method that returns
`(status, body)` can be passed as the transport instead.

Any object with a `send(entry)` method can stand in for `LokiClient`, for
example one that prints the lines to the console.

### Key-value arguments

- Arguments after the message are read as alternating keys and values.
- A key that is not a string is skipped together with its value.
- A key left over at the end, with no value after it, is ignored.
- The message is stored under the key `message`.

## Context

`with_context` returns a new logger that adds its pairs to every entry.
`with_job` returns a new logger that uses a different job name.
The original logger is left unchanged in both cases.

```python
user_logger = logger.with_context("user_id", "12345", "session_id", "abc123")
user_logger.info("Profile updated")
user_logger.warn("Password change attempted")
```

Loggers are context managers: leaving the `with` block calls `close()`.

## Asynchronous logging

```python
from cloudlog.async_logger import AsyncLogger

async_logger = AsyncLogger(
    sender,
    job="my-service",
    buffer_size=10000,
    batch_size=100,
    flush_interval=1.0,
    workers=4,
)
async_logger.info("Processing item", "item_id", "item-1")

async_logger.flush()   # wait until everything queued so far has been handled
async_logger.close()   # flush, stop the workers and release resources
```

How the asynchronous logger behaves:

- By default it buffers up to 1000 entries, sends batches of 100, flushes at
  least every 5 seconds and runs 2 worker threads. Values of zero or less fall
  back to these defaults.
- Entries of one batch are grouped by job into one stream each. A request is
  split when its estimated size passes `max_request_size` (5 MiB by default).
- When the buffer is full, a log call raises `BufferFullError`. With
  `block_on_full=True` it waits for room instead, and raises `ShutdownError` if
  the logger shuts down while it waits.
- `flush()` raises `LogTimeoutError` if the queue is not drained within 2 seconds.
- Problems in the background workers (a failed send, a failed format) are passed
  to `error_handler` as `ProcessingError`, because they cannot be raised to the
  caller. If batch formatting fails, the entries are formatted and sent one by one.
- Loggers made with `with_context` or `with_job` share the queue, the workers and
  the closed state of the logger they came from.
- Logging or flushing after `close()`, or closing twice, raises `LoggerClosedError`.

## Formatting

Both formatters accept a `time_format` strftime pattern; `None` (the default)
writes RFC 3339 timestamps.

- `LokiFormatter` (the default) writes each entry as a JSON object with sorted
  keys. It holds the timestamp, job and level fields and every key-value pair of
  the entry. The field names can be changed with `timestamp_field`, `level_field`
  and `job_field`. Keys named in `label_keys` are also copied into the stream
  labels.
- `StringFormatter` writes `time`, `job`, `level` and every pair as `key=value`
  items, each followed by a space. `key_value_separator` and `pair_separator`
  change the two separators. It is meant for console output.

```python
from cloudlog.formatters import LokiFormatter, StringFormatter
from cloudlog.sync_logger import SyncLogger

loki_logger = SyncLogger(
    sender,
    formatter=LokiFormatter(
        label_keys=("request_id", "user_id"),
        timestamp_field="@timestamp",
        level_field="severity",
    ),
)
console_formatter = StringFormatter(key_value_separator=": ", pair_separator=" | ")
```

## Errors

Failures are raised as subclasses of `CloudLogError` from `cloudlog.errors`:

| Exception | Raised when |
| --- | --- |
| `FormatError` | an entry or payload cannot be formatted |
| `ConnectionFailedError` | the request to the backend fails |
| `ResponseError` | the backend answers with status 400 or above |
| `InvalidInputError` | a request cannot be built, e.g. the URL has no scheme |
| `BufferFullError` | the asynchronous buffer is full |
| `LogTimeoutError` | a flush does not finish in time |
| `ShutdownError` | the logger shuts down while a call waits for buffer room |
| `LoggerClosedError` | the logger has already been closed |
| `ProcessingError` | background processing fails |

Each exception has a matching check function, such as `is_connection_error(err)`
or `is_buffer_full_error(err)`.

```python
from cloudlog.errors import CloudLogError, is_connection_error

try:
    logger.info("Operation performed", "status", "success")
except CloudLogError as err:
    if is_connection_error(err):
        ...
```

## What the package does not do

`cloudlog` is a library only. It installs no command-line program, and it has no
ready-made console sender: to print log lines instead of sending them, pass your
own object with a `send(entry)` method.