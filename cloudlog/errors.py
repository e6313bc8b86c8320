"""Exception types raised by clients, formatters and loggers, with predicates to classify them."""

from __future__ import annotations

from typing import Callable


class CloudLogError(Exception):
    """Base class of every error raised by this package."""

    message = "cloudlog error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)


class FormatError(CloudLogError):
    """A log entry or payload could not be formatted."""

    message = "invalid log format"


class ConnectionFailedError(CloudLogError):
    """The log service could not be reached."""

    message = "connection to log service failed"


class ResponseError(CloudLogError):
    """The log service answered with an error status."""

    message = "received error response from log service"


class InvalidInputError(CloudLogError):
    """Input parameters were invalid."""

    message = "invalid input parameters"


class BufferFullError(CloudLogError):
    """The asynchronous buffer has no room for another entry."""

    message = "log buffer is full"


class LogTimeoutError(CloudLogError):
    """An operation did not finish in time."""

    message = "operation timed out"


class ShutdownError(CloudLogError):
    """A problem occurred while shutting down."""

    message = "error during shutdown"


class LoggerClosedError(CloudLogError):
    """The logger was used after it had been closed."""

    message = "logger is closed"


class ProcessingError(CloudLogError):
    """Background processing of log entries failed."""

    message = "asynchronous log processing failed"


ErrorHandler = Callable[[Exception], None]


def noop_error_handler(err: Exception) -> None:
    """Error handler that ignores the error."""


def is_format_error(err: BaseException) -> bool:
    return isinstance(err, FormatError)


def is_connection_error(err: BaseException) -> bool:
    return isinstance(err, ConnectionFailedError)


def is_response_error(err: BaseException) -> bool:
    return isinstance(err, ResponseError)


def is_input_error(err: BaseException) -> bool:
    return isinstance(err, InvalidInputError)


def is_buffer_full_error(err: BaseException) -> bool:
    return isinstance(err, BufferFullError)


def is_timeout_error(err: BaseException) -> bool:
    return isinstance(err, LogTimeoutError)


def is_shutdown_error(err: BaseException) -> bool:
    return isinstance(err, ShutdownError)


def is_logger_closed_error(err: BaseException) -> bool:
    return isinstance(err, LoggerClosedError)


def is_processing_error(err: BaseException) -> bool:
    return isinstance(err, ProcessingError)