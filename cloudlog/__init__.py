"""Structured key-value logging to Grafana Loki with synchronous and asynchronous loggers."""

__version__ = "0.1.0"

__all__ = [
    "async_logger",
    "client",
    "entry",
    "errors",
    "formatters",
    "sync_logger",
]