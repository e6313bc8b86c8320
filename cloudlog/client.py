"""Loki push payloads and an HTTP client that delivers them."""

from __future__ import annotations

import base64
import json
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit

from cloudlog.errors import (
    ConnectionFailedError,
    FormatError,
    InvalidInputError,
    ResponseError,
)


@dataclass
class LokiStream:
    """One labelled stream of ``[timestamp_ns, line]`` values."""

    stream: dict[str, str] = field(default_factory=dict)
    values: list[list[str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"stream": dict(self.stream), "values": [list(v) for v in self.values]}


@dataclass
class LokiEntry:
    """The full payload of a Loki push request."""

    streams: list[LokiStream] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"streams": [s.to_dict() for s in self.streams]}

    def to_json(self) -> str:
        return json.dumps(
            self.to_dict(), sort_keys=True, ensure_ascii=False, separators=(",", ":")
        )


@runtime_checkable
class LogSender(Protocol):
    """Anything that can deliver a Loki entry."""

    def send(self, entry: LokiEntry) -> None:
        """Deliver the entry, raising on failure."""


class _Transport(Protocol):
    def do(self, request: urllib.request.Request) -> tuple[int, bytes]:
        """Perform the request and return its status code and body."""


class UrllibTransport:
    """Performs HTTP requests with urllib; error statuses are returned, not raised."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def do(self, request: urllib.request.Request) -> tuple[int, bytes]:
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                return response.status, response.read()
        except urllib.error.HTTPError as exc:
            try:
                return exc.code, exc.read()
            finally:
                exc.close()


class LokiClient:
    """Sends Loki entries to a push endpoint with basic authentication."""

    def __init__(
        self,
        url: str,
        user: str,
        token: str,
        transport: _Transport | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self.url = url
        self.user = user
        self.token = token
        self.transport = transport if transport is not None else UrllibTransport()
        if timeout is not None and isinstance(self.transport, UrllibTransport):
            self.transport.timeout = timeout if timeout > 0 else None

    def send(self, entry: LokiEntry) -> None:
        try:
            payload = entry.to_json().encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise FormatError(f"failed to format Loki payload: {exc}") from exc

        try:
            scheme = urlsplit(self.url).scheme
        except ValueError as exc:
            raise InvalidInputError(f"failed to create request: {exc}") from exc
        if not scheme:
            raise InvalidInputError(
                f'failed to create request: parse "{self.url}": missing protocol scheme'
            )
        try:
            request = urllib.request.Request(self.url, data=payload, method="POST")
        except ValueError as exc:
            raise InvalidInputError(f"failed to create request: {exc}") from exc

        request.add_header("Content-Type", "application/json")
        credentials = base64.b64encode(f"{self.user}:{self.token}".encode("utf-8"))
        request.add_header("Authorization", "Basic " + credentials.decode("ascii"))

        try:
            status, body = self.transport.do(request)
        except Exception as exc:
            raise ConnectionFailedError(str(exc)) from exc

        if status >= 400:
            text = body.decode("utf-8", errors="replace")
            raise ResponseError(f"status code {status}: {text}")