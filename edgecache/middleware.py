"""WSGI middleware that writes one access-log line per request."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional
from urllib.parse import quote

_log = logging.getLogger("edgecache.access")

_DURATION_UNITS = (
    (1e-6, 1e9, "ns"),
    (1e-3, 1e6, "\u00b5s"),
    (1.0, 1e3, "ms"),
)


def _format_duration(seconds: float) -> str:
    """Render a duration with a unit suited to its size."""
    if seconds == 0:
        return "0s"
    magnitude = abs(seconds)
    for limit, scale, unit in _DURATION_UNITS:
        if magnitude < limit:
            if unit == "ns":
                return f"{round(seconds * scale)}{unit}"
            return _trim(seconds * scale) + unit
    return _trim(seconds) + "s"


def _trim(value: float) -> str:
    return f"{value:.9f}".rstrip("0").rstrip(".")


def format_access_line(
    host: str,
    method: str,
    uri: str,
    protocol: str,
    user_agent: str,
    status: int,
    elapsed: float,
) -> str:
    """Build an access-log line; ``elapsed`` is in seconds."""
    return (
        f'{host} - "{method} {uri} {protocol}" {user_agent} '
        f"{int(status)} {_format_duration(elapsed)}"
    )


def _host_of(address: str) -> str:
    """Strip a port from ``address`` when it has one."""
    if address.startswith("["):
        end = address.find("]")
        if end != -1 and address[end + 1:end + 2] == ":":
            return address[1:end]
        return address
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def _request_uri(environ: dict) -> str:
    raw = environ.get("REQUEST_URI") or environ.get("RAW_URI")
    if raw:
        return raw
    path = quote(
        environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", ""),
        safe="/;:@&=+$,!~*'()",
    )
    query = environ.get("QUERY_STRING", "")
    return f"{path}?{query}" if query else path


class LoggingMiddleware:
    """Wrap a WSGI application and log each request it handles."""

    def __init__(self, app: Callable, logger: Optional[logging.Logger] = None) -> None:
        self.app = app
        self.logger = logger or _log

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        started = time.perf_counter()
        status_code = 200

        def recording_start_response(status, headers, exc_info=None):
            nonlocal status_code
            status_code = int(str(status).split(None, 1)[0])
            if exc_info is None:
                return start_response(status, headers)
            return start_response(status, headers, exc_info)

        result = self.app(environ, recording_start_response)
        elapsed = time.perf_counter() - started

        self.logger.info(
            format_access_line(
                _host_of(environ.get("REMOTE_ADDR", "")),
                environ.get("REQUEST_METHOD", ""),
                _request_uri(environ),
                environ.get("SERVER_PROTOCOL", ""),
                environ.get("HTTP_USER_AGENT", ""),
                status_code,
                elapsed,
            )
        )
        return result