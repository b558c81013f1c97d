"""A small client for server-sent event streams with reconnection."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Mapping, Optional

import requests

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """One event received from a stream."""

    id: str = ""
    event: str = ""
    data: str = ""
    retry: str = ""


def iter_events(lines: Iterable) -> Iterator[Event]:
    """Parse stream lines into events; a blank line ends each event.

    An event is produced only when it carries an id, a type, data or a
    retry value. A trailing event without a closing blank line is dropped.
    """
    event_id = event_type = retry = ""
    data: list[str] = []
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line:
            joined = "\n".join(data)
            if event_id or event_type or joined or retry:
                yield Event(id=event_id, event=event_type, data=joined, retry=retry)
            event_id = event_type = retry = ""
            data = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data.append(value)
        elif name == "event":
            event_type = value
        elif name == "id":
            event_id = value
        elif name == "retry":
            retry = value


class SSEClient:
    """Subscribes to an event stream, retrying failed connections.

    Retries follow an exponential backoff; ``max_tries`` bounds the number
    of retries (0 means no bound other than ``max_elapsed_time``).
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        max_tries: int = 0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.headers = dict(headers or {})
        self.max_tries = max_tries
        self.session = session if session is not None else requests.Session()
        self.initial_interval = 0.5
        self.multiplier = 1.5
        self.randomization_factor = 0.5
        self.max_interval = 60.0
        self.max_elapsed_time = 900.0
        self.reconnect_notify: Optional[Callable[[Exception, float], None]] = None

    def _request_headers(self) -> dict[str, str]:
        return {
            "Cache-Control": "no-cache",
            "Accept": "text/event-stream",
            "Connection": "keep-alive",
            **self.headers,
        }

    def _delays(self, started: float) -> Iterator[float]:
        interval = self.initial_interval
        tries = 0
        while self.max_tries <= 0 or tries < self.max_tries:
            if time.monotonic() - started > self.max_elapsed_time:
                return
            tries += 1
            delta = self.randomization_factor * interval
            yield random.uniform(interval - delta, interval + delta)
            interval = min(interval * self.multiplier, self.max_interval)

    def _stream(self, channel: str, handler: Callable[[Event], None]) -> None:
        response = self.session.get(
            self.url,
            params={"stream": channel},
            headers=self._request_headers(),
            stream=True,
        )
        try:
            if response.status_code != 200:
                raise ConnectionError(
                    f"could not connect to stream: {response.status_code}"
                )
            for event in iter_events(response.iter_lines()):
                handler(event)
        finally:
            response.close()

    def subscribe(self, channel: str, handler: Callable[[Event], None]) -> None:
        """Deliver events from ``channel`` to ``handler`` until the stream ends.

        Connection failures are retried; once retries run out the last
        failure is raised. Errors raised by ``handler`` propagate unchanged.
        """
        delays = self._delays(time.monotonic())
        while True:
            try:
                self._stream(channel, handler)
                return
            except OSError as exc:
                delay = next(delays, None)
                if delay is None:
                    raise
                if self.reconnect_notify is not None:
                    self.reconnect_notify(exc, delay)
                time.sleep(delay)