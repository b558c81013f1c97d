"""Keeps a warrant repository in step with the upstream authorization service."""

from __future__ import annotations

import dataclasses
import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import requests

from .memory import MemoryRepository
from .repository import Repository
from .server import API_VERSION
from .sse import Event, SSEClient
from .warrants import WarrantSet

DEFAULT_API_ENDPOINT = "https://api.warrant.dev"
DEFAULT_STREAMING_ENDPOINT = "https://stream.warrant.dev/v1"
DEFAULT_POLLING_FREQUENCY = 10
STREAMING_MAX_TRIES = 10

EVENT_SET_WARRANTS = "set_warrants"
EVENT_DELETE_WARRANTS = "del_warrants"
EVENT_RESET_WARRANTS = "reset_warrants"
EVENT_SHUTDOWN = "shutdown"

_MAX_COUNT = 0xFFFF
_WHITESPACE = re.compile(r"\s*")

_log = logging.getLogger(__name__)


class UpdateStrategy(str, Enum):
    """How the client learns about warrant changes."""

    POLLING = "POLLING"
    STREAMING = "STREAMING"

    @classmethod
    def parse(cls, value: str) -> "UpdateStrategy":
        """Return the strategy named by ``value``, ignoring case."""
        for strategy in cls:
            if strategy.value.casefold() == str(value).casefold():
                return strategy
        raise ConfigError("invalid update strategy")


class ConfigError(ValueError):
    """The client configuration is invalid."""


class ShutdownRequested(Exception):
    """The upstream service asked the agent to shut down."""


@dataclass
class ClientConfig:
    api_key: str = dataclasses.field(default="", repr=False)
    api_endpoint: str = ""
    update_strategy: str = ""
    streaming_endpoint: str = ""
    polling_frequency: int = 0
    repository: Optional[Repository] = None


def _warrant_counts(obj: Any) -> WarrantSet:
    if obj is None:
        return WarrantSet()
    if not isinstance(obj, dict):
        raise ValueError("expected an object of warrant counts")
    counts = WarrantSet()
    for key, value in obj.items():
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _MAX_COUNT:
            raise ValueError(f"invalid count for warrant {key}")
        counts[key] = value
    return counts


def _parse_expanded(text: str) -> WarrantSet:
    """Count, over a sequence of JSON objects, how many hold each key."""
    decoder = json.JSONDecoder()
    warrants = WarrantSet()
    position = _WHITESPACE.match(text, 0).end()
    while position < len(text):
        chunk, position = decoder.raw_decode(text, position)
        for key in _warrant_counts(chunk):
            warrants.add(key)
        position = _WHITESPACE.match(text, position).end()
    return warrants


def _reconnect_notify(error: Exception, delay: float) -> None:
    _log.warning("Unable to connect.")
    _log.warning("%s", error)
    _log.warning("Retrying in %.3fs", delay)


class Client:
    """Loads warrants into a repository and keeps them up to date."""

    def __init__(
        self, config: ClientConfig, session: Optional[requests.Session] = None
    ) -> None:
        if not config.api_key:
            raise ConfigError("missing API key")
        polling_frequency = DEFAULT_POLLING_FREQUENCY
        if config.polling_frequency:
            if config.polling_frequency < 10:
                raise ConfigError("invalid polling frequency (must be >= 10)")
            polling_frequency = config.polling_frequency
        strategy = UpdateStrategy.parse(config.update_strategy or UpdateStrategy.POLLING.value)

        self.update_strategy = strategy
        self.config = dataclasses.replace(
            config,
            api_endpoint=config.api_endpoint or DEFAULT_API_ENDPOINT,
            streaming_endpoint=config.streaming_endpoint or DEFAULT_STREAMING_ENDPOINT,
            update_strategy=strategy.value,
            polling_frequency=polling_frequency,
            repository=config.repository if config.repository is not None else MemoryRepository(),
        )
        self.session = session if session is not None else requests.Session()
        self.streaming_client: Optional[SSEClient] = None
        if strategy is UpdateStrategy.STREAMING:
            self.streaming_client = SSEClient(
                f"{self.config.streaming_endpoint}/events",
                headers=self._auth_headers(),
                max_tries=STREAMING_MAX_TRIES,
                session=self.session,
            )
            self.streaming_client.reconnect_notify = _reconnect_notify

    @property
    def repository(self) -> Repository:
        return self.config.repository

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"ApiKey {self.config.api_key}"}

    def run(self) -> None:
        """Load the cache, then follow updates until an error or shutdown."""
        while True:
            try:
                self.initialize()
            except Exception as exc:
                raise RuntimeError("error trying to initialize edge agent") from exc

            if self.update_strategy is UpdateStrategy.POLLING:
                self._poll_forever()
                return

            try:
                self.streaming_client.subscribe(self.config.api_key, self.process_event)
            except ShutdownRequested:
                raise
            except Exception as exc:
                raise RuntimeError("error streaming warrant updates") from exc
            _log.info("Disconnected from %s.", self.config.streaming_endpoint)
            self.repository.set_ready(False)
            _log.info("Attempting to reconnect...")

    def _poll_forever(self) -> None:
        while True:
            time.sleep(self.config.polling_frequency)
            try:
                self.poll_once()
            except Exception as exc:
                raise RuntimeError("error polling warrant updates") from exc

    def initialize(self) -> None:
        """Reload the repository from the upstream service and mark it ready."""
        repository = self.repository
        repository.set_ready(False)
        try:
            repository.clear()
        except Exception as exc:
            raise RuntimeError("error clearing cache") from exc

        try:
            warrants = self.fetch_warrants()
        except Exception as exc:
            raise RuntimeError("error getting warrants") from exc

        for key, count in warrants.items():
            try:
                repository.set(key, count)
            except Exception as exc:
                raise RuntimeError(f"error setting warrant {key} in cache") from exc
        repository.set_ready(True)

    def fetch_warrants(self) -> WarrantSet:
        """Fetch the full set of warrants from the upstream service."""
        url = f"{self.config.api_endpoint}/{API_VERSION}/expand"
        try:
            response = self.session.get(url, headers=self._auth_headers())
        except requests.RequestException as exc:
            raise RuntimeError("error making request to server") from exc
        try:
            status = response.status_code
            text = response.text
        finally:
            response.close()

        if status < 200 or status >= 400:
            raise RuntimeError(f"received HTTP {status}: {text}")
        try:
            return _parse_expanded(text)
        except ValueError as exc:
            raise RuntimeError("error reading response from server") from exc

    def poll_once(self) -> None:
        """Fetch warrants once and make the repository match them."""
        try:
            warrants = self.fetch_warrants()
        except Exception as exc:
            raise RuntimeError("error getting warrants") from exc
        try:
            self.repository.update(warrants)
        except Exception as exc:
            raise RuntimeError("error updating warrants") from exc

    def process_event(self, event: Event) -> None:
        """Apply one stream event; failures are logged, shutdown is raised."""
        if event.event == EVENT_SHUTDOWN:
            raise ShutdownRequested("Shutdown event received. Shutting down.")
        try:
            if event.event == EVENT_SET_WARRANTS:
                self._apply(event, self.repository.incr, "error setting warrant {} in cache")
            elif event.event == EVENT_DELETE_WARRANTS:
                self._apply(event, self.repository.decr, "error removing warrant {} from cache")
            elif event.event == EVENT_RESET_WARRANTS:
                self.initialize()
        except Exception as exc:
            _log.error("error processing event %s.: %s", event.event, exc)

    @staticmethod
    def _apply(event: Event, step, failure: str) -> None:
        try:
            warrants = _warrant_counts(json.loads(event.data))
        except ValueError as exc:
            raise RuntimeError(f"invalid event data {event.data}") from exc
        for key, count in warrants.items():
            for _ in range(count):
                try:
                    step(key)
                except Exception as exc:
                    raise RuntimeError(failure.format(key)) from exc