import logging
from unittest import mock

import pytest

from edgecache.client import (
    DEFAULT_API_ENDPOINT,
    DEFAULT_POLLING_FREQUENCY,
    DEFAULT_STREAMING_ENDPOINT,
    Client,
    ClientConfig,
    ConfigError,
    ShutdownRequested,
    UpdateStrategy,
)
from edgecache.memory import MemoryRepository
from edgecache.sse import Event


class FakeResponse:
    def __init__(self, status_code=200, text="", lines=()):
        self.status_code = status_code
        self.text = text
        self._lines = list(lines)
        self.closed = False

    def iter_lines(self):
        return iter(self._lines)

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.responses.pop(0)


def make_client(responses=(), strategy="", repository=None):
    repository = repository if repository is not None else MemoryRepository()
    session = FakeSession(responses)
    config = ClientConfig(api_key="placeholder", update_strategy=strategy, repository=repository)
    return Client(config, session=session), session, repository


def test_missing_api_key_rejected():
    with pytest.raises(ConfigError, match="missing API key"):
        Client(ClientConfig())


def test_low_polling_frequency_rejected():
    with pytest.raises(ConfigError, match="polling frequency"):
        Client(ClientConfig(api_key="placeholder", polling_frequency=5))


def test_invalid_update_strategy_rejected():
    with pytest.raises(ConfigError, match="invalid update strategy"):
        Client(ClientConfig(api_key="placeholder", update_strategy="push"))


def test_defaults_applied():
    client, _, _ = make_client()
    assert client.config.api_endpoint == DEFAULT_API_ENDPOINT
    assert client.config.streaming_endpoint == DEFAULT_STREAMING_ENDPOINT
    assert client.config.polling_frequency == DEFAULT_POLLING_FREQUENCY
    assert client.update_strategy is UpdateStrategy.POLLING
    assert client.streaming_client is None


def test_streaming_strategy_is_case_insensitive():
    client, _, _ = make_client(strategy="streaming")
    assert client.update_strategy is UpdateStrategy.STREAMING
    assert client.streaming_client.url == f"{DEFAULT_STREAMING_ENDPOINT}/events"


def test_fetch_warrants_counts_chunks_containing_key():
    client, session, _ = make_client([FakeResponse(text='{"a":1,"b":9}\n{"a":3}')])
    warrants = client.fetch_warrants()
    assert warrants == {"a": 2, "b": 1}
    url, kwargs = session.calls[0]
    assert url == f"{DEFAULT_API_ENDPOINT}/v2/expand"
    assert kwargs["headers"] == {"Authorization": "ApiKey placeholder"}


def test_fetch_warrants_http_error():
    client, _, _ = make_client([FakeResponse(status_code=500, text="boom")])
    with pytest.raises(RuntimeError, match="received HTTP 500: boom"):
        client.fetch_warrants()


def test_fetch_warrants_bad_body():
    client, _, _ = make_client([FakeResponse(text="[1, 2]")])
    with pytest.raises(RuntimeError, match="error reading response from server"):
        client.fetch_warrants()


def test_initialize_loads_repository():
    repo = MemoryRepository()
    repo.set("stale", 4)
    client, _, _ = make_client([FakeResponse(text='{"x":1}')], repository=repo)
    client.initialize()
    assert repo.cache.snapshot() == {"x": 1}
    assert repo.is_ready()


def test_initialize_failure_leaves_not_ready():
    client, _, repo = make_client([FakeResponse(status_code=401, text="no")])
    with pytest.raises(RuntimeError, match="error getting warrants"):
        client.initialize()
    assert not repo.is_ready()


def test_poll_once_replaces_contents():
    repo = MemoryRepository()
    repo.set("old", 1)
    repo.set("kept", 1)
    client, _, _ = make_client([FakeResponse(text='{"kept":1,"new":1}')], repository=repo)
    client.poll_once()
    assert set(repo.cache.snapshot()) == {"kept", "new"}


def test_set_and_delete_events():
    client, _, repo = make_client()
    client.process_event(Event(event="set_warrants", data='{"k":2}'))
    assert repo.cache.snapshot() == {"k": 2}
    client.process_event(Event(event="del_warrants", data='{"k":1}'))
    assert repo.get("k")
    client.process_event(Event(event="del_warrants", data='{"k":1}'))
    assert not repo.get("k")


def test_reset_event_reinitializes():
    client, session, repo = make_client([FakeResponse(text='{"fresh":1}')])
    repo.set("stale", 1)
    client.process_event(Event(event="reset_warrants"))
    assert set(repo.cache.snapshot()) == {"fresh"}
    assert len(session.calls) == 1


def test_shutdown_event_raises():
    client, _, _ = make_client()
    with pytest.raises(ShutdownRequested):
        client.process_event(Event(event="shutdown"))


def test_invalid_event_data_is_logged(caplog):
    client, _, repo = make_client()
    with caplog.at_level(logging.ERROR, logger="edgecache.client"):
        client.process_event(Event(event="set_warrants", data="not json"))
    assert "invalid event data not json" in caplog.text
    assert repo.cache.snapshot() == {}


def test_run_streaming_until_shutdown():
    responses = [
        FakeResponse(text='{"a":1}'),
        FakeResponse(lines=["event: set_warrants", 'data: {"b":1}', ""]),
        FakeResponse(text='{"c":1}'),
        FakeResponse(lines=["event: shutdown", ""]),
    ]
    client, session, repo = make_client(responses, strategy="STREAMING")
    with pytest.raises(ShutdownRequested):
        client.run()
    assert len(session.calls) == len(responses)
    assert session.calls[1][1]["params"] == {"stream": "placeholder"}
    assert set(repo.cache.snapshot()) == {"c"}
    assert repo.is_ready()


@mock.patch("edgecache.client.time.sleep")
def test_run_polling_stops_on_error(sleep):
    responses = [
        FakeResponse(text='{"a":1}'),
        FakeResponse(text='{"b":1}'),
        FakeResponse(status_code=500, text="down"),
    ]
    client, _, repo = make_client(responses)
    with pytest.raises(RuntimeError, match="error polling warrant updates"):
        client.run()
    sleep.assert_called_with(DEFAULT_POLLING_FREQUENCY)
    assert set(repo.cache.snapshot()) == {"b"}