# edgecache

`edgecache` is an edge agent for warrant-based authorization. It keeps a local
copy of an organisation's warrants, either in process memory or in Redis, and
answers authorization checks from that copy without a round trip to the
central API.

The agent has two halves:

* a **client** (`edgecache.client.Client`) that loads every warrant from the
  API, then keeps the cache current, either by polling the API at a fixed
  interval or by following a server-sent-events stream of changes;
* a **server** (`edgecache.server.Server`), a small WSGI application, that
  answers `/v2/check` and `/v2/authorize` requests from the cache and reports
  readiness on `/health`.

## Installation

```
pip install .
pip install ".[test]"   # with pytest, to run the tests
```

## Caches

Two stores implement the abstract `Repository` class from
`edgecache.repository` (`get`, `set`, `incr`, `decr`, `update`, `clear`,
`set_ready`, `is_ready`):

* `MemoryRepository` (`edgecache.memory`) keeps a count per warrant in a
  thread-safe `WarrantCache`. It is ready as soon as it is created.
* `RedisRepository` (`edgecache.redis_store`) stores the counts in Redis under
  the `warrant:` key prefix. `RedisRepositoryConfig` defaults to `127.0.0.1`,
  port `6379`, database `0`; when a password is set the connection uses TLS
  (`rediss://`). The repository pings the server when it is created; a failed
  ping or any failed Redis command raises `RedisRepositoryError`. An existing
  `redis.Redis` client may be passed in instead of a configuration.

Both count how many times a warrant has been granted: `incr` adds one, `decr`
removes one and drops the key when the count reaches zero, and `update`
replaces the whole contents with a fresh set of counts.

`WarrantSet` (`edgecache.warrants`) is a `dict` of warrant key to count with
`add`, `has` and `count` helpers; counts are 16-bit and wrap on overflow.

```python
from edgecache.memory import MemoryRepository
from edgecache.warrants import WarrantSet

repo = MemoryRepository()
warrants = WarrantSet()
warrants.add("report:q3#viewer@user:alice")

repo.update(warrants)
repo.get("report:q3#viewer@user:alice")   # True
repo.decr("report:q3#viewer@user:alice")
repo.get("report:q3#viewer@user:alice")   # False
```

## Keeping the cache current

`ClientConfig` takes the API key, the API and streaming endpoints, the update
strategy, the polling frequency in seconds and the repository to fill (a new
`MemoryRepository` when none is given). The strategy is a string matched
without regard to case against `UpdateStrategy`: `"POLLING"` (the default,
every 10 seconds; any other interval must be at least 10) or `"STREAMING"`.
A missing API key, an unknown strategy or a too-short polling interval raises
`ConfigError`.

```python
from edgecache.client import Client, ClientConfig
from edgecache.memory import MemoryRepository

repo = MemoryRepository()
client = Client(
    ClientConfig(api_key="placeholder", update_strategy="STREAMING", repository=repo),
    None,
)
client.run()  # blocks, keeping `repo` in step with the API
```

`Client.initialize()` clears the repository, fetches every warrant from
`<api_endpoint>/v2/expand` and marks the repository ready;
`Client.fetch_warrants()` and `Client.poll_once()` are available for callers
that want to drive updates themselves. Failures are raised as `RuntimeError`
with the underlying error chained.

With streaming, `set_warrants` and `del_warrants` events adjust counts,
`reset_warrants` reloads everything, and a `shutdown` event raises
`ShutdownRequested` out of `run()`. Errors while applying an event are logged
and the stream carries on. Connection failures are retried with exponential
backoff, up to 10 times; if the stream ends, the cache is marked not ready and
the client loads it again and reconnects. The stream reader itself is
`edgecache.sse.SSEClient`, with `iter_events` to parse event lines.

## Answering checks

`Server` wraps a repository in a WSGI application. It can be served with
`Server.run()`, which listens on all interfaces on the configured port using
Werkzeug's development server, or mounted in any WSGI server, since a `Server`
instance is itself the WSGI callable. Each request is logged as one
access-log line by `LoggingMiddleware` on the `edgecache.access` logger.

```python
import logging
import threading

from edgecache.client import Client, ClientConfig
from edgecache.memory import MemoryRepository
from edgecache.server import Server, ServerConfig

logging.basicConfig(level=logging.INFO)

repo = MemoryRepository()
client = Client(ClientConfig(api_key="placeholder", repository=repo), None)
threading.Thread(target=client.run, daemon=True).start()

Server(ServerConfig(repository=repo, port=3000)).run()
```

A check is a `POST` with a JSON body:

```json
{
  "op": "anyOf",
  "warrants": [
    {"objectType": "report", "objectId": "q3", "relation": "viewer",
     "subject": {"objectType": "user", "objectId": "alice"}}
  ]
}
```

Each warrant is looked up under the key
`objectType:objectId#relation@subjectType:subjectId`, with `#subjectRelation`
and `[policy]` appended when given. `op` is `anyOf` or `allOf`; it may be left
out only when a single warrant is given. The reply is
`{"code": 200, "result": "Authorized"}` or
`{"code": 403, "result": "Not Authorized"}`, both with HTTP status 200.

Errors are returned as `{"code": ..., "message": ...}`: `503` with
`cache_not_ready` while the cache is not ready, `400` with `invalid_request`
for a body that is not a JSON object, and `400` with `invalid_parameter` for a
bad `op` or warrant. `/health` answers `200` when the cache is ready and `500`
otherwise. Other paths answer `404`.

## What it does not do

* There is no command-line program: the client and server are started from
  Python code as above, and configuration is passed in directly rather than
  read from files or the environment.
* The server does not authenticate callers; `ServerConfig.api_key` is kept but
  not checked.