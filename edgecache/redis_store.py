"""A warrant cache kept in Redis."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Mapping, Optional

import redis

from .repository import Repository

NAMESPACE = "warrant"
DEFAULT_HOSTNAME = "127.0.0.1"
DEFAULT_PORT = "6379"
MAX_DECR_RETRIES = 10


class RedisRepositoryError(Exception):
    """A Redis operation failed."""


@dataclass
class RedisRepositoryConfig:
    hostname: str = ""
    password: str = ""
    port: str = ""
    database: int = 0

    def connection_url(self) -> str:
        """Return the connection URL; TLS is used when a password is set."""
        hostname = self.hostname or DEFAULT_HOSTNAME
        port = self.port or DEFAULT_PORT
        scheme = "rediss" if self.password else "redis"
        return f"{scheme}://default:{self.password}@{hostname}:{port}/{self.database}"


def _decode(key) -> str:
    return key.decode() if isinstance(key, bytes) else key


class RedisRepository(Repository):
    """A repository storing counts under ``warrant:<key>`` in Redis."""

    def __init__(
        self,
        config: Optional[RedisRepositoryConfig] = None,
        client: Optional[redis.Redis] = None,
    ) -> None:
        config = config or RedisRepositoryConfig()
        if client is None:
            url = config.connection_url()
            try:
                client = redis.Redis.from_url(url)
            except ValueError as exc:
                raise RedisRepositoryError(f"invalid connection string {url}") from exc
        try:
            client.ping()
        except redis.RedisError as exc:
            raise RedisRepositoryError(
                "Unable to ping redis. Check your credentials."
            ) from exc
        self._client = client
        self._ready = True
        self._lock = threading.Lock()

    @staticmethod
    def _with_namespace(key: str) -> str:
        return f"{NAMESPACE}:{key}"

    @staticmethod
    def _without_namespace(key: str) -> str:
        return key.removeprefix(f"{NAMESPACE}:")

    def _namespaced_keys(self):
        return (_decode(key) for key in self._client.scan_iter(match=f"{NAMESPACE}*"))

    def get(self, key: str) -> bool:
        try:
            value = self._client.get(self._with_namespace(key))
        except redis.RedisError as exc:
            raise RedisRepositoryError("error getting key from redis") from exc
        return value is not None

    def set(self, key: str, count: int) -> None:
        try:
            self._client.set(self._with_namespace(key), count)
        except redis.RedisError as exc:
            raise RedisRepositoryError("error setting key in redis") from exc

    def incr(self, key: str) -> None:
        try:
            self._client.incr(self._with_namespace(key))
        except redis.RedisError as exc:
            raise RedisRepositoryError("error incrementing key in redis") from exc

    def decr(self, key: str) -> None:
        namespaced = self._with_namespace(key)
        for _ in range(MAX_DECR_RETRIES):
            try:
                with self._client.pipeline() as pipe:
                    pipe.watch(namespaced)
                    try:
                        count = int(pipe.decr(namespaced))
                    except redis.WatchError:
                        raise
                    except redis.RedisError as exc:
                        raise RedisRepositoryError(
                            "error decrementing key in redis"
                        ) from exc
                    if count <= 0:
                        try:
                            pipe.delete(namespaced)
                        except redis.WatchError:
                            raise
                        except redis.RedisError as exc:
                            raise RedisRepositoryError(
                                "error deleting key from redis"
                            ) from exc
                return
            except redis.WatchError:
                continue
            except redis.RedisError as exc:
                raise RedisRepositoryError("error calling watch in redis") from exc
        raise RedisRepositoryError(f"unable to acquire lock to remove {key} from cache")

    def update(self, warrants: Mapping[str, int]) -> None:
        try:
            for namespaced in self._namespaced_keys():
                key = self._without_namespace(namespaced)
                if key in warrants:
                    self.set(key, warrants[key])
                else:
                    try:
                        self._client.delete(namespaced)
                    except redis.RedisError as exc:
                        raise RedisRepositoryError(
                            "error deleting key from redis"
                        ) from exc
        except redis.RedisError as exc:
            raise RedisRepositoryError("error iterating over keys in redis") from exc
        for key, count in warrants.items():
            self.set(key, count)

    def clear(self) -> None:
        try:
            for namespaced in self._namespaced_keys():
                try:
                    self._client.delete(namespaced)
                except redis.RedisError as exc:
                    raise RedisRepositoryError("error deleting key from redis") from exc
        except redis.RedisError as exc:
            raise RedisRepositoryError("error iterating over keys in redis") from exc

    def set_ready(self, ready: bool) -> None:
        with self._lock:
            self._ready = ready

    def is_ready(self) -> bool:
        with self._lock:
            return self._ready