"""Preferred-server hint per tenant.

The hint only decides which server is tried first. Lost updates between
concurrent logins are harmless: the failover loop still visits every server.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

import redis
from redis.exceptions import RedisError

log = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "LdapActiveConnection_"


class IndexStore(Protocol):
    def get(self, key: str) -> int | None: ...

    def set(self, key: str, value: int) -> None: ...


class MemoryStore:
    """Process-wide dict, last write wins."""

    def __init__(self) -> None:
        self._data: dict[str, int] = {}

    def get(self, key: str) -> int | None:
        return self._data.get(key)

    def set(self, key: str, value: int) -> None:
        self._data[key] = int(value)

    def clear(self) -> None:
        self._data.clear()


class RedisStore:
    """Shares the hint between worker processes through Redis."""

    def __init__(self, client: Any, namespace: str = "dirauth:") -> None:
        self._client = client
        self._namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "dirauth:") -> "RedisStore":
        client = redis.Redis.from_url(url, socket_timeout=1.0, socket_connect_timeout=1.0)
        return cls(client, namespace=namespace)

    def get(self, key: str) -> int | None:
        try:
            raw = self._client.get(self._namespace + key)
        except RedisError:
            log.warning("Redis недоступен, подсказка сервера не прочитана: %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("ascii", errors="replace")
        try:
            return int(raw)
        except ValueError:
            log.warning("Некорректное значение подсказки %s: %r", key, raw)
            return None

    def set(self, key: str, value: int) -> None:
        try:
            self._client.set(self._namespace + key, str(int(value)))
        except RedisError:
            log.warning("Redis недоступен, подсказка сервера не сохранена: %s", key, exc_info=True)


class PreferredServerCache:
    def __init__(self, store: IndexStore | None = None) -> None:
        self.store: IndexStore = store if store is not None else MemoryStore()

    @staticmethod
    def key(tenant_id: str | None) -> str:
        return f"{CACHE_KEY_PREFIX}{tenant_id or ''}"

    def get(self, tenant_id: str | None) -> int:
        value = self.store.get(self.key(tenant_id))
        return 0 if value is None else int(value)

    def set(self, tenant_id: str | None, index: int) -> None:
        self.store.set(self.key(tenant_id), int(index))
