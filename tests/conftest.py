"""
Shared fixtures: an in-memory stand-in for a Valkey server.

Several pools built on the same MockStore behave like separate processes
sharing one cache.
"""

import pytest
from valkey.exceptions import ResponseError

from cache_pool import CachePool, PoolConfig


class MockStore:
    """Dict-backed store implementing the commands the pool uses."""

    def __init__(self):
        self.data = {}
        self.expires = {}
        self.now = 1_000_000.0
        self.fail_pipelines = False
        self.flush_result = True
        self.commands = []
        self.pipelines_executed = 0

    def advance(self, seconds):
        self.now += seconds

    def _purge(self, key):
        deadline = self.expires.get(key)
        if deadline is not None and deadline <= self.now:
            self.data.pop(key, None)
            self.expires.pop(key, None)

    @staticmethod
    def _to_bytes(value):
        if isinstance(value, bytes):
            return value
        return str(value).encode()

    def get(self, key):
        self.commands.append(("get", key))
        self._purge(key)
        return self.data.get(key)

    def mget(self, keys):
        self.commands.append(("mget", tuple(keys)))
        result = []
        for key in keys:
            self._purge(key)
            result.append(self.data.get(key))
        return result

    def set(self, key, value, nx=False, ex=None):
        self.commands.append(("set", key))
        self._purge(key)
        if nx and key in self.data:
            return None
        self.data[key] = self._to_bytes(value)
        if ex is not None:
            self.expires[key] = self.now + ex
        else:
            self.expires.pop(key, None)
        return True

    def delete(self, *keys):
        self.commands.append(("delete",) + keys)
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self.data:
                removed += 1
            self.data.pop(key, None)
            self.expires.pop(key, None)
        return removed

    def ttl(self, key):
        self._purge(key)
        if key not in self.data:
            return -2
        if key not in self.expires:
            return -1
        return int(self.expires[key] - self.now)

    def flushdb(self):
        self.commands.append(("flushdb",))
        if self.flush_result:
            self.data.clear()
            self.expires.clear()
        return self.flush_result

    def pipeline(self, transaction=True):
        return MockPipeline(self)


class MockPipeline:
    """Queues commands and applies them to the store on execute()."""

    def __init__(self, store):
        self.store = store
        self.queued = []

    def set(self, key, value, nx=False, ex=None):
        self.queued.append(("set", (key, value), {"nx": nx, "ex": ex}))
        return self

    def delete(self, *keys):
        self.queued.append(("delete", keys, {}))
        return self

    def execute(self):
        if self.store.fail_pipelines:
            raise ResponseError("pipeline rejected")
        results = [
            getattr(self.store, name)(*args, **kwargs)
            for name, args, kwargs in self.queued
        ]
        self.queued = []
        self.store.pipelines_executed += 1
        return results


class MockValkeyClient:
    """Stands in for ValkeyClient; every instance may share one store."""

    def __init__(self, store):
        self.store = store
        self.closed = False

    @property
    def client(self):
        return self.store

    def close(self):
        self.closed = True


@pytest.fixture
def store():
    return MockStore()


@pytest.fixture
def make_pool(store):
    """Build pools sharing the same store, as separate processes would."""
    def factory(stampede_protection=False, lock_ttl=10):
        config = PoolConfig(stampede_protection=stampede_protection, lock_ttl=lock_ttl)
        return CachePool(client=MockValkeyClient(store), config=config)
    return factory


@pytest.fixture
def pool(make_pool):
    return make_pool()
