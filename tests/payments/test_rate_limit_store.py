import pytest

from application.ports.rate_limiter import RateLimitStore
from infrastructure.cache import InMemoryRateLimitStore, RedisRateLimitStore


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class _FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def incrby(self, key, amount):
        self.ops.append(("incrby", key, amount))

    def expire(self, key, seconds):
        self.ops.append(("expire", key, seconds))

    async def execute(self):
        results = []
        for op, key, arg in self.ops:
            if op == "incrby":
                self.client.data[key] = int(self.client.data.get(key, 0)) + arg
                results.append(self.client.data[key])
            else:
                self.client.ttls[key] = arg
                results.append(True)
        return results


class _FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.transactions = []

    def pipeline(self, transaction=True):
        self.transactions.append(transaction)
        return _FakePipeline(self)

    async def get(self, key):
        value = self.data.get(key)
        return None if value is None else str(value)

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0


@pytest.mark.asyncio
async def test_in_memory_hits_accumulate_and_decay():
    clock = _Clock()
    store = InMemoryRateLimitStore(clock=clock)

    assert await store.hit("k", decay_seconds=60) == 1
    assert await store.hit("k", amount=3, decay_seconds=60) == 4
    assert await store.attempts("k") == 4

    clock.now += 61
    assert await store.attempts("k") == 0


@pytest.mark.asyncio
async def test_in_memory_window_slides_on_each_hit():
    clock = _Clock()
    store = InMemoryRateLimitStore(clock=clock)

    await store.hit("k", decay_seconds=60)
    clock.now += 50
    await store.hit("k", decay_seconds=60)
    clock.now += 50
    assert await store.attempts("k") == 2


@pytest.mark.asyncio
async def test_in_memory_clear():
    store = InMemoryRateLimitStore()
    await store.hit("k", amount=5)
    await store.clear("k")
    assert await store.attempts("k") == 0


@pytest.mark.asyncio
async def test_redis_store_increments_and_expires_in_one_transaction():
    client = _FakeRedis()
    store = RedisRateLimitStore(client, namespace="resrv-paypal")

    assert await store.hit("paypal-capture:1.2.3.4", amount=3, decay_seconds=60) == 3
    assert await store.attempts("paypal-capture:1.2.3.4") == 3
    assert client.ttls["resrv-paypal:paypal-capture:1.2.3.4"] == 60
    assert client.transactions == [True]

    await store.clear("paypal-capture:1.2.3.4")
    assert await store.attempts("paypal-capture:1.2.3.4") == 0


def test_stores_satisfy_port():
    assert isinstance(InMemoryRateLimitStore(), RateLimitStore)
    assert isinstance(RedisRateLimitStore(_FakeRedis()), RateLimitStore)
