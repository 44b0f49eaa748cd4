import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from domain.common.exceptions import StorageException
from domain.payment.status import PaymentStatus
from fakes import make_record
from infrastructure.repositories.payment_store import RedisAuthorizationStore, RedisPaymentStore


class FakeRedisClient:
    """Dict-backed stand-in for RedisClient's document and lock API."""

    def __init__(self, fail=False):
        self.data = {}
        self.fail = fail
        self.locks = []

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("down")
        return self.data.get(key)

    async def set(self, key, value, ttl=None, nx=False):
        if self.fail:
            raise RedisConnectionError("down")
        self.data[key] = value
        return True

    async def set_many(self, mapping):
        if self.fail:
            raise RedisConnectionError("down")
        self.data.update(mapping)

    async def acquire_lock(self, key, timeout=10, blocking_timeout=5):
        if self.fail:
            raise TimeoutError(key)
        self.locks.append(key)
        return key

    async def release_lock(self, lock):
        self.locks.remove(lock)


@pytest.mark.asyncio
async def test_save_writes_prefixed_keys_in_one_call(logger):
    redis = FakeRedisClient()
    store = RedisPaymentStore(redis, logger)

    await store.save(make_record())

    assert set(redis.data) == {"payments:gw-1", "payments:pay-1"}
    assert redis.data["payments:gw-1"]["type"] == "pix"
    assert (await store.get("pay-1")).gateway_payment_id == "gw-1"


@pytest.mark.asyncio
async def test_update_status_locks_gateway_key(logger):
    redis = FakeRedisClient()
    store = RedisPaymentStore(redis, logger)
    await store.save(make_record())

    original_acquire = redis.acquire_lock
    acquired = []

    async def spy(key, **kwargs):
        acquired.append(key)
        return await original_acquire(key, **kwargs)

    redis.acquire_lock = spy
    await store.update_status("pay-1", PaymentStatus.PAID)

    assert acquired == ["payments:gw-1"]
    assert redis.locks == []
    assert redis.data["payments:pay-1"]["status"] == 2


@pytest.mark.asyncio
async def test_read_failure_raises_storage_error(logger):
    store = RedisPaymentStore(FakeRedisClient(fail=True), logger)
    with pytest.raises(StorageException):
        await store.get("gw-1")
    assert logger.events("error") == ["payment_store_read_failed"]


@pytest.mark.asyncio
async def test_write_failure_raises_storage_error(logger):
    store = RedisPaymentStore(FakeRedisClient(fail=True), logger)
    with pytest.raises(StorageException):
        await store.save(make_record())


@pytest.mark.asyncio
async def test_lock_timeout_raises_storage_error(logger):
    redis = FakeRedisClient()
    store = RedisPaymentStore(redis, logger)
    await store.save(make_record())
    redis.fail = True

    with pytest.raises(StorageException):
        async with store.lock("gw-1"):
            pass


@pytest.mark.asyncio
async def test_corrupt_document_raises_storage_error(logger):
    redis = FakeRedisClient()
    redis.data["payments:gw-1"] = ["not", "a", "document"]
    with pytest.raises(StorageException):
        await RedisPaymentStore(redis, logger).get("gw-1")


@pytest.mark.asyncio
async def test_authorization_outcomes():
    redis = FakeRedisClient()
    store = RedisAuthorizationStore(redis)

    await store.save_outcome("pay-1", {"status": "undefined"})

    assert redis.data == {"authorizations:pay-1": {"status": "undefined"}}
    assert await store.get_outcome("pay-1") == {"status": "undefined"}
