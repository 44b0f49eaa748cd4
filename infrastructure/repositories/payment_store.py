"""
支付记录存储实现 - Redis 与内存两种后端

Records are JSON documents under ``payments:<id>``; authorization outcomes
under ``authorizations:<id>``.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from redis.exceptions import RedisError

from application.ports.collaborators import Logger
from domain.common.exceptions import DomainValidationException, StorageException
from domain.payment.entity import PaymentRecord, SplitEntry
from domain.payment.repository import AuthorizationStore, PaymentStore
from infrastructure.external.cache.redis_client import RedisClient


PAYMENTS_PREFIX = "payments"
AUTHORIZATIONS_PREFIX = "authorizations"


def _to_document(record: PaymentRecord) -> dict[str, Any]:
    """将领域实体转换为存储文档"""
    return {
        "gateway_payment_id": record.gateway_payment_id,
        "gateway_transaction_id": record.gateway_transaction_id,
        "platform_payment_id": record.platform_payment_id,
        "merchant_order_id": record.merchant_order_id,
        "order_id": record.order_id,
        "status": int(record.status),
        "type": record.payment_type,
        "amount": record.amount,
        "split_payments": record.splits_summary(),
        "consultant_split_amount": record.consultant_split_amount,
        "master_split_amount": record.master_split_amount,
        "callback_url": record.callback_url,
        "buyer_id": record.buyer_id,
        "buyer_document": record.buyer_document,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "last_updated": record.last_updated.isoformat() if record.last_updated else None,
    }


def _to_entity(doc: Any, key: str) -> PaymentRecord:
    """将存储文档转换为领域实体；损坏的文档抛出 StorageException"""
    if not isinstance(doc, dict):
        raise StorageException(f"Corrupt payment record under {key}", key=key)
    try:
        return PaymentRecord(
            gateway_payment_id=doc["gateway_payment_id"],
            gateway_transaction_id=doc.get("gateway_transaction_id"),
            platform_payment_id=doc.get("platform_payment_id"),
            merchant_order_id=doc.get("merchant_order_id") or "",
            order_id=doc.get("order_id"),
            status=int(doc["status"]),
            payment_type=doc.get("type") or "",
            amount=int(doc.get("amount") or 0),
            split_payments=[
                SplitEntry(
                    subordinate_merchant_id=s["subordinate_merchant_id"],
                    amount=int(s["amount"]),
                    mdr=s.get("mdr"),
                    fee=s.get("fee"),
                )
                for s in doc.get("split_payments") or []
            ],
            consultant_split_amount=doc.get("consultant_split_amount"),
            master_split_amount=doc.get("master_split_amount"),
            callback_url=doc.get("callback_url"),
            buyer_id=doc.get("buyer_id"),
            buyer_document=doc.get("buyer_document"),
            created_at=_parse_dt(doc.get("created_at")),
            last_updated=_parse_dt(doc.get("last_updated")),
        )
    except (KeyError, TypeError, ValueError, DomainValidationException) as exc:
        raise StorageException(f"Corrupt payment record under {key}: {exc}", key=key) from exc


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class RedisPaymentStore(PaymentStore):
    """支付记录存储的 Redis 实现"""

    def __init__(
        self,
        redis: RedisClient,
        logger: Logger,
        *,
        lock_timeout: float = 45,
        lock_blocking_timeout: float = 5,
    ):
        self.logger = logger
        self.redis = redis
        self.lock_timeout = lock_timeout
        self.lock_blocking_timeout = lock_blocking_timeout

    async def get(self, key: str) -> Optional[PaymentRecord]:
        storage_key = f"{PAYMENTS_PREFIX}:{key}"
        try:
            doc = await self.redis.get(storage_key)
        except (RedisError, ValueError) as exc:
            self.logger.error("payment_store_read_failed", key=key, error=str(exc))
            raise StorageException(f"Failed to read payment {key}", key=key) from exc
        if doc is None:
            return None
        return _to_entity(doc, key)

    async def put(self, key: str, record: PaymentRecord) -> None:
        try:
            await self.redis.set(f"{PAYMENTS_PREFIX}:{key}", _to_document(record))
        except RedisError as exc:
            self.logger.error("payment_store_write_failed", key=key, error=str(exc))
            raise StorageException(f"Failed to write payment {key}", key=key) from exc

    async def save(self, record: PaymentRecord) -> PaymentRecord:
        doc = _to_document(record)
        try:
            await self.redis.set_many({f"{PAYMENTS_PREFIX}:{k}": doc for k in record.keys})
        except RedisError as exc:
            self.logger.error("payment_store_write_failed", key=record.gateway_payment_id, error=str(exc))
            raise StorageException(
                f"Failed to write payment {record.gateway_payment_id}",
                key=record.gateway_payment_id,
            ) from exc
        return record

    @asynccontextmanager
    async def lock(self, key: str):
        try:
            held = await self.redis.acquire_lock(
                f"{PAYMENTS_PREFIX}:{key}",
                timeout=self.lock_timeout,
                blocking_timeout=self.lock_blocking_timeout,
            )
        except (TimeoutError, RedisError) as exc:
            self.logger.error("payment_store_lock_failed", key=key, error=str(exc))
            raise StorageException(f"Could not lock payment {key}", key=key) from exc
        try:
            yield
        finally:
            await self.redis.release_lock(held)


class RedisAuthorizationStore(AuthorizationStore):
    def __init__(self, redis: RedisClient):
        self.redis = redis

    async def get_outcome(self, payment_id: str) -> Optional[dict]:
        try:
            return await self.redis.get(f"{AUTHORIZATIONS_PREFIX}:{payment_id}")
        except (RedisError, ValueError) as exc:
            raise StorageException(f"Failed to read authorization {payment_id}", key=payment_id) from exc

    async def save_outcome(self, payment_id: str, outcome: dict) -> None:
        try:
            await self.redis.set(f"{AUTHORIZATIONS_PREFIX}:{payment_id}", outcome)
        except RedisError as exc:
            raise StorageException(f"Failed to write authorization {payment_id}", key=payment_id) from exc


class InMemoryPaymentStore(PaymentStore):
    """Single-process only. Useful for local dev and tests."""

    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, key: str) -> Optional[PaymentRecord]:
        doc = self._docs.get(key)
        return _to_entity(dict(doc), key) if doc is not None else None

    async def put(self, key: str, record: PaymentRecord) -> None:
        self._docs[key] = _to_document(record)

    async def save(self, record: PaymentRecord) -> PaymentRecord:
        doc = _to_document(record)
        for key in record.keys:
            self._docs[key] = dict(doc)
        return record

    @asynccontextmanager
    async def lock(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield


class InMemoryAuthorizationStore(AuthorizationStore):
    def __init__(self) -> None:
        self._outcomes: dict[str, dict] = {}

    async def get_outcome(self, payment_id: str) -> Optional[dict]:
        outcome = self._outcomes.get(payment_id)
        return dict(outcome) if outcome is not None else None

    async def save_outcome(self, payment_id: str, outcome: dict) -> None:
        self._outcomes[payment_id] = dict(outcome)
