"""
支付存储接口 - 双键索引的支付记录与授权结果

同一逻辑记录以平台支付ID与网关支付ID两个键写入；所有状态变更都必须经过
``transition``/``update``/``update_status``：按记录的网关支付ID加锁，重新读取、
校验预期状态后再写回两个键。
"""
from abc import ABC, abstractmethod
from typing import AsyncContextManager, Callable, Collection, Optional

from domain.common.exceptions import PaymentNotFoundException
from .entity import PaymentRecord

RecordMutator = Callable[[PaymentRecord], PaymentRecord]


class PaymentStore(ABC):
    """支付记录存储抽象接口"""

    @abstractmethod
    async def get(self, key: str) -> Optional[PaymentRecord]:
        """按任一键读取；不存在时返回 None（不是错误）"""
        pass

    @abstractmethod
    async def put(self, key: str, record: PaymentRecord) -> None:
        """仅写入单个键"""
        pass

    @abstractmethod
    async def save(self, record: PaymentRecord) -> PaymentRecord:
        """在记录的所有键下写入同一份记录"""
        pass

    @abstractmethod
    def lock(self, key: str) -> AsyncContextManager[None]:
        """按键串行化的互斥锁"""
        pass

    async def transition(self, key: str, mutator: RecordMutator) -> tuple[PaymentRecord, PaymentRecord]:
        """
        加锁读-改-写，返回 (锁内读到的记录, 写回的记录)

        Raises PaymentNotFoundException if no record is stored under ``key``.
        Exceptions raised by ``mutator`` propagate and nothing is written.
        Callers must not already hold the record's lock.
        """
        found = await self.get(key)
        if found is None:
            raise PaymentNotFoundException(key)

        canonical = found.gateway_payment_id
        async with self.lock(canonical):
            current = await self.get(canonical) or await self.get(key) or found
            updated = mutator(current)
            await self.save(updated)
            return current, updated

    async def update(self, key: str, mutator: RecordMutator) -> PaymentRecord:
        _, updated = await self.transition(key, mutator)
        return updated

    async def update_status(
        self,
        key: str,
        status: int,
        *,
        expected: Optional[Collection[int]] = None,
        **changes,
    ) -> PaymentRecord:
        """
        应用终态规则后写回新状态并刷新 last_updated

        ``expected`` is checked against the status read under the lock; a
        mismatch raises StaleStatusException and nothing is written.
        """
        return await self.update(key, lambda record: record.with_status(status, expected=expected, **changes))


class AuthorizationStore(ABC):
    """授权结果存储 - 仅用于同一调用方的重放"""

    @abstractmethod
    async def get_outcome(self, payment_id: str) -> Optional[dict]:
        pass

    @abstractmethod
    async def save_outcome(self, payment_id: str, outcome: dict) -> None:
        pass
