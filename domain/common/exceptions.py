"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Iterable, Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class PaymentNotFoundException(BusinessException):
    """支付记录不存在，或存在但类型不符（reason 区分两种情况）"""

    NOT_FOUND = "not_found"
    WRONG_TYPE = "wrong_type"

    def __init__(self, payment_id: str, *, reason: str = NOT_FOUND, payment_type: Optional[str] = None):
        details = {"payment_id": payment_id, "reason": reason}
        if payment_type is not None:
            details["payment_type"] = payment_type
        message = (
            f"Payment {payment_id} not found"
            if reason == self.NOT_FOUND
            else f"Payment {payment_id} has unsupported type {payment_type!r}"
        )
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_FOUND,
            message=message,
            error_type="NotFoundError",
            details=details,
        )
        self.payment_id = payment_id
        self.reason = reason


class InvalidStatusTransitionException(BusinessException):
    """终态记录上的状态变更"""

    def __init__(self, payment_id: str, current: int, requested: int, *, message: Optional[str] = None):
        super().__init__(
            code=BusinessCode.INVALID_STATUS_TRANSITION,
            message=message or f"Payment {payment_id} is terminal ({current}); cannot move to {requested}",
            error_type="InvalidStatusTransition",
            details={"payment_id": payment_id, "current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class StaleStatusException(InvalidStatusTransitionException):
    """加锁重读后的状态已不是调用方决策时所见的状态"""

    def __init__(self, payment_id: str, current: int, requested: int, *, expected: Iterable[int]):
        expected = sorted(int(s) for s in expected)
        super().__init__(
            payment_id,
            current,
            requested,
            message=f"Payment {payment_id} changed to {current} (expected one of {expected}); cannot move to {requested}",
        )
        self.expected = expected


class StorageException(BusinessException):
    """存储不可用或记录损坏"""

    def __init__(self, message: str, *, key: Optional[str] = None):
        super().__init__(
            code=BusinessCode.STORAGE_ERROR,
            message=message,
            error_type="StorageError",
            details={"key": key} if key else None,
        )
