"""
Payments API routes.

The authorization, cancellation, settlement and refund endpoints answer in the
payment-provider protocol shape the platform expects (no envelope); the
voucher refund and split feed endpoints use the unified response envelope.
Keep this thin: all decisions live in the application services.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import (
    get_authorization_service,
    get_operations_service,
    get_voucher_refund_service,
)
from application.dtos.payments import (
    AuthorizationRequest,
    AuthorizationResponse,
    CancellationRequest,
    CancellationResponse,
    RefundRequest,
    RefundResponse,
    SettlementRequest,
    SettlementResponse,
    VoucherRefundRequest,
)
from application.services.authorization_service import AuthorizationService
from application.services.operations_service import PaymentOperationsService
from application.services.voucher_refund_service import VoucherRefundService
from core.response import success_response


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", summary="Authorize PIX payment", response_model=AuthorizationResponse)
async def authorize_payment(
    payload: AuthorizationRequest,
    service: AuthorizationService = Depends(get_authorization_service),
):
    return await service.authorize(payload)


@router.post("/{payment_id}/cancellations", summary="Cancel payment", response_model=CancellationResponse)
async def cancel_payment(
    payment_id: str,
    payload: CancellationRequest,
    service: PaymentOperationsService = Depends(get_operations_service),
):
    return await service.cancel(payload.model_copy(update={"payment_id": payment_id}))


@router.post("/{payment_id}/settlements", summary="Settle payment", response_model=SettlementResponse)
async def settle_payment(
    payment_id: str,
    payload: SettlementRequest,
    service: PaymentOperationsService = Depends(get_operations_service),
):
    return await service.settle(payload.model_copy(update={"payment_id": payment_id}))


@router.post("/{payment_id}/refunds", summary="Refund payment", response_model=RefundResponse)
async def refund_payment(
    payment_id: str,
    payload: RefundRequest,
    service: PaymentOperationsService = Depends(get_operations_service),
):
    return await service.refund(payload.model_copy(update={"payment_id": payment_id}))


@router.post("/{payment_id}/voucher-refund", summary="Refund through a voucher")
async def voucher_refund(
    payment_id: str,
    payload: VoucherRefundRequest,
    service: VoucherRefundService = Depends(get_voucher_refund_service),
):
    result = await service.refund(payment_id, payload)
    return success_response(data=result.model_dump(mode="json", by_alias=True), message=result.message)


@router.get("/{payment_id}/splits", summary="Split feed")
async def get_splits(
    payment_id: str,
    service: PaymentOperationsService = Depends(get_operations_service),
):
    feed = await service.get_splits(payment_id)
    return success_response(data=feed.model_dump(mode="json", by_alias=True))
