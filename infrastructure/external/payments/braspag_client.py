"""
Braspag PIX gateway client.

Sales and voids go to the transactional API; status queries go to the query
API. Every call carries the merchant credential headers, plus a bearer token
when a client secret is configured.
"""
from __future__ import annotations

import time
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from application.dtos.payments import SaleRequest, SaleResult, VoidResult
from infrastructure.external.payments.authenticator import GatewayAuthenticator
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    GatewayError,
    GatewayNotFoundError,
    SplitTransactionalError,
)


class BraspagPixClient(BasePaymentClient):
    provider = "braspag"

    def __init__(
        self,
        *,
        merchant_id: str,
        merchant_key: str,
        api_url: str,
        query_url: str,
        auth_url: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, transport=transport)
        self.merchant_id = merchant_id
        self._merchant_key = merchant_key
        self.api_url = api_url.rstrip("/")
        self.query_url = query_url.rstrip("/")
        self.authenticator: Optional[GatewayAuthenticator] = None
        if client_secret and auth_url:
            self.authenticator = GatewayAuthenticator(
                auth_url=auth_url,
                merchant_id=merchant_id,
                client_secret=client_secret,
                send=self._send,
            )
        self._log("gateway_client_initialized", merchant_id=merchant_id, api_url=self.api_url)

    async def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "MerchantId": self.merchant_id,
            "MerchantKey": self._merchant_key,
        }
        if self.authenticator is not None:
            headers.update(await self.authenticator.auth_headers())
        return headers

    async def create_sale(self, req: SaleRequest) -> SaleResult:
        started = time.perf_counter()
        self._log(
            "gateway_create_sale_started",
            merchant_order_id=req.merchant_order_id,
            amount=req.payment.amount,
            split_count=len(req.payment.split_payments or []),
        )
        # Not retried: a replayed POST could open a second charge.
        resp = await self._send(
            "POST",
            f"{self.api_url}/v2/sales/",
            operation="gateway_create_sale",
            retry=False,
            json=req.to_payload(),
            headers=await self._headers(),
        )
        body = self._body(resp)
        if resp.status_code >= 400:
            self._raise_for_error(resp, body, operation="create_sale")
        result = self._parse_payment(body, operation="create_sale")
        self._log(
            "gateway_create_sale_succeeded",
            merchant_order_id=req.merchant_order_id,
            payment_id=result.payment_id,
            status=result.status,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result

    async def query_status(self, payment_id: str) -> SaleResult:
        resp = await self._send(
            "GET",
            f"{self.query_url}/v2/sales/{payment_id}",
            operation="gateway_query_status",
            headers=await self._headers(),
        )
        if resp.status_code == 404:
            self._log("gateway_payment_not_found", payment_id=payment_id)
            raise GatewayNotFoundError(payment_id, provider=self.provider)
        body = self._body(resp)
        if resp.status_code >= 400:
            self._raise_for_error(resp, body, operation="query_status")
        result = self._parse_payment(body, operation="query_status")
        self._log("gateway_query_status_succeeded", payment_id=payment_id, status=result.status)
        return result

    async def void_payment(self, payment_id: str, amount: Optional[int] = None) -> VoidResult:
        params = {"amount": amount} if amount is not None else None
        resp = await self._send(
            "PUT",
            f"{self.api_url}/v2/sales/{payment_id}/void",
            operation="gateway_void_payment",
            params=params,
            json={},
            headers=await self._headers(),
        )
        if resp.status_code == 404:
            raise GatewayNotFoundError(payment_id, provider=self.provider)
        body = self._body(resp)
        if resp.status_code >= 400:
            result = self._try_void_result(body)
            if result is not None and result.is_split_failure:
                self._log_error(
                    "gateway_void_split_transactional_error",
                    payment_id=payment_id,
                    reason_code=result.reason_code,
                    reason_message=result.reason_message,
                )
                raise SplitTransactionalError(
                    result.reason_message or "Split transactional error",
                    provider=self.provider,
                    status_code=resp.status_code,
                    reason_code=result.reason_code,
                    details={"payment_id": payment_id, "split_errors": result.split_errors},
                )
            self._raise_for_error(resp, body, operation="void_payment")
        result = self._try_void_result(body) or VoidResult()
        self._log(
            "gateway_void_payment_completed",
            payment_id=payment_id,
            status=result.status,
            reason_code=result.reason_code,
        )
        return result

    # Helpers
    @staticmethod
    def _body(resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    def _parse_payment(self, body: Any, *, operation: str) -> SaleResult:
        payment = body.get("Payment") if isinstance(body, dict) else None
        if not isinstance(payment, dict):
            return SaleResult()
        try:
            return SaleResult.model_validate(payment)
        except ValidationError as exc:
            raise GatewayError(f"{operation}: unexpected gateway payload", provider=self.provider) from exc

    @staticmethod
    def _try_void_result(body: Any) -> Optional[VoidResult]:
        if not isinstance(body, dict):
            return None
        try:
            return VoidResult.model_validate(body)
        except ValidationError:
            return None

    def _raise_for_error(self, resp: httpx.Response, body: Any, *, operation: str) -> None:
        messages: list[str] = []
        reason_code = None
        if isinstance(body, list):
            messages = [str(item.get("Message")) for item in body if isinstance(item, dict) and item.get("Message")]
        elif isinstance(body, dict):
            reason_code = body.get("ReasonCode")
            for key in ("ReasonMessage", "Message", "message"):
                if body.get(key):
                    messages.append(str(body[key]))
        message = "; ".join(messages) or f"{operation} failed with status {resp.status_code}"
        self._log_error(f"gateway_{operation}_failed", status_code=resp.status_code, error=message)
        raise GatewayError(
            message,
            provider=self.provider,
            status_code=resp.status_code,
            reason_code=reason_code,
            details={"operation": operation, "body": body},
        )
