import asyncio
import json

import pytest

from application.dtos.payments import AuthorizationRequest, OrderSplitData, SaleResult
from application.services.authorization_service import AuthorizationService
from application.services.merchant_config import MerchantConfigService
from application.services.sale_request_builder import SaleRequestBuilder
from core.settings import GatewaySettings, PaymentDelays, SplitSettings
from domain.payment.status import PaymentStatus
from fakes import FakeOrders, YieldingStore
from infrastructure.external.payments.exceptions import GatewayTimeoutError
from shared.codes.payment_codes import DenyCode, ResponseMessage


def _service(store, authorizations, gateway, logger, *, gateway_settings=None, orders=None, seen=None):
    def factory(credentials):
        if seen is not None:
            seen.append(credentials)
        return gateway

    return AuthorizationService(
        store=store,
        authorizations=authorizations,
        config=MerchantConfigService(
            gateway_settings or GatewaySettings(merchant_id="env-merchant", merchant_key="env-key"),
            logger,
        ),
        gateway_factory=factory,
        builder=SaleRequestBuilder(SplitSettings(marketplace_merchant_id="marketplace-1"), logger),
        delays=PaymentDelays(),
        logger=logger,
        orders=orders,
        notification_url="https://connector.example/api/v1/notifications/pix",
    )


def _request(**overrides):
    payload = {
        "paymentId": "pay-1",
        "transactionId": "tx-1",
        "orderId": "order-1",
        "value": 100.0,
        "callbackUrl": "https://platform.example/callback",
        "miniCart": {"buyer": {"id": "buyer-1", "firstName": "Ana", "lastName": "Souza", "document": "12345678909"}},
    }
    payload.update(overrides)
    return AuthorizationRequest.model_validate(payload)


@pytest.mark.asyncio
async def test_authorize_returns_pending_with_qr_code(store, authorizations, gateway, logger):
    svc = _service(store, authorizations, gateway, logger)

    resp = await svc.authorize(_request())

    assert resp.status == "undefined"
    assert resp.tid == "gw-1"
    assert resp.code == "1"
    assert resp.message == ResponseMessage.PIX_CREATED
    assert resp.delay_to_cancel == PaymentDelays().cancel_after_ms
    assert json.loads(resp.payment_app_data.payload)["code"] == "00020101021226"

    record = await store.get("pay-1")
    assert record == await store.get("gw-1")
    assert record.status == PaymentStatus.PENDING
    assert record.amount == 10000
    assert record.merchant_order_id == "tx-1"
    assert record.callback_url == "https://platform.example/callback"
    assert record.buyer_id == "buyer-1"
    assert await authorizations.get_outcome("pay-1") is not None
    assert gateway.sales[0].payment.notification_url.endswith("/notifications/pix")


@pytest.mark.asyncio
async def test_repeated_authorization_replays_without_gateway_call(store, authorizations, gateway, logger):
    svc = _service(store, authorizations, gateway, logger)

    first = await svc.authorize(_request())
    second = await svc.authorize(_request())

    assert len(gateway.sales) == 1
    assert second.status == "undefined"
    assert second.tid == first.tid
    assert second.payment_app_data == first.payment_app_data
    assert "pix_authorization_replayed" in logger.events("info")


@pytest.mark.asyncio
async def test_concurrent_authorizations_create_one_sale(authorizations, gateway, logger):
    svc = _service(YieldingStore(), authorizations, gateway, logger)

    first, second = await asyncio.gather(svc.authorize(_request()), svc.authorize(_request()))

    assert len(gateway.sales) == 1
    assert first.tid == second.tid == "gw-1"
    assert first.status == second.status == "undefined"
    assert second.payment_app_data == first.payment_app_data
    assert "pix_authorization_replayed" in logger.events("info")


@pytest.mark.asyncio
async def test_replay_after_payment_approves(store, authorizations, gateway, logger):
    svc = _service(store, authorizations, gateway, logger)
    await svc.authorize(_request())
    await store.update_status("gw-1", PaymentStatus.PAID)

    resp = await svc.authorize(_request())

    assert resp.status == "approved"
    assert resp.authorization_id == "gw-1"
    assert len(gateway.sales) == 1


@pytest.mark.asyncio
async def test_replay_after_cancellation_denies(store, authorizations, gateway, logger):
    svc = _service(store, authorizations, gateway, logger)
    await svc.authorize(_request())
    await store.update_status("gw-1", PaymentStatus.VOIDED)

    resp = await svc.authorize(_request())

    assert resp.status == "denied"
    assert resp.message == "Voided"


@pytest.mark.asyncio
async def test_aborted_sale_is_denied_and_not_stored(store, authorizations, gateway, logger):
    gateway.sale_result = SaleResult(PaymentId="gw-1", Status=int(PaymentStatus.ABORTED))
    svc = _service(store, authorizations, gateway, logger)

    resp = await svc.authorize(_request())

    assert resp.status == "denied"
    assert resp.code == DenyCode.DENIED
    assert resp.message == ResponseMessage.PIX_ABORTED
    assert await store.get("pay-1") is None


@pytest.mark.asyncio
async def test_sale_without_qr_code_is_denied(store, authorizations, gateway, logger):
    gateway.sale_result = SaleResult(PaymentId="gw-1", Status=1)
    svc = _service(store, authorizations, gateway, logger)

    resp = await svc.authorize(_request())

    assert resp.status == "denied"
    assert resp.code == DenyCode.ERROR
    assert resp.message == ResponseMessage.PIX_ARTIFACT_MISSING
    assert await store.get("gw-1") is None


@pytest.mark.asyncio
async def test_sale_without_payment_id_is_denied(store, authorizations, gateway, logger):
    gateway.sale_result = SaleResult()
    svc = _service(store, authorizations, gateway, logger)

    resp = await svc.authorize(_request())

    assert resp.status == "denied"
    assert resp.message == ResponseMessage.PIX_CREATION_FAILED


@pytest.mark.asyncio
async def test_gateway_failure_is_denied(store, authorizations, gateway, logger):
    gateway.sale_error = GatewayTimeoutError("gateway_create_sale timed out")
    svc = _service(store, authorizations, gateway, logger)

    resp = await svc.authorize(_request())

    assert resp.status == "denied"
    assert resp.code == DenyCode.GATEWAY_ERROR
    assert "pix_authorization_gateway_error" in logger.events("error")
    assert await store.get("pay-1") is None


@pytest.mark.asyncio
async def test_missing_credentials_denied_before_gateway(store, authorizations, gateway, logger):
    svc = _service(store, authorizations, gateway, logger, gateway_settings=GatewaySettings())

    resp = await svc.authorize(_request())

    assert resp.status == "denied"
    assert resp.code == DenyCode.ERROR
    assert "merchantId" in resp.message
    assert gateway.sales == []


@pytest.mark.asyncio
async def test_merchant_settings_override_environment(store, authorizations, gateway, logger):
    seen = []
    svc = _service(store, authorizations, gateway, logger, seen=seen)

    await svc.authorize(
        _request(
            merchantSettings=[
                {"name": "merchantId", "value": "req-merchant"},
                {"name": "merchantKey", "value": ""},
            ]
        )
    )

    assert seen[0].merchant_id == "req-merchant"
    assert seen[0].merchant_key == "env-key"


@pytest.mark.asyncio
async def test_order_data_lookup_synthesizes_split(store, authorizations, gateway, logger):
    orders = FakeOrders(OrderSplitData(subordinate_merchant_id="sub-1", split_profit_pct=25.0, items_subtotal=10000.0))
    svc = _service(store, authorizations, gateway, logger, orders=orders)

    await svc.authorize(_request())

    assert orders.lookups == ["order-1"]
    splits = gateway.sales[0].payment.split_payments
    assert [(s.subordinate_merchant_id, s.amount) for s in splits] == [("marketplace-1", 8000), ("sub-1", 2000)]
    record = await store.get("pay-1")
    assert record.consultant_split_amount == 2000
    assert record.master_split_amount == 8000


@pytest.mark.asyncio
async def test_order_lookup_failure_sends_sale_without_split(store, authorizations, gateway, logger):
    class BrokenOrders(FakeOrders):
        async def get_split_data(self, order_id):
            raise RuntimeError("order system down")

    svc = _service(store, authorizations, gateway, logger, orders=BrokenOrders())

    resp = await svc.authorize(_request())

    assert resp.status == "undefined"
    assert gateway.sales[0].payment.split_payments is None
    assert "order_split_data_lookup_failed" in logger.events("warning")
