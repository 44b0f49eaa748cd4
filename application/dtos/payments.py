"""
Payment DTOs (Pydantic v2) used at application boundaries.

Platform-facing models accept camelCase payloads; gateway-facing models use
the gateway's PascalCase field names through aliases.
"""
from __future__ import annotations

from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.codes.payment_codes import SPLIT_TRANSACTIONAL_REASON_CODES


class PlatformModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GatewayModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class MerchantSetting(PlatformModel):
    name: str
    value: Optional[str] = None


class Buyer(PlatformModel):
    id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    document: Optional[str] = None
    email: Optional[str] = None
    is_corporate: bool = False
    corporate_name: Optional[str] = None
    corporate_document: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.is_corporate:
            return self.corporate_name or ""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def identity(self) -> str:
        """CPF/CNPJ stripped of formatting."""
        raw = self.corporate_document if self.is_corporate else self.document
        return "".join(ch for ch in (raw or "") if ch.isdigit())


class MiniCart(PlatformModel):
    buyer: Buyer = Field(default_factory=Buyer)
    payment_method: Optional[str] = None


class SplitCommission(PlatformModel):
    fee: Optional[int] = None
    gateway: Optional[float] = None


class SplitInstruction(PlatformModel):
    """Caller-supplied split; ``amount`` in currency units."""
    merchant_id: str
    amount: float = Field(ge=0)
    commission: Optional[SplitCommission] = None


class OrderSplitData(PlatformModel):
    """Order figures used to synthesize the consultant/platform split.

    Monetary totals are in minor currency units, as reported by the order
    system.
    """
    subordinate_merchant_id: Optional[str] = None
    split_profit_pct: Optional[float] = None
    split_discount_pct: Optional[float] = None
    items_subtotal: Optional[float] = None
    discounts_subtotal: float = 0.0
    shipping_value: float = 0.0
    coupon_discount: float = 0.0
    total_taxes: Optional[float] = None
    is_consultant_coupon: bool = False
    is_free_shipping_coupon: bool = False


class AuthorizationRequest(PlatformModel):
    payment_id: str
    transaction_id: str
    order_id: Optional[str] = None
    reference: Optional[str] = None
    value: float = Field(ge=0)
    currency: str = "BRL"
    payment_method: Optional[str] = "Pix"
    callback_url: Optional[str] = None
    mini_cart: MiniCart = Field(default_factory=MiniCart)
    merchant_settings: list[MerchantSetting] = Field(default_factory=list)
    splits: Optional[list[SplitInstruction]] = None
    order_data: Optional[OrderSplitData] = None

    @field_validator("payment_id", "transaction_id")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class PaymentAppData(PlatformModel):
    app_name: str = "vtex.pix-payment"
    payload: str


class AuthorizationResponse(PlatformModel):
    payment_id: str
    status: Literal["approved", "denied", "undefined"]
    tid: Optional[str] = None
    authorization_id: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None
    payment_app_data: Optional[PaymentAppData] = None
    delay_to_cancel: Optional[int] = None
    delay_to_auto_settle: Optional[int] = None
    delay_to_auto_settle_after_antifraud: Optional[int] = None


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class CancellationRequest(PlatformModel):
    payment_id: str
    request_id: Optional[str] = None
    authorization_id: Optional[str] = None
    tid: Optional[str] = None


class CancellationResponse(PlatformModel):
    payment_id: str
    status: Literal["approved", "denied"]
    cancellation_id: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None
    request_id: Optional[str] = None
    use_voucher_refund: bool = False


class SettlementRequest(PlatformModel):
    payment_id: str
    request_id: Optional[str] = None
    tid: Optional[str] = None
    value: Optional[float] = None
    authorization_id: Optional[str] = None


class SettlementResponse(PlatformModel):
    payment_id: str
    status: Literal["approved", "denied"]
    settle_id: Optional[str] = None
    value: Optional[float] = None
    code: Optional[str] = None
    message: Optional[str] = None
    request_id: Optional[str] = None


class RefundRequest(PlatformModel):
    payment_id: str
    request_id: Optional[str] = None
    tid: Optional[str] = None
    value: Optional[float] = None


class RefundResponse(PlatformModel):
    payment_id: str
    status: Literal["approved", "denied"]
    refund_id: Optional[str] = None
    value: Optional[float] = None
    code: Optional[str] = None
    message: Optional[str] = None
    request_id: Optional[str] = None


class VoucherRefundRequest(PlatformModel):
    """``refund_value`` is in minor currency units, like the stored amount."""
    order_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    refund_value: int = Field(gt=0)


class VoucherRefundResponse(PlatformModel):
    success: bool
    order_id: str
    gift_card_id: str = ""
    redemption_code: str = ""
    refund_value: int = 0
    message: str


class SplitFeed(PlatformModel):
    payment_id: str
    platform_payment_id: Optional[str] = None
    status: int
    split_payments: list[dict[str, Any]] = Field(default_factory=list)
    consultant_split_amount: Optional[int] = None
    master_split_amount: Optional[int] = None


# ---------------------------------------------------------------------------
# Gateway notifications
# ---------------------------------------------------------------------------


class PixNotification(GatewayModel):
    """Webhook payload; presence of id/change type is checked by the reconciler."""
    payment_id: Optional[str] = Field(default=None, alias="PaymentId")
    change_type: Optional[int] = Field(default=None, alias="ChangeType")
    status: Optional[int] = Field(default=None, alias="Status")
    merchant_order_id: Optional[str] = Field(default=None, alias="MerchantOrderId")
    amount: Optional[int] = Field(default=None, alias="Amount")


class NotificationResult(BaseModel):
    payment_id: str
    change_type: int
    handled: bool
    previous_status: Optional[int] = None
    status: Optional[int] = None
    forwarded: bool = False


# ---------------------------------------------------------------------------
# Gateway wire models
# ---------------------------------------------------------------------------


class SaleFares(GatewayModel):
    mdr: Optional[float] = Field(default=None, alias="Mdr")
    fee: Optional[int] = Field(default=None, alias="Fee")


class SaleSplitPayment(GatewayModel):
    subordinate_merchant_id: str = Field(alias="SubordinateMerchantId")
    amount: int = Field(alias="Amount")
    fares: Optional[SaleFares] = Field(default=None, alias="Fares")


class SaleCustomer(GatewayModel):
    name: str = Field(default="", alias="Name")
    identity: str = Field(default="", alias="Identity")
    identity_type: str = Field(default="CPF", alias="IdentityType")


class SalePayment(GatewayModel):
    type: str = Field(default="Pix", alias="Type")
    amount: int = Field(alias="Amount")
    provider: str = Field(default="Braspag", alias="Provider")
    notification_url: Optional[str] = Field(default=None, alias="NotificationUrl")
    split_payments: Optional[list[SaleSplitPayment]] = Field(default=None, alias="SplitPayments")


class SaleRequest(GatewayModel):
    merchant_order_id: str = Field(alias="MerchantOrderId")
    customer: SaleCustomer = Field(alias="Customer")
    payment: SalePayment = Field(alias="Payment")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SaleResult(GatewayModel):
    payment_id: Optional[str] = Field(default=None, alias="PaymentId")
    status: Optional[int] = Field(default=None, alias="Status")
    tid: Optional[str] = Field(default=None, alias="Tid")
    amount: Optional[int] = Field(default=None, alias="Amount")
    qr_code_string: Optional[str] = Field(default=None, alias="QrCodeString")
    qr_code_base64_image: Optional[str] = Field(default=None, alias="QrCodeBase64Image")
    # Older gateway versions spell it with a lower-case "c"
    qrcode_base64_image: Optional[str] = Field(default=None, alias="QrcodeBase64Image")
    reason_code: Optional[int] = Field(default=None, alias="ReasonCode")
    reason_message: Optional[str] = Field(default=None, alias="ReasonMessage")

    @property
    def qr_code_image(self) -> Optional[str]:
        return self.qr_code_base64_image or self.qrcode_base64_image


class VoidSplitPayment(GatewayModel):
    subordinate_merchant_id: str = Field(alias="SubordinateMerchantId")
    voided_amount: int = Field(default=0, alias="VoidedAmount")


class VoidResult(GatewayModel):
    status: Optional[int] = Field(default=None, alias="Status")
    reason_code: Optional[int] = Field(default=None, alias="ReasonCode")
    reason_message: Optional[str] = Field(default=None, alias="ReasonMessage")
    provider_return_code: Optional[str] = Field(default=None, alias="ProviderReturnCode")
    provider_return_message: Optional[str] = Field(default=None, alias="ProviderReturnMessage")
    void_split_payments: list[VoidSplitPayment] = Field(default_factory=list, alias="VoidSplitPayments")
    split_errors: list[dict[str, Any]] = Field(default_factory=list, alias="SplitErrors")

    @property
    def is_split_failure(self) -> bool:
        """The void failed because of the split configuration; only a voucher refund can settle it."""
        return self.reason_code in SPLIT_TRANSACTIONAL_REASON_CODES or bool(self.split_errors)


class OutboundSplitEvent(BaseModel):
    """Status event forwarded to the platform on a transition into Paid."""
    payment_id: str
    platform_payment_id: Optional[str] = None
    merchant_order_id: Optional[str] = None
    status: int
    amount: Optional[int] = None
    callback_url: Optional[str] = None
