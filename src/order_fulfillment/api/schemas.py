"""Pydantic API schemas for order fulfillment.

These are the external API contracts. The route handlers translate them
into engine calls and shape engine results back into responses.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class AddressRequest(BaseModel):
    name: str
    street: str
    city: str
    county: str
    postal_code: str
    phone: str
    email: str


class CartLineRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    size: str | None = None
    color: str | None = None
    material: str | None = None


class CheckoutRequest(BaseModel):
    shipping_address: AddressRequest
    billing_address: AddressRequest | None = None
    payment_method: str
    shipping_method: str = "standard"
    phone_number: str | None = None
    card_token: str | None = None
    discount_amount: float = Field(default=0.0, ge=0)
    coupon_code: str | None = None
    items: list[CartLineRequest] | None = None


class PaymentRetryRequest(BaseModel):
    phone_number: str | None = None
    card_token: str | None = None


class MobileMoneyCallbackRequest(BaseModel):
    checkout_request_id: str
    result_code: str
    result_desc: str | None = None
    transaction_ref: str | None = None


class StatusUpdateRequest(BaseModel):
    status: str
    note: str | None = None
    carrier: str | None = None
    estimated_delivery: datetime | None = None
    delivery_date: datetime | None = None
    tracking_url: str | None = None
    reason: str | None = None


class BulkStatusUpdateRequest(StatusUpdateRequest):
    order_ids: list[str] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class PricingResponse(BaseModel):
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    currency: str


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    payment_method: str
    payment_status: str
    payment_reference: str | None = None
    tracking_number: str | None = None
    coupon_code: str | None = None
    pricing: PricingResponse


class CheckoutResponse(BaseModel):
    order: OrderResponse
    payment: dict
    reservation: dict | None = None


class CallbackResponse(BaseModel):
    order_id: str
    status: str
    payment_status: str
    applied: bool


class StatusUpdateResponse(BaseModel):
    order: OrderResponse
    outcome: str
    reconciliation: dict | None = None


class BulkStatusUpdateResponse(BaseModel):
    results: list[dict]
    summary: dict
