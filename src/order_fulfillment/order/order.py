"""Order aggregate (CQRS) — the persisted purchase and its invariants.

The Order is created once at checkout from a cart snapshot and is afterwards
mutated only through the status transition engine. Line items and addresses
are snapshots: they are never re-read from the live catalogue.

State Machine (legal edges live in ``order_fulfillment.order.transitions``):
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    {PENDING, CONFIRMED, PROCESSING} → CANCELLED
"""

from datetime import datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from order_fulfillment.domain import fulfillment
from order_fulfillment.order.events import (
    OrderPlaced,
    OrderStatusChanged,
    PaymentStatusChanged,
)
from order_fulfillment.order.pricing import DEFAULT_POLICY, PricingPolicy, ShippingMethod
from order_fulfillment.utils.clock import utc_now


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    MOBILE_MONEY = "mobile_money"
    CARD = "card"
    CASH_ON_DELIVERY = "cash_on_delivery"


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


ADDRESS_FIELDS = ("name", "street", "city", "county", "postal_code", "phone", "email")
VARIANT_ATTRIBUTES = ("size", "color", "material")


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Order")
class Address:
    """A delivery or billing address captured at checkout time.

    Immutable once recorded: it is where the order ships regardless of later
    changes to the customer's address book.
    """

    name = String(required=True, max_length=100)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    county = String(required=True, max_length=100)
    postal_code = String(required=True, max_length=20)
    phone = String(required=True, max_length=20)
    email = String(required=True, max_length=255)


@fulfillment.value_object(part_of="Order")
class Pricing:
    """Financial summary of an order, locked at checkout."""

    subtotal = Float(default=0.0, min_value=0.0)
    tax_amount = Float(default=0.0, min_value=0.0)
    shipping_amount = Float(default=0.0, min_value=0.0)
    discount_amount = Float(default=0.0, min_value=0.0)
    total_amount = Float(default=0.0)
    currency = String(max_length=3, default="KES")

    @invariant.post
    def total_matches_components(self):
        expected = self.subtotal + self.tax_amount + self.shipping_amount - self.discount_amount
        if abs(self.total_amount - expected) > 0.01:
            raise ValidationError(
                {"total_amount": ["Total must equal subtotal + tax + shipping - discount"]}
            )


@fulfillment.value_object(part_of="Order")
class TrackingInfo:
    """Carrier handoff and delivery details. The tracking number itself lives on the Order."""

    carrier = String(max_length=100)
    shipped_date = DateTime()
    estimated_delivery = DateTime()
    actual_delivery = DateTime()
    tracking_url = String(max_length=500)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Order")
class OrderItem:
    """A line item snapshot taken at checkout."""

    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    sku = String(max_length=100)
    seller_id = Identifier()
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    line_total = Float(default=0.0)
    size = String(max_length=50)
    color = String(max_length=50)
    material = String(max_length=50)

    def variant_attributes(self) -> dict:
        """Non-empty variant attributes of this line, e.g. ``{"size": "M"}``."""
        return {attr: getattr(self, attr) for attr in VARIANT_ATTRIBUTES if getattr(self, attr)}


@fulfillment.entity(part_of="Order")
class StatusHistoryEntry:
    """One accepted status change. ``sequence`` preserves append order."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, choices=OrderStatus)
    timestamp = DateTime(required=True)
    note = String(max_length=500)
    updated_by = String(max_length=100)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Order:
    order_number = String(required=True, max_length=40, unique=True)
    user_id = Identifier(required=True)
    items = HasMany(OrderItem)
    pricing = ValueObject(Pricing)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_method = String(required=True, choices=PaymentMethod)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_reference = String(max_length=255)
    payment_transaction_ref = String(max_length=255)
    shipping_method = String(choices=ShippingMethod, default=ShippingMethod.STANDARD.value)
    status_history = HasMany(StatusHistoryEntry)
    tracking_number = String(max_length=40)
    tracking_info = ValueObject(TrackingInfo)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    cancellation_reason = String(max_length=500)
    coupon_code = String(max_length=30)
    payment_attempts = Integer(default=1, min_value=1)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id: str,
        items_data: list[dict],
        shipping_address: dict,
        payment_method: str,
        *,
        billing_address: dict | None = None,
        shipping_method: str = ShippingMethod.STANDARD.value,
        discount_amount: float = 0.0,
        coupon_code: str | None = None,
        status: str = OrderStatus.PENDING.value,
        sequence: int = 1,
        created_by: str | None = None,
        policy: PricingPolicy = DEFAULT_POLICY,
        now: datetime | None = None,
    ):
        """Create a new order from a cart snapshot.

        Args:
            user_id: The purchaser.
            items_data: Line item dicts with product_id, name, sku, seller_id,
                        unit_price, quantity and optional size/color/material.
            shipping_address: Dict with every field in ``ADDRESS_FIELDS``.
            payment_method: One of ``PaymentMethod`` values.
            billing_address: Defaults to the shipping address.
            coupon_code: Replaces ``discount_amount`` with the coupon's discount
                         when given. Unknown codes and unmet minimums raise.
            sequence: Running order count, zero-padded into the order number.
        """
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})
        _validate_address(shipping_address, "shipping_address")
        if billing_address:
            _validate_address(billing_address, "billing_address")
        if payment_method not in {m.value for m in PaymentMethod}:
            raise ValidationError({"payment_method": [f"Unsupported payment method: {payment_method}"]})
        if shipping_method not in {m.value for m in ShippingMethod}:
            raise ValidationError({"shipping_method": [f"Unsupported shipping method: {shipping_method}"]})

        now = now or utc_now()
        order = cls(
            order_number=f"ORD{int(now.timestamp() * 1000)}{sequence:04d}",
            user_id=user_id,
            status=status,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            shipping_method=shipping_method,
            shipping_address=Address(**_address_values(shipping_address)),
            billing_address=Address(**_address_values(billing_address or shipping_address)),
            pricing=Pricing(currency=policy.currency),
            coupon_code=coupon_code.strip().upper() if coupon_code else None,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            quantity = int(item_data["quantity"])
            unit_price = float(item_data["unit_price"])
            order.add_items(
                OrderItem(
                    product_id=item_data["product_id"],
                    name=item_data["name"],
                    sku=item_data.get("sku"),
                    seller_id=item_data.get("seller_id"),
                    unit_price=unit_price,
                    quantity=quantity,
                    line_total=round(unit_price * quantity, 2),
                    size=item_data.get("size"),
                    color=item_data.get("color"),
                    material=item_data.get("material"),
                )
            )
        order.recompute_totals(policy=policy, discount_amount=discount_amount)
        order.append_history(status, "Order created", created_by or str(user_id), now)
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                user_id=str(user_id),
                status=status,
                payment_method=payment_method,
                item_count=len(items_data),
                total_amount=order.pricing.total_amount,
                currency=order.pricing.currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    def recompute_totals(self, policy: PricingPolicy = DEFAULT_POLICY, discount_amount: float | None = None) -> None:
        """Recalculate subtotal, tax, shipping and total from the line items."""
        subtotal = sum(item.unit_price * item.quantity for item in self.items or [])
        if self.coupon_code:
            discount_amount = policy.coupon_discount(self.coupon_code, subtotal)
        elif discount_amount is None:
            discount_amount = self.pricing.discount_amount if self.pricing else 0.0
        county = self.shipping_address.county if self.shipping_address else None
        self.pricing = Pricing(**policy.totals(subtotal, self.shipping_method, discount_amount, county))

    # -------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------
    def history(self) -> list[StatusHistoryEntry]:
        """Status history in the order entries were appended."""
        return sorted(self.status_history or [], key=lambda entry: entry.sequence)

    def append_history(self, status: str, note: str | None, updated_by: str | None, timestamp: datetime) -> None:
        """Append exactly one history entry. History is never rewritten."""
        self.add_status_history(
            StatusHistoryEntry(
                sequence=len(self.status_history or []) + 1,
                status=status,
                timestamp=timestamp,
                note=note,
                updated_by=updated_by,
            )
        )

    # -------------------------------------------------------------------
    # Mutations used by transition side effects
    # -------------------------------------------------------------------
    def apply_status(self, target: str, *, updated_by: str | None, note: str | None, now: datetime) -> None:
        """Write the new status, its history entry and the change event."""
        previous = self.status
        self.status = target
        self.updated_at = now
        self.append_history(target, note, updated_by, now)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                from_status=previous,
                to_status=target,
                updated_by=updated_by,
                note=note,
                tracking_number=self.tracking_number,
                changed_at=now,
            )
        )

    def assign_tracking_number(self, tracking_number: str) -> None:
        """Assign the tracking number. Once set it never changes."""
        if self.tracking_number and self.tracking_number != tracking_number:
            raise ValidationError({"tracking_number": ["Tracking number is already assigned"]})
        self.tracking_number = tracking_number

    def record_shipment(
        self,
        carrier: str,
        shipped_date: datetime,
        estimated_delivery: datetime,
        tracking_url: str,
    ) -> None:
        current = self.tracking_info
        self.tracking_info = TrackingInfo(
            carrier=carrier,
            shipped_date=shipped_date,
            estimated_delivery=estimated_delivery,
            actual_delivery=current.actual_delivery if current else None,
            tracking_url=tracking_url,
        )

    def record_delivery(self, actual_delivery: datetime) -> None:
        current = self.tracking_info
        self.tracking_info = TrackingInfo(
            carrier=current.carrier if current else None,
            shipped_date=current.shipped_date if current else None,
            estimated_delivery=current.estimated_delivery if current else None,
            actual_delivery=actual_delivery,
            tracking_url=current.tracking_url if current else None,
        )

    def mark_payment(
        self,
        payment_status: str,
        now: datetime,
        *,
        reference: str | None = None,
        transaction_ref: str | None = None,
    ) -> None:
        """Record a payment status change from a gateway or a confirmation."""
        self.payment_status = payment_status
        if reference:
            self.payment_reference = reference
        if transaction_ref:
            self.payment_transaction_ref = transaction_ref
        self.updated_at = now
        self.raise_(
            PaymentStatusChanged(
                order_id=str(self.id),
                payment_method=self.payment_method,
                payment_status=payment_status,
                payment_reference=self.payment_reference,
                changed_at=now,
            )
        )

    def owned_by(self, user_id: str) -> bool:
        return str(self.user_id) == str(user_id)


def _address_values(data: dict) -> dict:
    return {field_name: str(data[field_name]).strip() for field_name in ADDRESS_FIELDS}


def _validate_address(data: dict | None, field_name: str) -> None:
    if not data:
        raise ValidationError({field_name: ["Address is required"]})
    missing = [name for name in ADDRESS_FIELDS if not str(data.get(name) or "").strip()]
    if missing:
        raise ValidationError({field_name: [f"Missing address fields: {', '.join(missing)}"]})
