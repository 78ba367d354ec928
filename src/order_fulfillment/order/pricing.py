"""Order pricing policy — tax, shipping charges, coupons, and the free-shipping threshold."""

from dataclasses import dataclass, field
from enum import Enum

from protean.exceptions import ValidationError

from order_fulfillment.config import DEFAULT_SURCHARGE_COUNTIES


class ShippingMethod(Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"
    PICKUP = "pickup"


class CouponKind(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


DEFAULT_SHIPPING_RATES = {
    ShippingMethod.STANDARD.value: 300.0,
    ShippingMethod.EXPRESS.value: 500.0,
    ShippingMethod.OVERNIGHT.value: 1000.0,
    ShippingMethod.PICKUP.value: 0.0,
}


@dataclass(frozen=True)
class Coupon:
    kind: CouponKind
    value: float
    min_order: float = 0.0

    def discount_for(self, subtotal: float) -> float:
        if self.kind == CouponKind.PERCENTAGE:
            return subtotal * self.value / 100
        return min(self.value, subtotal)


DEFAULT_COUPONS = {
    "WELCOME10": Coupon(CouponKind.PERCENTAGE, 10, min_order=1000),
    "SAVE500": Coupon(CouponKind.FIXED, 500, min_order=2000),
    "NEWUSER": Coupon(CouponKind.PERCENTAGE, 15),
    "BULK20": Coupon(CouponKind.PERCENTAGE, 20, min_order=10000),
}


def _money(amount: float) -> float:
    return round(float(amount), 2)


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate: float = 0.16
    free_shipping_threshold: float = 5000.0
    currency: str = "KES"
    shipping_rates: dict = field(default_factory=lambda: dict(DEFAULT_SHIPPING_RATES))
    surcharge_counties: tuple[str, ...] = DEFAULT_SURCHARGE_COUNTIES
    remote_surcharge: float = 1.5
    coupons: dict = field(default_factory=lambda: dict(DEFAULT_COUPONS))

    @classmethod
    def from_settings(cls, settings) -> "PricingPolicy":
        return cls(
            tax_rate=settings.tax_rate,
            free_shipping_threshold=settings.free_shipping_threshold,
            currency=settings.currency,
            surcharge_counties=settings.surcharge_counties,
            remote_surcharge=settings.remote_surcharge,
        )

    def tax_for(self, subtotal: float) -> float:
        return _money(subtotal * self.tax_rate)

    def shipping_for(self, subtotal: float, shipping_method: str, county: str | None = None) -> float:
        if subtotal >= self.free_shipping_threshold:
            return 0.0
        rate = self.shipping_rates.get(shipping_method, self.shipping_rates[ShippingMethod.STANDARD.value])
        if county in self.surcharge_counties:
            rate *= self.remote_surcharge
        return _money(rate)

    def coupon_discount(self, code: str | None, subtotal: float) -> float:
        """Discount granted by ``code`` on ``subtotal``; 0 when no code is given.

        Raises:
            ValidationError: unknown code, or the subtotal is below the coupon's minimum.
        """
        if not code:
            return 0.0
        coupon = self.coupons.get(code.strip().upper())
        if coupon is None:
            raise ValidationError({"coupon_code": ["Invalid coupon code"]})
        if subtotal < coupon.min_order:
            raise ValidationError(
                {"coupon_code": [f"Minimum order of {self.currency} {coupon.min_order:g} required for this coupon"]}
            )
        return _money(coupon.discount_for(subtotal))

    def totals(
        self,
        subtotal: float,
        shipping_method: str,
        discount_amount: float = 0.0,
        county: str | None = None,
    ) -> dict:
        """Compute the full pricing breakdown for a subtotal."""
        subtotal = _money(subtotal)
        tax_amount = self.tax_for(subtotal)
        shipping_amount = self.shipping_for(subtotal, shipping_method, county)
        discount_amount = _money(discount_amount or 0.0)
        return {
            "subtotal": subtotal,
            "tax_amount": tax_amount,
            "shipping_amount": shipping_amount,
            "discount_amount": discount_amount,
            "total_amount": _money(subtotal + tax_amount + shipping_amount - discount_amount),
            "currency": self.currency,
        }


DEFAULT_POLICY = PricingPolicy()
