"""Payment gateway port (abstract interface).

Two payment channels go through the gateway: an asynchronous mobile-money
push, confirmed later by a callback, and a synchronous card capture. The
wire protocol to the provider belongs to the adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PushResult:
    """Result of a mobile-money push request."""

    success: bool
    request_id: str | None = None
    gateway_response: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class ChargeResult:
    """Result of a card capture attempt."""

    success: bool
    gateway_transaction_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def request_push(
        self,
        order_id: str,
        amount: float,
        currency: str,
        phone_number: str,
        idempotency_key: str,
    ) -> PushResult:
        """Ask the customer's mobile wallet to approve a payment."""
        ...

    @abstractmethod
    def capture_card(
        self,
        order_id: str,
        amount: float,
        currency: str,
        card_token: str | None,
        idempotency_key: str,
    ) -> ChargeResult:
        """Capture a card payment synchronously."""
        ...

    @abstractmethod
    def verify_callback_signature(self, payload: str, signature: str) -> bool:
        """Verify that a callback payload is authentically from the gateway."""
        ...
