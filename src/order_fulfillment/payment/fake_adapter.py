"""In-memory payment gateway for local runs and tests.

Simulates mobile-money pushes and card captures without external calls. It
can be told to fail, or to stall for a while so callers' timeouts kick in.
"""

import time
from uuid import uuid4

from order_fulfillment.payment.port import ChargeResult, PaymentGateway, PushResult


class FakeGateway(PaymentGateway):
    """Records every call; outcome and latency are set through ``configure``."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.delay_seconds: float = 0.0
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined", delay_seconds: float = 0.0) -> None:
        """Set the outcome of later calls and how long each one stalls."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.delay_seconds = delay_seconds

    def _stall(self) -> None:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)

    def request_push(
        self,
        order_id: str,
        amount: float,
        currency: str,
        phone_number: str,
        idempotency_key: str,
    ) -> PushResult:
        self.calls.append(
            {
                "method": "request_push",
                "order_id": order_id,
                "amount": amount,
                "currency": currency,
                "phone_number": phone_number,
                "idempotency_key": idempotency_key,
            }
        )
        self._stall()

        if self.should_succeed:
            return PushResult(
                success=True,
                request_id=f"ws_CO_{uuid4().hex[:16]}",
                gateway_response="Success. Request accepted for processing",
            )
        return PushResult(success=False, failure_reason=self.failure_reason)

    def capture_card(
        self,
        order_id: str,
        amount: float,
        currency: str,
        card_token: str | None,
        idempotency_key: str,
    ) -> ChargeResult:
        self.calls.append(
            {
                "method": "capture_card",
                "order_id": order_id,
                "amount": amount,
                "currency": currency,
                "card_token": card_token,
                "idempotency_key": idempotency_key,
            }
        )
        self._stall()

        if self.should_succeed:
            return ChargeResult(
                success=True,
                gateway_transaction_id=f"fake_txn_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return ChargeResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

    def verify_callback_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
