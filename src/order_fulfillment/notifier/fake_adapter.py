"""Fake notifier — records sent messages in memory for test assertions."""

from uuid import uuid4

from order_fulfillment.notifier.port import Notifier


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.raise_errors = False
        self.failure_reason = "Notification delivery failed"

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Notification delivery failed",
        raise_errors: bool = False,
    ):
        """Configure the fake notifier behavior for testing.

        ``raise_errors`` makes failures surface as exceptions instead of a
        failed status, like an adapter whose transport is down.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_errors = raise_errors

    def send(self, recipient: str, subject: str, body: str, metadata: dict | None = None) -> dict:
        if not self.should_succeed:
            if self.raise_errors:
                raise ConnectionError(self.failure_reason)
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"msg-{uuid4().hex[:12]}"
        self.sent.append(
            {
                "message_id": message_id,
                "recipient": recipient,
                "subject": subject,
                "body": body,
                "metadata": metadata or {},
            }
        )
        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        """Clear sent messages (useful between tests)."""
        self.sent.clear()
        self.should_succeed = True
        self.raise_errors = False
        self.failure_reason = "Notification delivery failed"
