"""Notifier port — abstract interface for customer notifications.

Delivery guarantees belong to the adapter. The engine only records what
should be sent (see the outbox) and hands it over here.
"""

from abc import ABC, abstractmethod


class Notifier(ABC):
    """Abstract interface for notification adapters."""

    @abstractmethod
    def send(self, recipient: str, subject: str, body: str, metadata: dict | None = None) -> dict:
        """Send one message.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
