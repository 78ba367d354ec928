"""Tracking number generator — carrier-scoped shipment identifiers.

Format: ``<carrier prefix: 3 chars><last 6 digits of epoch ms><6 random [A-Z0-9]>``,
e.g. ``STA482913K3M9QZ``. The random tail alone makes collisions unlikely but
not impossible within the same carrier and millisecond window, so when an
``exists`` predicate is supplied the generator checks each candidate and
retries before giving up.
"""

import random
import string
from collections.abc import Callable

import structlog

from order_fulfillment.errors import TrackingNumberExhausted
from order_fulfillment.utils.clock import Clock, utc_now

logger = structlog.get_logger(__name__)

DEFAULT_CARRIER = "STANDARD"
_ALPHABET = string.ascii_uppercase + string.digits


class TrackingNumberGenerator:
    def __init__(
        self,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
        exists: Callable[[str], bool] | None = None,
        max_attempts: int = 5,
    ):
        self.clock = clock
        self.rng = rng or random.SystemRandom()
        self.exists = exists
        self.max_attempts = max_attempts

    def candidate(self, carrier: str | None = None) -> str:
        """Build one tracking number without any uniqueness check."""
        prefix = (carrier or DEFAULT_CARRIER)[:3].upper()
        millis = str(int(self.clock().timestamp() * 1000))[-6:]
        suffix = "".join(self.rng.choice(_ALPHABET) for _ in range(6))
        return f"{prefix}{millis}{suffix}"

    def generate(self, carrier: str | None = None) -> str:
        """Allocate a tracking number, re-drawing on collision."""
        for attempt in range(1, self.max_attempts + 1):
            tracking_number = self.candidate(carrier)
            if self.exists is None or not self.exists(tracking_number):
                return tracking_number
            logger.warning(
                "Tracking number collision, retrying",
                tracking_number=tracking_number,
                attempt=attempt,
            )
        raise TrackingNumberExhausted(
            f"Could not allocate a unique tracking number after {self.max_attempts} attempts"
        )
