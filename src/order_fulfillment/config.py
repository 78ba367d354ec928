"""Engine settings read from the environment.

Protean's own configuration (databases, brokers, event store) lives under
``[tool.protean]`` in pyproject.toml. These are the business knobs of the
order lifecycle: pricing, sweep grace periods, timeouts, and adapter choice.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta

DEFAULT_REMOTE_COUNTIES = ("Turkana", "Marsabit", "Mandera", "Wajir", "Garissa")
DEFAULT_SURCHARGE_COUNTIES = ("Turkana", "Marsabit", "Mandera", "Wajir")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


def _env_tuple(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.environ.get(name)
    if not value:
        return default
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    tax_rate: float = 0.16
    free_shipping_threshold: float = 5000.0
    currency: str = "KES"
    auto_confirm_after: timedelta = timedelta(hours=1)
    auto_process_after: timedelta = timedelta(hours=24)
    sweep_interval_seconds: float = 300.0
    outbox_interval_seconds: float = 30.0
    payment_timeout_seconds: float = 15.0
    tracking_url_base: str = "https://tracking.example.com"
    outbox_max_attempts: int = 3
    outbox_claim_lease_seconds: float = 300.0
    remote_counties: tuple[str, ...] = field(default=DEFAULT_REMOTE_COUNTIES)
    surcharge_counties: tuple[str, ...] = field(default=DEFAULT_SURCHARGE_COUNTIES)
    remote_surcharge: float = 1.5
    inventory_adapter: str = "fake"
    notifier_adapter: str = "fake"
    payment_gateway_adapter: str = "fake"
    cart_adapter: str = "fake"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            tax_rate=_env_float("TAX_RATE", 0.16),
            free_shipping_threshold=_env_float("FREE_SHIPPING_THRESHOLD", 5000.0),
            currency=os.environ.get("CURRENCY", "KES"),
            auto_confirm_after=timedelta(minutes=_env_float("AUTO_CONFIRM_AFTER_MINUTES", 60)),
            auto_process_after=timedelta(hours=_env_float("AUTO_PROCESS_AFTER_HOURS", 24)),
            sweep_interval_seconds=_env_float("SWEEP_INTERVAL_SECONDS", 300.0),
            outbox_interval_seconds=_env_float("OUTBOX_INTERVAL_SECONDS", 30.0),
            payment_timeout_seconds=_env_float("PAYMENT_TIMEOUT_SECONDS", 15.0),
            tracking_url_base=os.environ.get("TRACKING_URL_BASE", "https://tracking.example.com"),
            outbox_max_attempts=int(_env_float("OUTBOX_MAX_ATTEMPTS", 3)),
            outbox_claim_lease_seconds=_env_float("OUTBOX_CLAIM_LEASE_SECONDS", 300.0),
            remote_counties=_env_tuple("REMOTE_COUNTIES", DEFAULT_REMOTE_COUNTIES),
            surcharge_counties=_env_tuple("SURCHARGE_COUNTIES", DEFAULT_SURCHARGE_COUNTIES),
            remote_surcharge=_env_float("REMOTE_SURCHARGE", 1.5),
            inventory_adapter=os.environ.get("INVENTORY_ADAPTER", "fake"),
            notifier_adapter=os.environ.get("NOTIFIER_ADAPTER", "fake"),
            payment_gateway_adapter=os.environ.get("PAYMENT_GATEWAY_ADAPTER", "fake"),
            cart_adapter=os.environ.get("CART_ADAPTER", "fake"),
        )
