"""Composition root for the engine's collaborators.

``build_services`` assembles adapters, the transition engine and everything
that depends on it exactly once per process; the FastAPI app and the runner
hold the result and hand it to callers. Tests build their own with fakes
and a fixed clock.
"""

from dataclasses import dataclass
from datetime import timedelta

from order_fulfillment.cart.fake_adapter import FakeCartStore
from order_fulfillment.cart.port import CartStore
from order_fulfillment.checkout.callback import PaymentCallbackHandler
from order_fulfillment.checkout.checkout import CheckoutService
from order_fulfillment.config import Settings
from order_fulfillment.inventory.fake_adapter import FakeInventoryStore
from order_fulfillment.inventory.port import InventoryStore
from order_fulfillment.inventory.reconciler import InventoryReconciler
from order_fulfillment.metrics.delivery import DeliveryMetricsService
from order_fulfillment.notifier.fake_adapter import FakeNotifier
from order_fulfillment.notifier.port import Notifier
from order_fulfillment.order.store import OrderStore
from order_fulfillment.order.sweep import OrderSweep
from order_fulfillment.order.tracking_number import TrackingNumberGenerator
from order_fulfillment.order.transitions import TransitionEngine
from order_fulfillment.outbox.dispatcher import OutboxDispatcher
from order_fulfillment.payment.fake_adapter import FakeGateway
from order_fulfillment.payment.port import PaymentGateway
from order_fulfillment.utils.clock import Clock, utc_now

_ADAPTERS = {
    "inventory": {"fake": FakeInventoryStore},
    "notifier": {"fake": FakeNotifier},
    "payment_gateway": {"fake": FakeGateway},
    "cart": {"fake": FakeCartStore},
}


def _adapter(kind: str, name: str):
    try:
        return _ADAPTERS[kind][name]()
    except KeyError:
        raise ValueError(f"Unknown {kind} adapter: {name}") from None


@dataclass
class Services:
    settings: Settings
    clock: Clock
    store: OrderStore
    inventory: InventoryStore
    notifier: Notifier
    gateway: PaymentGateway
    carts: CartStore
    reconciler: InventoryReconciler
    dispatcher: OutboxDispatcher
    tracking_numbers: TrackingNumberGenerator
    engine: TransitionEngine
    sweep: OrderSweep
    metrics: DeliveryMetricsService
    checkout: CheckoutService
    callbacks: PaymentCallbackHandler


def build_services(settings: Settings | None = None, clock: Clock = utc_now, **overrides) -> Services:
    """Wire adapters named in ``settings``; ``overrides`` replace any of them.

    Accepted overrides: ``store``, ``inventory``, ``notifier``, ``gateway``,
    ``carts``, ``tracking_numbers``.
    """
    settings = settings or Settings.from_env()
    store = overrides.get("store") or OrderStore()
    inventory = overrides.get("inventory") or _adapter("inventory", settings.inventory_adapter)
    notifier = overrides.get("notifier") or _adapter("notifier", settings.notifier_adapter)
    gateway = overrides.get("gateway") or _adapter("payment_gateway", settings.payment_gateway_adapter)
    carts = overrides.get("carts") or _adapter("cart", settings.cart_adapter)

    reconciler = InventoryReconciler(inventory)
    dispatcher = OutboxDispatcher(notifier, clock, timedelta(seconds=settings.outbox_claim_lease_seconds))
    tracking_numbers = overrides.get("tracking_numbers") or TrackingNumberGenerator(
        clock, exists=store.tracking_number_exists
    )
    engine = TransitionEngine(store, reconciler, dispatcher, tracking_numbers, clock, settings)

    return Services(
        settings=settings,
        clock=clock,
        store=store,
        inventory=inventory,
        notifier=notifier,
        gateway=gateway,
        carts=carts,
        reconciler=reconciler,
        dispatcher=dispatcher,
        tracking_numbers=tracking_numbers,
        engine=engine,
        sweep=OrderSweep(engine, clock, settings),
        metrics=DeliveryMetricsService(store),
        checkout=CheckoutService(store, inventory, reconciler, gateway, carts, engine, clock, settings),
        callbacks=PaymentCallbackHandler(store, engine, carts, clock),
    )
