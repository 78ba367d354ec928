from datetime import UTC, datetime

import pytest
from protean.integrations.pytest import DomainFixture

# A Tuesday, 09:00 UTC
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


@pytest.fixture(scope="session")
def fulfillment_bed():
    from order_fulfillment.domain import fulfillment

    bed = DomainFixture(fulfillment)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(fulfillment_bed):
    with fulfillment_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def clock():
    from order_fulfillment.utils.clock import FixedClock

    return FixedClock(NOW)


@pytest.fixture()
def settings():
    from order_fulfillment.config import Settings

    return Settings(payment_timeout_seconds=0.5)


@pytest.fixture()
def services(settings, clock):
    from order_fulfillment.services import build_services

    services = build_services(settings, clock)
    services.inventory.add_product("prod-kb", "Mechanical Keyboard", price=2000.0, stock=10, sku="KB-001")
    services.inventory.add_product(
        "prod-tee",
        "Cotton T-Shirt",
        price=1500.0,
        stock=0,
        sku="TEE",
        variants=[
            {"id": "tee-m-red", "stock": 5, "size": "M", "color": "red", "sku": "TEE-M-RED"},
            {"id": "tee-l-blue", "stock": 3, "size": "L", "color": "blue", "price": 1600.0, "sku": "TEE-L-BLUE"},
        ],
    )
    return services


@pytest.fixture()
def address():
    return {
        "name": "Amina Otieno",
        "street": "12 Moi Avenue",
        "city": "Nairobi",
        "county": "Nairobi",
        "postal_code": "00100",
        "phone": "+254700000001",
        "email": "amina@example.com",
    }


@pytest.fixture()
def keyboard_items():
    return [
        {
            "product_id": "prod-kb",
            "name": "Mechanical Keyboard",
            "sku": "KB-001",
            "unit_price": 2000.0,
            "quantity": 2,
        }
    ]


@pytest.fixture()
def place_order(services, address, keyboard_items, clock):
    """Persist an order directly, bypassing checkout."""
    from order_fulfillment.order.order import Order

    counter = {"n": 0}

    def _place(status="pending", payment_method="mobile_money", items=None, user_id="cust-1", **kwargs):
        counter["n"] += 1
        order = Order.create(
            user_id=user_id,
            items_data=items or keyboard_items,
            shipping_address=kwargs.pop("shipping_address", address),
            payment_method=payment_method,
            status=status,
            sequence=counter["n"],
            now=clock(),
            **kwargs,
        )
        services.store.add(order)
        return order

    return _place


@pytest.fixture()
def staff():
    from order_fulfillment.actor import Actor

    return Actor(user_id="staff-1", role="staff")
