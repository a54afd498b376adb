import os
from pathlib import Path
from uuid import uuid4

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Pins APP_ENV so settings and logging pick the test profile.
    """
    os.environ["APP_ENV"] = session.config.option.env

    import bootstrap  # noqa: F401  (registers every model before mappers configure)

    from shared.logging import configure_logging

    configure_logging(log_dir=None)


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


# ---------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------
@pytest.fixture()
def settings():
    from shared.config import Settings

    return Settings(
        env="test",
        database_url="sqlite://",
        redis_url=None,
        payment_gateway="fake",
        tax_rate=0.0,
        delivery_base_fee=2.50,
        free_delivery_threshold=15.00,
        order_number_prefix="ST",
        stream_keepalive_seconds=0.05,
        password_hash_method="pbkdf2:sha256:1000",
    )


@pytest.fixture()
def database(settings):
    from shared.database import Database

    db = Database(settings.database_url)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture()
def broker(settings):
    from tracking.broker import InMemoryBroker

    return InMemoryBroker(topic=settings.tracking_topic)


@pytest.fixture()
def gateway():
    from payments.gateway.fake_adapter import FakeGateway

    return FakeGateway()


@pytest.fixture()
def services(settings, database, broker, gateway):
    from bootstrap import build_services

    return build_services(settings, database=database, broker=broker, gateway=gateway, create_schema=False)


@pytest.fixture()
def menu(services):
    """Seeded menu: A £5, B £3, and C (£4) which is sold out."""
    return {
        "A": services.menu.add(name="Item A", price=5.00, category="mains"),
        "B": services.menu.add(name="Item B", price=3.00, category="sides"),
        "C": services.menu.add(name="Item C", price=4.00, category="sides", is_available=False),
    }


@pytest.fixture()
def client(services):
    from fastapi.testclient import TestClient

    from app import create_app

    return TestClient(create_app(services))


# ---------------------------------------------------------------
# Domain helpers
# ---------------------------------------------------------------
@pytest.fixture()
def customer():
    from ordering.order.order import CustomerDetails

    return CustomerDetails(
        name="Alex Diner",
        email="alex@example.com",
        phone="07700900001",
        address="1 High Street",
        city="Leeds",
        postcode="LS1 1AA",
    )


@pytest.fixture()
def place_order(services, menu, customer):
    """Factory: fill a fresh guest cart and check it out (2 x A, 1 x B by default)."""
    from ordering.cart.cart import CartIdentity
    from ordering.order.order import OrderType

    def _place(order_type=OrderType.DELIVERY, items=(("A", 2), ("B", 1)), details=None):
        identity = CartIdentity(session_id=f"guest-{uuid4().hex[:8]}")
        for key, quantity in items:
            services.carts.add_item(identity, menu[key].id, quantity)
        return services.orders.checkout(identity, details or customer, order_type)

    return _place


@pytest.fixture()
def paid_order(services, place_order):
    """Factory: a placed order paid by card (status PREPARING)."""
    from ordering.order.order import OrderType, PaymentMethod

    def _paid(order_type=OrderType.DELIVERY, method=PaymentMethod.CARD, **kwargs):
        order = place_order(order_type=order_type, **kwargs)
        return services.orders.process_payment(order.id, method, order.total).order

    return _paid


@pytest.fixture()
def make_driver(services):
    """Factory: register a driver with a unique phone number."""

    def _make(name="Sam Rider", password="secret1", **kwargs):
        phone = kwargs.pop("phone", f"07{uuid4().int % 10**9:09d}")
        return services.drivers.register(name=name, phone=phone, password=password, **kwargs)

    return _make


@pytest.fixture()
def staff_headers():
    return {"X-User-Id": "staff-001", "X-User-Email": "kitchen@example.com", "X-User-Role": "staff"}
