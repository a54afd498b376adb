"""Application tests for order lookups: by id, by order number, staff list and history."""

import pytest
from ordering.order.order import CustomerDetails, OrderStatus, OrderType
from shared.errors import NotFoundError, ValidationError


def _other_customer():
    return CustomerDetails(
        name="Blake Guest",
        email="Blake@Example.com",
        phone="07700900999",
        address="9 Side Road",
        city="York",
        postcode="YO1 7HH",
    )


class TestGetAndTrack:
    def test_get_order(self, services, place_order):
        order = place_order()
        found = services.orders.get_order(order.id)
        assert found.order_number == order.order_number
        assert len(found.items) == 2

    def test_get_unknown_order(self, services):
        with pytest.raises(NotFoundError):
            services.orders.get_order("missing-order")

    def test_track_normalizes_order_number(self, services, place_order):
        order = place_order()
        assert services.orders.track_order("  st-001 ").id == order.id

    def test_track_unknown_number(self, services):
        with pytest.raises(NotFoundError):
            services.orders.track_order("ST-999")


class TestListOrders:
    def test_newest_first(self, services, place_order):
        first = place_order()
        second = place_order()
        assert [order.id for order in services.orders.list_orders()] == [second.id, first.id]

    def test_filter_by_status(self, services, place_order):
        kept = place_order()
        cancelled = place_order()
        services.orders.cancel(cancelled.id)

        pending = services.orders.list_orders(status="pending")
        assert [order.id for order in pending] == [kept.id]
        assert [order.id for order in services.orders.list_orders(status=OrderStatus.CANCELLED)] == [cancelled.id]

    def test_limit(self, services, place_order):
        for _ in range(3):
            place_order()
        assert len(services.orders.list_orders(limit=2)) == 2


class TestOrderHistory:
    def test_by_email_is_case_insensitive(self, services, place_order):
        mine = place_order()
        place_order(details=_other_customer())

        history = services.orders.order_history(email="ALEX@example.com")
        assert [order.id for order in history] == [mine.id]

    def test_by_phone(self, services, place_order):
        place_order()
        theirs = place_order(details=_other_customer(), order_type=OrderType.DELIVERY)
        assert [order.id for order in services.orders.order_history(phone="07700900999")] == [theirs.id]

    def test_latest_ten(self, services, place_order):
        for _ in range(11):
            place_order(order_type=OrderType.PICKUP, items=(("B", 1),))
        history = services.orders.order_history(email="alex@example.com")
        assert len(history) == 10
        assert history[0].order_number == "ST-011"

    def test_requires_email_or_phone(self, services):
        with pytest.raises(ValidationError):
            services.orders.order_history()
