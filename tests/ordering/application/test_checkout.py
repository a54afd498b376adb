"""Application tests for checkout: cart to order in one unit of work."""

import pytest
from ordering.cart.cart import CartIdentity
from ordering.order.order import CustomerDetails, OrderStatus, OrderType, PaymentStatus
from shared.errors import UnavailableError, ValidationError

GUEST = CartIdentity(session_id="guest-checkout")


def _fill_cart(services, menu):
    services.carts.add_item(GUEST, menu["A"].id, 2)
    services.carts.add_item(GUEST, menu["B"].id, 1)


class TestCheckout:
    def test_creates_pending_order_from_cart(self, services, menu, customer):
        _fill_cart(services, menu)
        order = services.orders.checkout(GUEST, customer, OrderType.DELIVERY, special_instructions="Ring twice")

        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.order_number == "ST-001"
        assert order.subtotal == 13.0
        assert order.delivery_fee == 2.5
        assert order.total == 15.5
        assert order.currency == "GBP"
        assert order.special_instructions == "Ring twice"
        assert sorted((item.name, item.quantity, item.unit_price) for item in order.items) == [
            ("Item A", 2, 5.0),
            ("Item B", 1, 3.0),
        ]

    def test_empties_the_cart(self, services, menu, customer):
        _fill_cart(services, menu)
        services.orders.checkout(GUEST, customer, OrderType.DELIVERY)
        assert services.carts.get_cart(GUEST).items == []

    def test_pickup_has_no_delivery_fee(self, services, menu, customer):
        _fill_cart(services, menu)
        order = services.orders.checkout(GUEST, customer, OrderType.PICKUP)
        assert order.delivery_fee == 0.0
        assert order.total == 13.0

    def test_free_delivery_at_threshold(self, services, menu, customer):
        services.carts.add_item(GUEST, menu["A"].id, 3)
        order = services.orders.checkout(GUEST, customer, OrderType.DELIVERY)
        assert order.subtotal == 15.0
        assert order.delivery_fee == 0.0
        assert order.total == 15.0

    def test_order_numbers_increase(self, place_order):
        first = place_order()
        second = place_order()
        assert first.order_number == "ST-001"
        assert second.order_number == "ST-002"

    def test_customer_cart_records_customer_id(self, services, menu, customer):
        identity = CartIdentity(customer_id="cust-042")
        services.carts.add_item(identity, menu["A"].id, 1)
        order = services.orders.checkout(identity, customer, "PICKUP")
        assert order.customer_id == "cust-042"

    def test_publishes_order_created(self, services, menu, customer, broker):
        published = []
        broker.publish = published.append

        _fill_cart(services, menu)
        order = services.orders.checkout(GUEST, customer, OrderType.DELIVERY)

        assert [(event.type, event.order_id) for event in published] == [("order_created", order.id)]


class TestCheckoutRejections:
    def test_empty_cart(self, services, menu, customer):
        with pytest.raises(ValidationError, match="Cart is empty"):
            services.orders.checkout(GUEST, customer, OrderType.DELIVERY)

    def test_cleared_cart(self, services, menu, customer):
        _fill_cart(services, menu)
        services.carts.clear(GUEST)
        with pytest.raises(ValidationError, match="Cart is empty"):
            services.orders.checkout(GUEST, customer, OrderType.DELIVERY)

    def test_item_sold_out_since_added(self, services, menu, customer):
        _fill_cart(services, menu)
        services.menu.set_availability(menu["B"].id, False)

        with pytest.raises(UnavailableError) as exc:
            services.orders.checkout(GUEST, customer, OrderType.DELIVERY)
        assert exc.value.details == {"unavailableItems": ["Item B"]}
        assert len(services.carts.get_cart(GUEST).items) == 2

    def test_delivery_needs_address(self, services, menu):
        _fill_cart(services, menu)
        details = CustomerDetails(name="Alex", email="alex@example.com", phone="0770")

        with pytest.raises(ValidationError):
            services.orders.checkout(GUEST, details, OrderType.DELIVERY)
        assert len(services.carts.get_cart(GUEST).items) == 2

    def test_unknown_order_type(self, services, menu, customer):
        _fill_cart(services, menu)
        with pytest.raises(ValidationError, match="order type"):
            services.orders.checkout(GUEST, customer, "TELEPORT")
