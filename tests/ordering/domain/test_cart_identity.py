"""Tests for CartIdentity: who a cart belongs to."""

import pytest
from ordering.cart.cart import Cart, CartIdentity
from shared.errors import ValidationError


class TestCartIdentity:
    def test_session_identity(self):
        identity = CartIdentity(session_id="guest-1")
        assert identity.session_id == "guest-1"
        assert identity.customer_id is None
        assert identity.value == "guest-1"
        assert identity.column is Cart.session_id

    def test_customer_identity(self):
        identity = CartIdentity(customer_id="cust-1")
        assert identity.value == "cust-1"
        assert identity.column is Cart.customer_id

    def test_customer_wins_over_session(self):
        identity = CartIdentity(customer_id="cust-1", session_id="guest-1")
        assert identity.customer_id == "cust-1"
        assert identity.session_id is None

    def test_values_are_stripped(self):
        identity = CartIdentity(session_id="  guest-1  ")
        assert identity.session_id == "guest-1"

    @pytest.mark.parametrize("customer_id,session_id", [(None, None), ("", ""), ("  ", None)])
    def test_requires_one_identity(self, customer_id, session_id):
        with pytest.raises(ValidationError) as exc:
            CartIdentity(customer_id=customer_id, session_id=session_id)
        assert "sessionId or customerId" in exc.value.message

    def test_identities_compare_by_value(self):
        assert CartIdentity(session_id="guest-1") == CartIdentity(session_id=" guest-1")
