"""Configurable fake payment gateway for development and testing.

This adapter simulates a real payment gateway without any external calls.
It can be configured at runtime to succeed, decline, or be unreachable,
making it useful for:
- Manual API testing via /payments/gateway/configure
- Automated tests with predictable outcomes
- Development without real gateway credentials

Like a real gateway it honours the idempotency reference: a reference that
was already charged successfully returns the original result.
"""

from uuid import uuid4

from payments.gateway.port import ChargeResult, PaymentGateway, RefundResult
from shared.errors import ExternalDependencyError


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "fake"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.available: bool = True
        self.calls: list[dict] = []
        self._charges: dict[str, ChargeResult] = {}
        self._refunds: dict[str, RefundResult] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined", available: bool = True) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.available = available

    @property
    def charge_count(self) -> int:
        """Number of charges that actually took money."""
        return len(self._charges)

    def charge(self, amount: float, currency: str, reference: str) -> ChargeResult:
        self.calls.append({"method": "charge", "amount": amount, "currency": currency, "reference": reference})

        if not self.available:
            raise ExternalDependencyError("Payment gateway unavailable")

        if reference in self._charges:
            return self._charges[reference]

        if self.should_succeed:
            result = ChargeResult(
                success=True,
                transaction_id=f"fake_txn_{uuid4().hex[:12]}",
                gateway_status="PAID",
            )
            self._charges[reference] = result
            return result
        return ChargeResult(success=False, gateway_status="FAILED", failure_reason=self.failure_reason)

    def refund(self, transaction_id: str, amount: float, reference: str) -> RefundResult:
        self.calls.append(
            {"method": "refund", "transaction_id": transaction_id, "amount": amount, "reference": reference}
        )

        if not self.available:
            raise ExternalDependencyError("Payment gateway unavailable")

        if reference in self._refunds:
            return self._refunds[reference]

        if self.should_succeed:
            result = RefundResult(success=True, refund_id=f"fake_ref_{uuid4().hex[:12]}", gateway_status="REFUNDED")
            self._refunds[reference] = result
            return result
        return RefundResult(success=False, gateway_status="FAILED", failure_reason=self.failure_reason)
