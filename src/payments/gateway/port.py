"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement.
This enables swapping between FakeGateway (dev/test) and SumUpGateway
(production) without changing any ordering code.

``reference`` is the idempotency key: charging the same reference twice
must never take money twice. The order id is used as the reference.

Adapters return a result with ``success=False`` when the gateway answers
"no" (declined card, refund refused). They raise
``ExternalDependencyError`` when the outcome is unknown (timeout,
5xx, connection refused).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ChargeResult:
    """Result of a payment charge attempt."""

    success: bool
    transaction_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name = "abstract"

    @abstractmethod
    def charge(self, amount: float, currency: str, reference: str) -> ChargeResult:
        """Take ``amount`` for ``reference``."""
        ...

    @abstractmethod
    def refund(self, transaction_id: str, amount: float, reference: str) -> RefundResult:
        """Return a previous charge in full."""
        ...

    def close(self) -> None:  # noqa: B027
        """Release any connections held by the adapter."""
