"""Error taxonomy shared by every bounded context.

Domain components raise these typed errors; the HTTP boundary in ``app.py``
maps each one to its ``status_code`` and the ``{"success": false, ...}``
envelope. Nothing outside this module decides status codes.
"""

from typing import Any


class DineStreamError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


# ---------------------------------------------------------------------------
# 400: bad input shape or range
# ---------------------------------------------------------------------------
class ValidationError(DineStreamError):
    status_code = 400
    default_message = "Invalid request"


class InvalidQuantityError(ValidationError):
    default_message = "Quantity must be greater than zero"


class UnavailableError(ValidationError):
    default_message = "Menu item is not available"


class InvalidDriverError(ValidationError):
    default_message = "Driver is not available"


class DriverMismatchError(ValidationError):
    default_message = "Driver does not match the order"


class PaymentDeclinedError(ValidationError):
    default_message = "Payment was declined"


# ---------------------------------------------------------------------------
# 400: uniqueness and state-machine violations
# ---------------------------------------------------------------------------
class ConflictError(DineStreamError):
    status_code = 400
    default_message = "Conflicting request"


class InvalidTransitionError(DineStreamError):
    status_code = 400
    default_message = "Invalid status transition"


class NotDeliveredError(InvalidTransitionError):
    default_message = "Order must be delivered first"


# ---------------------------------------------------------------------------
# 401 / 403: caller identity
# ---------------------------------------------------------------------------
class AuthenticationError(DineStreamError):
    status_code = 401
    default_message = "Authentication required"


class InvalidCredentialsError(AuthenticationError):
    default_message = "Invalid credentials"


class OwnershipError(DineStreamError):
    status_code = 403
    default_message = "Not allowed"


class CustomerMismatchError(OwnershipError):
    default_message = "Customer does not match the order"


# ---------------------------------------------------------------------------
# 404
# ---------------------------------------------------------------------------
class NotFoundError(DineStreamError):
    status_code = 404
    default_message = "Not found"


# ---------------------------------------------------------------------------
# 500: payment gateway or data store failure
# ---------------------------------------------------------------------------
class ExternalDependencyError(DineStreamError):
    status_code = 500
    default_message = "A downstream service failed"
