import pytest
from shared.errors import (
    AuthenticationError,
    ConflictError,
    CustomerMismatchError,
    DineStreamError,
    ExternalDependencyError,
    InvalidCredentialsError,
    InvalidQuantityError,
    InvalidTransitionError,
    NotDeliveredError,
    NotFoundError,
    OwnershipError,
    PaymentDeclinedError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error_class, status",
    [
        (ValidationError, 400),
        (InvalidQuantityError, 400),
        (PaymentDeclinedError, 400),
        (ConflictError, 400),
        (InvalidTransitionError, 400),
        (NotDeliveredError, 400),
        (AuthenticationError, 401),
        (InvalidCredentialsError, 401),
        (OwnershipError, 403),
        (CustomerMismatchError, 403),
        (NotFoundError, 404),
        (ExternalDependencyError, 500),
    ],
)
def test_status_codes(error_class, status):
    assert error_class.status_code == status
    assert issubclass(error_class, DineStreamError)


def test_default_message():
    assert InvalidQuantityError().message == "Quantity must be greater than zero"


def test_envelope_without_details():
    assert NotFoundError("Order not found: x").to_dict() == {"success": False, "error": "Order not found: x"}


def test_envelope_with_details():
    error = ValidationError("Amount mismatch", details={"expected": 10.0, "received": 9.0})
    assert error.to_dict() == {
        "success": False,
        "error": "Amount mismatch",
        "details": {"expected": 10.0, "received": 9.0},
    }
    assert str(error) == "Amount mismatch"
