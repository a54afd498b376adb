"""Pydantic request schemas for the Ordering API.

These are external contracts (camelCase on the wire), kept separate from
the ORM aggregates.
"""

from ordering.order.order import CustomerDetails, OrderType, PaymentMethod
from shared.schema import CamelModel


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CartIdentitySchema(CamelModel):
    session_id: str | None = None
    customer_id: str | None = None


class CustomerSchema(CamelModel):
    name: str
    email: str
    phone: str
    address: str | None = None
    city: str | None = None
    postcode: str | None = None

    def to_details(self) -> CustomerDetails:
        return CustomerDetails(**self.model_dump())


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class AddCartItemRequest(CartIdentitySchema):
    menu_item_id: str
    quantity: int = 1
    special_instructions: str | None = None
    customizations: dict | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "sessionId": "guest-7f3a",
                    "menuItemId": "a1b2c3",
                    "quantity": 2,
                    "specialInstructions": "No onions",
                }
            ]
        }
    }


class UpdateCartItemRequest(CamelModel):
    quantity: int
    special_instructions: str | None = None
    customizations: dict | None = None


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class CheckoutRequest(CartIdentitySchema):
    order_type: OrderType
    customer: CustomerSchema
    special_instructions: str | None = None


class ReorderRequest(CartIdentitySchema):
    order_id: str


class ProcessPaymentRequest(CamelModel):
    method: PaymentMethod
    amount: float


class UpdateStatusRequest(CamelModel):
    status: str
    driver_id: str | None = None


class AssignDriverRequest(CamelModel):
    driver_id: str


# ---------------------------------------------------------------------------
# Menu Request Schemas
# ---------------------------------------------------------------------------
class MenuAvailabilityRequest(CamelModel):
    is_available: bool
