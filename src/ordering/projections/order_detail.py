"""Order read models (OrderWithDriver and friends).

Built straight from the ORM aggregate; each endpoint picks the view it
needs instead of assembling nested fetches ad hoc.
"""

from datetime import datetime

from ordering.order.order import OrderStatus, OrderType, PaymentMethod, PaymentStatus
from shared.schema import CamelModel


class OrderItemView(CamelModel):
    id: str
    menu_item_id: str
    name: str
    description: str | None = None
    quantity: int
    unit_price: float
    total_price: float
    special_instructions: str | None = None
    customizations: dict | None = None


class DriverBrief(CamelModel):
    id: str
    name: str
    phone: str
    vehicle_info: str | None = None
    rating: float
    current_location: dict | None = None


class OrderView(CamelModel):
    id: str
    order_number: str
    order_type: OrderType
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod | None = None

    customer_id: str | None = None
    customer_name: str
    customer_email: str
    customer_phone: str
    customer_address: str | None = None
    customer_city: str | None = None
    customer_postcode: str | None = None
    special_instructions: str | None = None

    subtotal: float
    tax: float
    delivery_fee: float
    total: float
    currency: str

    driver_id: str | None = None
    driver: DriverBrief | None = None
    items: list[OrderItemView] = []

    created_at: datetime
    updated_at: datetime
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
