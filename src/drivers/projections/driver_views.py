"""Driver read models. Password hashes never leave the registry."""

from datetime import datetime

from ordering.order.order import OrderStatus
from shared.schema import CamelModel


class LocationView(CamelModel):
    latitude: float
    longitude: float
    accuracy: float | None = None
    timestamp: str | None = None


class DeliveryBrief(CamelModel):
    id: str
    order_number: str
    status: OrderStatus
    customer_name: str
    customer_address: str | None = None
    customer_city: str | None = None
    customer_postcode: str | None = None
    total: float
    delivery_fee: float
    created_at: datetime


class DriverView(CamelModel):
    id: str
    name: str
    email: str | None = None
    phone: str
    vehicle_info: str | None = None
    is_available: bool
    current_location: LocationView | None = None
    rating: float
    total_deliveries: int
    earnings: float
    created_at: datetime
    updated_at: datetime


class DriverDetailView(DriverView):
    recent_deliveries: list[DeliveryBrief] = []


class ActiveDriverView(DriverView):
    active_deliveries: list[DeliveryBrief] = []


class DriverRatingView(CamelModel):
    order_id: str
    driver_id: str
    rating: int
    comment: str | None = None
    customer_name: str | None = None
    driver_rating: float
