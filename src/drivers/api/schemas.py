"""Pydantic request schemas for the Drivers API."""

from datetime import datetime

from ordering.order.order import CustomerIdentity
from shared.schema import CamelModel


class RegisterDriverRequest(CamelModel):
    name: str
    phone: str
    password: str
    email: str | None = None
    vehicle_info: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Sam Rider",
                    "phone": "+447700900123",
                    "password": "s3cret!",
                    "vehicleInfo": "Blue scooter",
                }
            ]
        }
    }


class LoginRequest(CamelModel):
    phone: str
    password: str


class UpdateDriverRequest(CamelModel):
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    vehicle_info: str | None = None
    is_available: bool | None = None


class LocationUpdateRequest(CamelModel):
    latitude: float
    longitude: float
    accuracy: float | None = None
    timestamp: datetime | None = None


class RateDriverRequest(CamelModel):
    order_id: str
    customer_email: str
    customer_name: str | None = None
    rating: int
    comment: str | None = None

    def customer(self) -> CustomerIdentity:
        return CustomerIdentity(email=self.customer_email, name=self.customer_name)
