"""Driver aggregate and DriverRating.

A driver's position is a single latest-wins value; no history is kept.
``rating`` is always the mean of the driver's DriverRating rows, rounded to
two places, and 0 when there are none.
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.database import Base, new_id, utcnow
from shared.errors import ValidationError
from shared.events import EventType, RaisesEvents, TrackingEvent


def validate_coordinates(latitude, longitude) -> tuple[float, float]:
    try:
        latitude = float(latitude)
        longitude = float(longitude)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Latitude and longitude must be numbers") from exc

    if not -90 <= latitude <= 90:
        raise ValidationError("Latitude must be between -90 and 90")
    if not -180 <= longitude <= 180:
        raise ValidationError("Longitude must be between -180 and 180")
    return latitude, longitude


class Driver(RaisesEvents, Base):
    __tablename__ = "drivers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    phone: Mapped[str] = mapped_column(String(50), unique=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), default=None)
    vehicle_info: Mapped[str | None] = mapped_column(String(255), default=None)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    current_location: Mapped[dict | None] = mapped_column(JSON(none_as_null=True), default=None)
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    total_deliveries: Mapped[int] = mapped_column(Integer, default=0)
    earnings: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    deliveries = relationship("Order", back_populates="driver", passive_deletes=True)
    ratings: Mapped[list["DriverRating"]] = relationship(back_populates="driver", cascade="all, delete-orphan")

    def update_location(
        self,
        latitude,
        longitude,
        accuracy: float | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        latitude, longitude = validate_coordinates(latitude, longitude)
        if accuracy is not None and accuracy < 0:
            raise ValidationError("Accuracy cannot be negative")

        now = utcnow()
        self.current_location = {
            "latitude": latitude,
            "longitude": longitude,
            "accuracy": accuracy,
            "timestamp": (timestamp or now).isoformat(),
        }
        # Active-driver staleness is measured from updated_at
        self.updated_at = now
        self.raise_(
            TrackingEvent(
                type=EventType.DRIVER_LOCATION.value,
                driver_id=self.id,
                payload={"driverName": self.name, "location": self.current_location},
            )
        )

    def set_availability(self, is_available: bool) -> None:
        self.is_available = is_available
        self.updated_at = utcnow()

    def record_delivery(self, delivery_fee: float) -> None:
        self.total_deliveries = (self.total_deliveries or 0) + 1
        self.earnings = round((self.earnings or 0.0) + (delivery_fee or 0.0), 2)


class DriverRating(Base):
    __tablename__ = "driver_ratings"
    __table_args__ = (CheckConstraint("rating >= 1 AND rating <= 5", name="ck_driver_ratings_range"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    driver_id: Mapped[str] = mapped_column(ForeignKey("drivers.id", ondelete="CASCADE"), index=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True)
    customer_email: Mapped[str] = mapped_column(String(255))
    customer_name: Mapped[str | None] = mapped_column(String(200), default=None)
    rating: Mapped[int] = mapped_column(Integer)
    comment: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    driver: Mapped[Driver] = relationship(back_populates="ratings")
