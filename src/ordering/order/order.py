"""Order aggregate: the core of the ordering domain.

State Machine:
    PENDING → CONFIRMED → PREPARING → READY_FOR_PICKUP | OUT_FOR_DELIVERY → DELIVERED
    READY_FOR_PICKUP → OUT_FOR_DELIVERY (delivery orders handed to a driver)
    CANCELLED and REFUNDED from any state before DELIVERED

Payment status runs on its own axis (PENDING → PROCESSING → COMPLETED |
FAILED, and REFUNDED after a confirmed refund). A completed payment is
what moves a new order into PREPARING.

Order items are a snapshot of the cart at checkout and are never edited
afterwards.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordering.pricing import OrderTotals, line_total
from shared.database import Base, new_id, utcnow
from shared.errors import ConflictError, InvalidDriverError, InvalidTransitionError, ValidationError
from shared.events import EventType, RaisesEvents, TrackingEvent


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderType(Enum):
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


class OrderStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(Enum):
    CARD = "CARD"
    CASH = "CASH"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PREPARING: {
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.READY_FOR_PICKUP: {
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})

# Orders a driver is still responsible for
DRIVER_BUSY_STATES = frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.READY_FOR_PICKUP})

_DRIVER_ASSIGNABLE_STATES = frozenset({OrderStatus.CONFIRMED, OrderStatus.PREPARING})

_PAYABLE_STATES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


def format_order_number(prefix: str, sequence: int) -> str:
    return f"{prefix}-{sequence:03d}"


def normalize_order_number(order_number: str) -> str:
    return order_number.strip().upper()


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CustomerDetails:
    """Contact and delivery details captured at checkout."""

    name: str
    email: str
    phone: str
    address: str | None = None
    city: str | None = None
    postcode: str | None = None

    def validate_for(self, order_type: OrderType) -> None:
        missing = [field for field in ("name", "email", "phone") if not (getattr(self, field) or "").strip()]
        if order_type == OrderType.DELIVERY:
            missing += [
                field for field in ("address", "city", "postcode") if not (getattr(self, field) or "").strip()
            ]
        if missing:
            raise ValidationError("Missing customer details", details={"missing": missing})
        if "@" not in self.email:
            raise ValidationError("Invalid customer email")


@dataclass(frozen=True)
class CustomerIdentity:
    """Who is acting on an existing order, matched against the order's email."""

    email: str
    name: str | None = None

    def matches(self, email: str | None) -> bool:
        return bool(email) and self.email.strip().lower() == email.strip().lower()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    # Plain column: the snapshot outlives menu item deletion
    menu_item_id: Mapped[str] = mapped_column(String(36))
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[float] = mapped_column(Float)
    total_price: Mapped[float] = mapped_column(Float)
    special_instructions: Mapped[str | None] = mapped_column(Text, default=None)
    customizations: Mapped[dict | None] = mapped_column(JSON(none_as_null=True), default=None)

    order: Mapped["Order"] = relationship(back_populates="items")


class Order(RaisesEvents, Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_number: Mapped[str] = mapped_column(String(32), unique=True)
    sequence_number: Mapped[int] = mapped_column(Integer, unique=True)
    order_type: Mapped[OrderType] = mapped_column(SQLEnum(OrderType, native_enum=False, length=16))
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, native_enum=False, length=32), default=OrderStatus.PENDING
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, native_enum=False, length=32), default=PaymentStatus.PENDING
    )
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        SQLEnum(PaymentMethod, native_enum=False, length=16), default=None
    )

    customer_id: Mapped[str | None] = mapped_column(String(255), default=None, index=True)
    customer_name: Mapped[str] = mapped_column(String(200))
    customer_email: Mapped[str] = mapped_column(String(255), index=True)
    customer_phone: Mapped[str] = mapped_column(String(50), index=True)
    customer_address: Mapped[str | None] = mapped_column(Text, default=None)
    customer_city: Mapped[str | None] = mapped_column(String(100), default=None)
    customer_postcode: Mapped[str | None] = mapped_column(String(20), default=None)
    special_instructions: Mapped[str | None] = mapped_column(Text, default=None)

    subtotal: Mapped[float] = mapped_column(Float)
    tax: Mapped[float] = mapped_column(Float, default=0.0)
    delivery_fee: Mapped[float] = mapped_column(Float, default=0.0)
    total: Mapped[float] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3), default="GBP")

    driver_id: Mapped[str | None] = mapped_column(ForeignKey("drivers.id", ondelete="SET NULL"), default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    driver = relationship("Driver", back_populates="deliveries", lazy="joined")

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        *,
        order_number: str,
        sequence_number: int,
        order_type: OrderType,
        customer: CustomerDetails,
        lines: list,
        totals: OrderTotals,
        currency: str = "GBP",
        customer_id: str | None = None,
        special_instructions: str | None = None,
    ) -> "Order":
        """Create a PENDING order from a cart snapshot.

        ``lines`` are any objects carrying ``menu_item_id``, ``name``,
        ``quantity`` and ``unit_price`` (``CartLineView`` in practice).
        """
        if not lines:
            raise ValidationError("Cart is empty")
        customer.validate_for(order_type)

        order = cls(
            id=new_id(),
            order_number=order_number,
            sequence_number=sequence_number,
            order_type=order_type,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            customer_id=customer_id,
            customer_name=customer.name.strip(),
            customer_email=customer.email.strip(),
            customer_phone=customer.phone.strip(),
            customer_address=customer.address,
            customer_city=customer.city,
            customer_postcode=customer.postcode,
            special_instructions=special_instructions,
            subtotal=totals.subtotal,
            tax=totals.tax,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
            currency=currency,
        )
        order.items = [
            OrderItem(
                menu_item_id=line.menu_item_id,
                name=line.name,
                description=getattr(line, "description", None),
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line_total(line.unit_price, line.quantity),
                special_instructions=getattr(line, "special_instructions", None),
                customizations=getattr(line, "customizations", None),
            )
            for line in lines
        ]
        order.raise_(order._event(EventType.ORDER_CREATED))
        return order

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: OrderStatus) -> None:
        if target not in _VALID_TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"Cannot move order from {self.status.value} to {target.value}")

    def advance_to(self, target: OrderStatus) -> None:
        """Move along the forward path. Cancellation and refunds go through ``cancel``/``mark_refunded``."""
        if target in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            raise InvalidTransitionError(f"Use cancellation to move an order to {target.value}")
        self._assert_can_transition(target)

        if target == OrderStatus.PREPARING and self.payment_status != PaymentStatus.COMPLETED:
            raise InvalidTransitionError("Order must be paid before preparation starts")
        if target == OrderStatus.OUT_FOR_DELIVERY:
            if self.order_type != OrderType.DELIVERY:
                raise InvalidTransitionError("Only delivery orders can go out for delivery")
            if self.driver_id is None:
                raise InvalidTransitionError("Assign a driver before the order goes out for delivery")

        previous = self.status
        self.status = target
        if target == OrderStatus.DELIVERED:
            self.delivered_at = utcnow()
        self.raise_(self._event(EventType.ORDER_UPDATE, previous_status=previous.value))

    def cancel(self) -> None:
        if self.status in TERMINAL_STATES:
            raise InvalidTransitionError(f"Cannot cancel an order that is {self.status.value}")
        if self.payment_status == PaymentStatus.PROCESSING:
            raise ConflictError("Payment is still being processed; cancel once it has settled")

        previous = self.status
        self.status = OrderStatus.CANCELLED
        self.cancelled_at = utcnow()
        self.raise_(self._event(EventType.ORDER_UPDATE, previous_status=previous.value))

    def mark_refunded(self) -> None:
        """Record a refund the gateway has already confirmed."""
        if self.status in TERMINAL_STATES:
            raise InvalidTransitionError(f"Cannot refund an order that is {self.status.value}")
        if self.payment_status != PaymentStatus.COMPLETED:
            raise InvalidTransitionError("Only paid orders can be refunded")

        previous = self.status
        self.status = OrderStatus.REFUNDED
        self.payment_status = PaymentStatus.REFUNDED
        self.cancelled_at = utcnow()
        self.raise_(self._event(EventType.ORDER_UPDATE, previous_status=previous.value))

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED

    @property
    def can_take_payment(self) -> bool:
        return self.status in _PAYABLE_STATES

    # -------------------------------------------------------------------
    # Payment axis
    # -------------------------------------------------------------------
    def start_payment(self, method: PaymentMethod) -> None:
        if self.status not in _PAYABLE_STATES:
            raise InvalidTransitionError(f"Cannot take payment for an order that is {self.status.value}")
        self.payment_status = PaymentStatus.PROCESSING
        self.payment_method = method

    def mark_paid(self, method: PaymentMethod) -> None:
        """Payment completion is what starts kitchen work."""
        if self.status not in _PAYABLE_STATES:
            raise InvalidTransitionError(f"Cannot complete payment for an order that is {self.status.value}")
        previous = self.status
        self.payment_status = PaymentStatus.COMPLETED
        self.payment_method = method
        self.status = OrderStatus.PREPARING

        self.raise_(self._event(EventType.PAYMENT_COMPLETED, method=method.value))
        self.raise_(self._event(EventType.ORDER_UPDATE, previous_status=previous.value))

    def mark_charge_reversed(self) -> None:
        """A charge that landed after the order left the payable states was refunded."""
        self.payment_status = PaymentStatus.REFUNDED
        self.raise_(self._event(EventType.ORDER_UPDATE))

    def mark_payment_failed(self, reason: str | None = None) -> None:
        self.payment_status = PaymentStatus.FAILED
        self.raise_(self._event(EventType.ORDER_UPDATE, failure_reason=reason))

    # -------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------
    def assign_driver(self, driver) -> None:
        if self.status not in _DRIVER_ASSIGNABLE_STATES:
            raise InvalidTransitionError(
                f"Drivers can only be assigned to CONFIRMED or PREPARING orders, not {self.status.value}"
            )
        if self.order_type != OrderType.DELIVERY:
            raise ValidationError("Only delivery orders can be assigned a driver")
        if not driver.is_available:
            raise InvalidDriverError(f"Driver is not available: {driver.name}")

        self.driver_id = driver.id
        self.driver = driver
        self.raise_(self._event(EventType.DRIVER_ASSIGNED, driver_name=driver.name))

    # -------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------
    def _event(self, event_type: EventType, **extra) -> TrackingEvent:
        payload = {
            "orderNumber": self.order_number,
            "status": self.status.value,
            "paymentStatus": self.payment_status.value,
            "orderType": self.order_type.value,
            "total": self.total,
        }
        for key, value in extra.items():
            if value is not None:
                payload[to_camel(key)] = value
        return TrackingEvent(type=event_type.value, order_id=self.id, driver_id=self.driver_id, payload=payload)


_STATUS_ALIASES = {
    "READY": OrderStatus.READY_FOR_PICKUP,
    "COMPLETED": OrderStatus.DELIVERED,
}


def parse_status(value: str | OrderStatus) -> OrderStatus:
    """Accept any casing of a status name plus the ``ready``/``completed`` shorthands."""
    if isinstance(value, OrderStatus):
        return value
    key = (value or "").strip().upper()
    if key in _STATUS_ALIASES:
        return _STATUS_ALIASES[key]
    try:
        return OrderStatus(key)
    except ValueError as exc:
        raise ValidationError(f"Unknown order status: {value}") from exc
