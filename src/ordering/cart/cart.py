"""Cart and CartLine: the shopping cart before checkout.

A cart belongs to exactly one identity, either a signed-in customer or a
guest browser session, never both. Each menu item appears at most once per
cart; adding it again merges into the existing line.

``unit_price`` is snapshotted from the menu when the line is first created
and is kept on merge, so a price change on the menu does not alter lines
already sitting in a cart.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordering.menu import MenuItem
from ordering.pricing import cart_totals, line_total
from shared.database import Base, new_id, utcnow
from shared.errors import ValidationError
from shared.schema import CamelModel


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        CheckConstraint(
            "(customer_id IS NULL AND session_id IS NOT NULL) OR (customer_id IS NOT NULL AND session_id IS NULL)",
            name="ck_carts_single_identity",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[str | None] = mapped_column(String(255), unique=True, default=None)
    session_id: Mapped[str | None] = mapped_column(String(255), unique=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    lines: Mapped[list["CartLine"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartLine.created_at",
    )


class CartLine(Base):
    __tablename__ = "cart_lines"
    __table_args__ = (
        UniqueConstraint("cart_id", "menu_item_id", name="uq_cart_lines_cart_menu_item"),
        CheckConstraint("quantity > 0", name="ck_cart_lines_positive_quantity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cart_id: Mapped[str] = mapped_column(ForeignKey("carts.id", ondelete="CASCADE"))
    menu_item_id: Mapped[str] = mapped_column(ForeignKey("menu_items.id", ondelete="CASCADE"))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[float] = mapped_column(Float)
    total_price: Mapped[float] = mapped_column(Float)
    special_instructions: Mapped[str | None] = mapped_column(Text, default=None)
    customizations: Mapped[dict | None] = mapped_column(JSON(none_as_null=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    cart: Mapped[Cart] = relationship(back_populates="lines")
    menu_item: Mapped[MenuItem] = relationship(lazy="joined")

    def change_quantity(self, quantity: int) -> None:
        self.total_price = line_total(self.unit_price, quantity)
        self.quantity = quantity


@dataclass(frozen=True)
class CartIdentity:
    """Who a cart belongs to. A customer id wins over a session id."""

    customer_id: str | None = None
    session_id: str | None = None

    def __post_init__(self) -> None:
        customer_id = (self.customer_id or "").strip() or None
        session_id = (self.session_id or "").strip() or None
        if customer_id is None and session_id is None:
            raise ValidationError("Either sessionId or customerId is required")
        if customer_id is not None:
            session_id = None
        object.__setattr__(self, "customer_id", customer_id)
        object.__setattr__(self, "session_id", session_id)

    @property
    def column(self):
        return Cart.customer_id if self.customer_id is not None else Cart.session_id

    @property
    def value(self) -> str:
        return self.customer_id if self.customer_id is not None else self.session_id


# ---------------------------------------------------------------------------
# Read projection: CartWithLines
# ---------------------------------------------------------------------------
class CartLineView(CamelModel):
    id: str
    menu_item_id: str
    name: str
    description: str | None = None
    is_available: bool = True
    quantity: int
    unit_price: float
    total_price: float
    special_instructions: str | None = None
    customizations: dict | None = None


class CartView(CamelModel):
    id: str | None = None
    customer_id: str | None = None
    session_id: str | None = None
    items: list[CartLineView] = []
    total: float = 0.0
    item_count: int = 0

    @classmethod
    def empty(cls, identity: CartIdentity | None = None) -> "CartView":
        if identity is None:
            return cls()
        return cls(customer_id=identity.customer_id, session_id=identity.session_id)

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartView":
        items = [
            CartLineView(
                id=line.id,
                menu_item_id=line.menu_item_id,
                name=line.menu_item.name,
                description=line.menu_item.description,
                is_available=line.menu_item.is_available,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line_total(line.unit_price, line.quantity),
                special_instructions=line.special_instructions,
                customizations=line.customizations,
            )
            for line in cart.lines
        ]
        totals = cart_totals(items)
        return cls(
            id=cart.id,
            customer_id=cart.customer_id,
            session_id=cart.session_id,
            items=items,
            total=totals.total,
            item_count=totals.item_count,
        )
