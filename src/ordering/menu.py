"""Menu catalog: the items customers can put in a cart.

Only the parts ordering needs live here: price lookup, availability, and a
staff toggle for marking an item sold out. Menu editing itself happens in
the back office.
"""

from datetime import datetime

import structlog
from sqlalchemy import Boolean, DateTime, Float, String, Text, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from shared.database import Base, Database, new_id, utcnow
from shared.errors import NotFoundError, UnavailableError
from shared.schema import CamelModel

logger = structlog.get_logger(__name__)


class MenuItem(Base):
    __tablename__ = "menu_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    price: Mapped[float] = mapped_column(Float)
    category: Mapped[str | None] = mapped_column(String(100), default=None)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class MenuItemView(CamelModel):
    id: str
    name: str
    description: str | None = None
    price: float
    category: str | None = None
    is_available: bool


def find_menu_item(session: Session, menu_item_id: str) -> MenuItem:
    item = session.get(MenuItem, menu_item_id)
    if item is None:
        raise NotFoundError(f"Menu item not found: {menu_item_id}")
    return item


def require_orderable(session: Session, menu_item_id: str) -> MenuItem:
    """Return the item if it exists and is on sale right now."""
    item = find_menu_item(session, menu_item_id)
    if not item.is_available:
        raise UnavailableError(f"Menu item is not available: {item.name}")
    return item


class MenuCatalog:
    def __init__(self, database: Database) -> None:
        self._database = database

    def get(self, menu_item_id: str) -> MenuItemView | None:
        with self._database.session() as session:
            item = session.get(MenuItem, menu_item_id)
            return MenuItemView.model_validate(item) if item is not None else None

    def require(self, menu_item_id: str) -> MenuItemView:
        with self._database.session() as session:
            return MenuItemView.model_validate(find_menu_item(session, menu_item_id))

    def list_items(self, available_only: bool = False, category: str | None = None) -> list[MenuItemView]:
        query = select(MenuItem).order_by(MenuItem.category, MenuItem.name)
        if available_only:
            query = query.where(MenuItem.is_available.is_(True))
        if category:
            query = query.where(MenuItem.category == category)

        with self._database.session() as session:
            return [MenuItemView.model_validate(item) for item in session.scalars(query)]

    def set_availability(self, menu_item_id: str, is_available: bool) -> MenuItemView:
        with self._database.session() as session:
            item = find_menu_item(session, menu_item_id)
            item.is_available = is_available
            session.flush()
            view = MenuItemView.model_validate(item)

        logger.info("menu_item_availability_changed", menu_item_id=menu_item_id, is_available=is_available)
        return view

    def add(
        self,
        name: str,
        price: float,
        description: str | None = None,
        category: str | None = None,
        is_available: bool = True,
    ) -> MenuItemView:
        with self._database.session() as session:
            item = MenuItem(
                name=name,
                price=price,
                description=description,
                category=category,
                is_available=is_available,
            )
            session.add(item)
            session.flush()
            return MenuItemView.model_validate(item)
