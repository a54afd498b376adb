"""Cart Store: every cart and cart-line mutation goes through here.

Concurrency rules:
- A cart is created with ``INSERT ... ON CONFLICT DO NOTHING`` on the
  identity column, so two first requests for the same guest end up
  sharing one cart.
- Adding an item is a single ``INSERT ... ON CONFLICT DO UPDATE`` that
  increments the existing quantity in place. Concurrent adds of the same
  item therefore sum instead of overwriting each other.
"""

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, selectinload

from ordering.cart.cart import Cart, CartIdentity, CartLine, CartView
from ordering.menu import MenuItem, require_orderable
from ordering.order.order import Order
from ordering.pricing import line_total
from shared.database import Database, new_id, utcnow
from shared.errors import InvalidQuantityError, NotFoundError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Session-level helpers, shared with checkout and reorder
# ---------------------------------------------------------------------------
def find_cart(session: Session, identity: CartIdentity) -> Cart | None:
    query = (
        select(Cart)
        .where(identity.column == identity.value)
        .options(selectinload(Cart.lines))
        .execution_options(populate_existing=True)
    )
    return session.scalars(query).first()


def ensure_cart(session: Session, database: Database, identity: CartIdentity) -> str:
    """Return the id of the identity's cart, creating it if needed."""
    now = utcnow()
    statement = (
        database.insert(Cart)
        .values(
            id=new_id(),
            customer_id=identity.customer_id,
            session_id=identity.session_id,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=[identity.column.key])
    )
    session.execute(statement)
    return session.scalar(select(Cart.id).where(identity.column == identity.value))


def merge_line(
    session: Session,
    database: Database,
    cart_id: str,
    menu_item_id: str,
    quantity: int,
    unit_price: float,
    special_instructions: str | None = None,
    customizations: dict | None = None,
) -> None:
    """Insert a line, or add ``quantity`` to the existing line for the item.

    The existing line keeps its snapshotted ``unit_price``.
    """
    now = utcnow()
    insert = database.insert(CartLine).values(
        id=new_id(),
        cart_id=cart_id,
        menu_item_id=menu_item_id,
        quantity=quantity,
        unit_price=unit_price,
        total_price=line_total(unit_price, quantity),
        special_instructions=special_instructions,
        customizations=customizations,
        created_at=now,
        updated_at=now,
    )
    existing = CartLine.__table__.c
    merged_quantity = existing.quantity + insert.excluded.quantity
    statement = insert.on_conflict_do_update(
        index_elements=["cart_id", "menu_item_id"],
        set_={
            "quantity": merged_quantity,
            "total_price": existing.unit_price * merged_quantity,
            "special_instructions": func.coalesce(insert.excluded.special_instructions, existing.special_instructions),
            "customizations": func.coalesce(insert.excluded.customizations, existing.customizations),
            "updated_at": insert.excluded.updated_at,
        },
    )
    session.execute(statement)
    session.execute(update(Cart).where(Cart.id == cart_id).values(updated_at=now))


def load_cart_view(session: Session, cart_id: str) -> CartView | None:
    cart = session.scalars(
        select(Cart)
        .where(Cart.id == cart_id)
        .options(selectinload(Cart.lines))
        .execution_options(populate_existing=True)
    ).first()
    return CartView.from_cart(cart) if cart is not None else None


def _require_positive(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError()


class CartStore:
    def __init__(self, database: Database) -> None:
        self._database = database

    def get_cart(self, identity: CartIdentity) -> CartView:
        """The identity's cart, or an empty cart shape if it has none."""
        with self._database.session() as session:
            cart = find_cart(session, identity)
            if cart is None:
                return CartView.empty(identity)
            return CartView.from_cart(cart)

    def add_item(
        self,
        identity: CartIdentity,
        menu_item_id: str,
        quantity: int,
        special_instructions: str | None = None,
        customizations: dict | None = None,
    ) -> CartView:
        _require_positive(quantity)

        with self._database.session() as session:
            menu_item = require_orderable(session, menu_item_id)
            cart_id = ensure_cart(session, self._database, identity)
            merge_line(
                session,
                self._database,
                cart_id=cart_id,
                menu_item_id=menu_item.id,
                quantity=quantity,
                unit_price=menu_item.price,
                special_instructions=special_instructions,
                customizations=customizations,
            )
            view = load_cart_view(session, cart_id)

        logger.debug(
            "cart_item_added",
            cart_id=cart_id,
            menu_item_id=menu_item_id,
            quantity=quantity,
            item_count=view.item_count,
        )
        return view

    def update_item(
        self,
        line_id: str,
        quantity: int,
        special_instructions: str | None = None,
        customizations: dict | None = None,
    ) -> CartView:
        _require_positive(quantity)

        with self._database.session() as session:
            line = session.get(CartLine, line_id)
            if line is None:
                raise NotFoundError(f"Cart item not found: {line_id}")

            line.change_quantity(quantity)
            if special_instructions is not None:
                line.special_instructions = special_instructions
            if customizations is not None:
                line.customizations = customizations
            session.flush()

            cart_id = line.cart_id
            view = load_cart_view(session, cart_id)

        logger.debug("cart_item_updated", cart_id=cart_id, line_id=line_id, quantity=quantity)
        return view

    def remove_item(self, line_id: str) -> CartView:
        with self._database.session() as session:
            line = session.get(CartLine, line_id)
            if line is None:
                raise NotFoundError(f"Cart item not found: {line_id}")

            cart_id = line.cart_id
            session.delete(line)
            session.flush()
            view = load_cart_view(session, cart_id)

        logger.debug("cart_item_removed", cart_id=cart_id, line_id=line_id)
        return view if view is not None else CartView.empty()

    def copy_order_into_cart(self, order_id: str, identity: CartIdentity) -> CartView:
        """Reorder: merge a past order's items into the identity's cart.

        Lines keep the price the customer paid originally. If any of the
        order's menu items has since been deleted, nothing is copied.
        """
        with self._database.session() as session:
            order = session.get(Order, order_id)
            if order is None:
                raise NotFoundError(f"Order not found: {order_id}")

            wanted = {item.menu_item_id for item in order.items}
            existing = set(session.scalars(select(MenuItem.id).where(MenuItem.id.in_(list(wanted)))))
            missing = sorted(wanted - existing)
            if missing:
                raise NotFoundError(
                    f"Menu item not found: {', '.join(missing)}",
                    details={"missingMenuItemIds": missing},
                )

            cart_id = ensure_cart(session, self._database, identity)
            for item in order.items:
                merge_line(
                    session,
                    self._database,
                    cart_id=cart_id,
                    menu_item_id=item.menu_item_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    special_instructions=item.special_instructions,
                    customizations=item.customizations,
                )
            view = load_cart_view(session, cart_id)

        logger.info("order_copied_into_cart", order_id=order_id, cart_id=cart_id, item_count=view.item_count)
        return view

    def clear(self, identity: CartIdentity) -> CartView:
        with self._database.session() as session:
            cart = find_cart(session, identity)
            if cart is None:
                return CartView.empty(identity)
            session.execute(delete(CartLine).where(CartLine.cart_id == cart.id))
            view = load_cart_view(session, cart.id)

        logger.debug("cart_cleared", cart_id=view.id)
        return view
