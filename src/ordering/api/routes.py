"""FastAPI routes for the Ordering domain: menu, carts, orders and reports."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from bootstrap import Services, get_services
from ordering.api.schemas import (
    AddCartItemRequest,
    AssignDriverRequest,
    CheckoutRequest,
    MenuAvailabilityRequest,
    ProcessPaymentRequest,
    ReorderRequest,
    UpdateCartItemRequest,
    UpdateStatusRequest,
)
from ordering.cart.cart import CartIdentity
from ordering.order.order import CustomerIdentity
from ordering.projections.sales_report import ReportPeriod
from shared.identity import Caller, require_caller, require_staff

# ---------------------------------------------------------------------------
# Menu Router
# ---------------------------------------------------------------------------
menu_router = APIRouter(prefix="/menu", tags=["menu"])


@menu_router.get("")
def list_menu(
    available: bool = Query(default=False),
    category: str | None = Query(default=None),
    services: Services = Depends(get_services),
) -> dict:
    items = services.menu.list_items(available_only=available, category=category)
    return {"success": True, "items": [item.to_json() for item in items]}


@menu_router.patch("/{menu_item_id}/availability")
def set_menu_availability(
    menu_item_id: str,
    body: MenuAvailabilityRequest,
    services: Services = Depends(get_services),
    caller: Caller = Depends(require_staff),
) -> dict:
    """Mark a menu item available or sold out (staff only)."""
    item = services.menu.set_availability(menu_item_id, body.is_available)
    return {"success": True, "item": item.to_json()}


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("")
def get_cart(
    session_id: str | None = Query(default=None, alias="sessionId"),
    customer_id: str | None = Query(default=None, alias="customerId"),
    services: Services = Depends(get_services),
) -> dict:
    identity = CartIdentity(customer_id=customer_id, session_id=session_id)
    return {"success": True, "cart": services.carts.get_cart(identity).to_json()}


@cart_router.post("")
def add_cart_item(body: AddCartItemRequest, services: Services = Depends(get_services)) -> dict:
    identity = CartIdentity(customer_id=body.customer_id, session_id=body.session_id)
    cart = services.carts.add_item(
        identity,
        menu_item_id=body.menu_item_id,
        quantity=body.quantity,
        special_instructions=body.special_instructions,
        customizations=body.customizations,
    )
    return {"success": True, "cart": cart.to_json()}


@cart_router.put("/{line_id}")
def update_cart_item(line_id: str, body: UpdateCartItemRequest, services: Services = Depends(get_services)) -> dict:
    cart = services.carts.update_item(
        line_id,
        quantity=body.quantity,
        special_instructions=body.special_instructions,
        customizations=body.customizations,
    )
    return {"success": True, "cart": cart.to_json()}


@cart_router.delete("/{line_id}")
def remove_cart_item(line_id: str, services: Services = Depends(get_services)) -> dict:
    return {"success": True, "cart": services.carts.remove_item(line_id).to_json()}


@cart_router.delete("")
def clear_cart(
    session_id: str | None = Query(default=None, alias="sessionId"),
    customer_id: str | None = Query(default=None, alias="customerId"),
    services: Services = Depends(get_services),
) -> dict:
    identity = CartIdentity(customer_id=customer_id, session_id=session_id)
    return {"success": True, "cart": services.carts.clear(identity).to_json()}


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201)
def checkout(body: CheckoutRequest, services: Services = Depends(get_services)) -> dict:
    """Place an order from the caller's cart."""
    identity = CartIdentity(customer_id=body.customer_id, session_id=body.session_id)
    order = services.orders.checkout(
        identity,
        customer=body.customer.to_details(),
        order_type=body.order_type,
        special_instructions=body.special_instructions,
    )
    return {"success": True, "order": order.to_json()}


@order_router.get("")
def list_orders(
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    services: Services = Depends(get_services),
    caller: Caller = Depends(require_staff),
) -> dict:
    orders = services.orders.list_orders(status=status, limit=limit)
    return {"success": True, "orders": [order.to_json() for order in orders]}


@order_router.get("/history")
def order_history(
    email: str | None = Query(default=None),
    phone: str | None = Query(default=None),
    services: Services = Depends(get_services),
) -> dict:
    orders = services.orders.order_history(email=email, phone=phone)
    return {"success": True, "orders": [order.to_json() for order in orders]}


@order_router.get("/track/{order_number}")
def track_order(order_number: str, services: Services = Depends(get_services)) -> dict:
    return {"success": True, "order": services.orders.track_order(order_number).to_json()}


@order_router.post("/reorder")
def reorder(body: ReorderRequest, services: Services = Depends(get_services)) -> dict:
    identity = CartIdentity(customer_id=body.customer_id, session_id=body.session_id)
    cart = services.carts.copy_order_into_cart(body.order_id, identity)
    return {"success": True, "cart": cart.to_json()}


@order_router.get("/{order_id}")
def get_order(order_id: str, services: Services = Depends(get_services)) -> dict:
    return {"success": True, "order": services.orders.get_order(order_id).to_json()}


@order_router.post("/{order_id}/payment")
def process_payment(order_id: str, body: ProcessPaymentRequest, services: Services = Depends(get_services)) -> dict:
    outcome = services.orders.process_payment(order_id, method=body.method, amount=body.amount)
    return {"success": True, **outcome.to_json()}


@order_router.put("/{order_id}/status")
def update_status(
    order_id: str,
    body: UpdateStatusRequest,
    services: Services = Depends(get_services),
    caller: Caller = Depends(require_staff),
) -> dict:
    """Advance an order. A ``driverId`` is assigned first when given, and both apply or neither does."""
    order = services.orders.advance_status(order_id, body.status, driver_id=body.driver_id)
    return {"success": True, "order": order.to_json()}


@order_router.put("/{order_id}/driver")
def assign_driver(
    order_id: str,
    body: AssignDriverRequest,
    services: Services = Depends(get_services),
    caller: Caller = Depends(require_staff),
) -> dict:
    order = services.orders.assign_driver(order_id, body.driver_id)
    return {"success": True, "order": order.to_json()}


@order_router.post("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    services: Services = Depends(get_services),
    caller: Caller = Depends(require_caller),
) -> dict:
    """Staff may cancel any order; a customer only their own."""
    customer = None if caller.is_staff else CustomerIdentity(email=caller.email or "")
    return {"success": True, "order": services.orders.cancel(order_id, customer=customer).to_json()}


# ---------------------------------------------------------------------------
# Report Router
# ---------------------------------------------------------------------------
report_router = APIRouter(prefix="/reports", tags=["reports"])


@report_router.get("/sales")
def sales_report(
    period: ReportPeriod = Query(default=ReportPeriod.TODAY),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    services: Services = Depends(get_services),
    caller: Caller = Depends(require_staff),
) -> dict:
    report = services.reports.report(period=period, start=start_date, end=end_date)
    return {"success": True, "report": report.to_json()}
