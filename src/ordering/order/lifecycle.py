"""Order Lifecycle Manager.

Application service for everything that happens to an order after the
cart: placement, payment, driver assignment, status changes, cancellation
and the customer's driver rating.

Payment is split into three steps so no database transaction stays open
while the gateway is called:
1. commit PROCESSING (payment record upserted, order payment status set)
2. charge the gateway with the order id as idempotency key
3. commit COMPLETED (order moves to PREPARING) or FAILED (order stays put)

An order cannot be cancelled while its payment is PROCESSING. If it
has left the payable states by step 3 anyway, the charge is refunded and
the payment call fails.

A retry after any failure is safe because the gateway dedupes on the
order id and the payment record is upserted by order id.
"""

from uuid import uuid4

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from drivers.projections.driver_views import DriverRatingView
from drivers.ratings import recompute_driver_rating, upsert_rating, validate_rating
from drivers.registry import find_driver
from ordering.cart.cart import CartIdentity, CartLine, CartView
from ordering.cart.store import find_cart
from ordering.order.order import (
    TERMINAL_STATES,
    CustomerDetails,
    CustomerIdentity,
    Order,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    format_order_number,
    normalize_order_number,
    parse_status,
)
from ordering.pricing import PricingPolicy
from ordering.projections.order_detail import OrderView
from payments.gateway.port import ChargeResult, PaymentGateway, RefundResult
from payments.payment.payment import Payment, PaymentView, find_payment, upsert_payment
from shared.config import Settings
from shared.database import Database
from shared.errors import (
    ConflictError,
    CustomerMismatchError,
    DineStreamError,
    DriverMismatchError,
    ExternalDependencyError,
    InvalidTransitionError,
    NotDeliveredError,
    NotFoundError,
    PaymentDeclinedError,
    UnavailableError,
    ValidationError,
)
from shared.schema import CamelModel

logger = structlog.get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 5
AMOUNT_TOLERANCE = 0.01


class PaymentOutcome(CamelModel):
    order: OrderView
    payment: PaymentView | None = None


def _coerce(enum, value, label: str):
    try:
        return enum(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {label}: {value}") from exc


def find_order(session, order_id: str, for_update: bool = False) -> Order:
    order = session.get(Order, order_id, with_for_update=for_update)
    if order is None:
        raise NotFoundError(f"Order not found: {order_id}")
    return order


class OrderLifecycleManager:
    def __init__(
        self,
        database: Database,
        gateway: PaymentGateway,
        publisher,
        settings: Settings,
    ) -> None:
        self._database = database
        self._gateway = gateway
        self._publisher = publisher
        self._settings = settings
        self._policy = PricingPolicy.from_settings(settings)

    # -------------------------------------------------------------------
    # Placement
    # -------------------------------------------------------------------
    def create_order(
        self,
        lines: list,
        customer: CustomerDetails,
        order_type: OrderType,
        customer_id: str | None = None,
        special_instructions: str | None = None,
    ) -> OrderView:
        """Create a PENDING order from an explicit cart snapshot."""

        def build(session):
            return self._place(session, lines, customer, order_type, customer_id, special_instructions)

        return self._place_with_retry(build)

    def checkout(
        self,
        identity: CartIdentity,
        customer: CustomerDetails,
        order_type: OrderType,
        special_instructions: str | None = None,
    ) -> OrderView:
        """Turn the identity's cart into an order and empty the cart, atomically."""

        def build(session):
            cart = find_cart(session, identity)
            if cart is None or not cart.lines:
                raise ValidationError("Cart is empty")

            snapshot = CartView.from_cart(cart)
            unavailable = [line.name for line in snapshot.items if not line.is_available]
            if unavailable:
                raise UnavailableError(
                    "Some items in the cart are no longer available",
                    details={"unavailableItems": unavailable},
                )

            order = self._place(
                session,
                snapshot.items,
                customer,
                order_type,
                identity.customer_id,
                special_instructions,
            )
            session.execute(delete(CartLine).where(CartLine.cart_id == cart.id))
            return order

        return self._place_with_retry(build)

    def _place_with_retry(self, build) -> OrderView:
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                with self._database.session() as session:
                    order = build(session)
                    session.flush()
                    view = OrderView.model_validate(order)
                    events = order.collect_events()
                break
            except IntegrityError as exc:
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise ConflictError("Could not allocate an order number, please retry") from exc
                logger.warning("order_number_collision", attempt=attempt)

        self._publish(events)
        logger.info(
            "order_created",
            order_id=view.id,
            order_number=view.order_number,
            order_type=view.order_type.value,
            total=view.total,
        )
        return view

    def _place(self, session, lines, customer, order_type, customer_id, special_instructions) -> Order:
        order_type = _coerce(OrderType, order_type, "order type")
        totals = self._policy.order_totals(lines, is_delivery=order_type == OrderType.DELIVERY)
        sequence = (session.scalar(select(func.max(Order.sequence_number))) or 0) + 1

        order = Order.place(
            order_number=format_order_number(self._settings.order_number_prefix, sequence),
            sequence_number=sequence,
            order_type=order_type,
            customer=customer,
            lines=list(lines),
            totals=totals,
            currency=self._settings.currency,
            customer_id=customer_id,
            special_instructions=special_instructions,
        )
        session.add(order)
        session.flush()
        return order

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def process_payment(self, order_id: str, method: PaymentMethod | str, amount: float) -> PaymentOutcome:
        method = _coerce(PaymentMethod, method, "payment method")

        # Step 1: PROCESSING
        with self._database.session() as session:
            order = find_order(session, order_id, for_update=True)

            if order.is_paid:
                payment = find_payment(session, order_id)
                logger.info("payment_already_completed", order_id=order_id)
                return PaymentOutcome(
                    order=OrderView.model_validate(order),
                    payment=PaymentView.model_validate(payment) if payment is not None else None,
                )

            if abs(float(amount) - order.total) > AMOUNT_TOLERANCE:
                raise ValidationError(
                    "Payment amount does not match the order total",
                    details={"expected": order.total, "received": amount},
                )

            order.start_payment(method)
            upsert_payment(
                session,
                self._database,
                order_id=order_id,
                amount=order.total,
                currency=order.currency,
                method=method,
                status=PaymentStatus.PROCESSING,
            )
            total = order.total
            currency = order.currency

        # Step 2: charge
        if method == PaymentMethod.CARD:
            try:
                result = self._gateway.charge(total, currency, reference=order_id)
            except ExternalDependencyError:
                logger.error("payment_outcome_unknown", order_id=order_id, gateway=self._gateway.name)
                raise
        else:
            result = ChargeResult(success=True, transaction_id=f"cash_{uuid4().hex[:12]}", gateway_status="CASH")

        # Step 3: record the outcome
        stranded_status = None
        try:
            with self._database.session() as session:
                order = find_order(session, order_id, for_update=True)
                if result.success and not order.can_take_payment:
                    stranded_status = order.status
                elif result.success:
                    upsert_payment(
                        session,
                        self._database,
                        order_id=order_id,
                        amount=total,
                        currency=currency,
                        method=method,
                        status=PaymentStatus.COMPLETED,
                        transaction_id=result.transaction_id,
                    )
                    order.mark_paid(method)
                else:
                    upsert_payment(
                        session,
                        self._database,
                        order_id=order_id,
                        amount=total,
                        currency=currency,
                        method=method,
                        status=PaymentStatus.FAILED,
                        failure_reason=result.failure_reason,
                    )
                    order.mark_payment_failed(result.failure_reason)
                if stranded_status is None:
                    session.flush()
                    outcome = PaymentOutcome(
                        order=OrderView.model_validate(order),
                        payment=PaymentView.model_validate(find_payment(session, order_id)),
                    )
                    events = order.collect_events()
        except (DineStreamError, IntegrityError) as exc:
            if result.success:
                logger.error(
                    "payment_reconciliation_required",
                    order_id=order_id,
                    transaction_id=result.transaction_id,
                    amount=total,
                    error=str(exc),
                )
                raise ExternalDependencyError("Payment was taken but could not be recorded") from exc
            raise

        if stranded_status is not None:
            self._reverse_stranded_charge(order_id, method, result, total, stranded_status)

        self._publish(events)

        if not result.success:
            logger.info("payment_declined", order_id=order_id, method=method.value, reason=result.failure_reason)
            raise PaymentDeclinedError(result.failure_reason, details={"orderId": order_id})

        logger.info(
            "payment_charged",
            order_id=order_id,
            method=method.value,
            amount=total,
            transaction_id=result.transaction_id,
        )
        return outcome

    # -------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------
    def assign_driver(self, order_id: str, driver_id: str) -> OrderView:
        with self._database.session() as session:
            order = find_order(session, order_id, for_update=True)
            driver = find_driver(session, driver_id)
            order.assign_driver(driver)
            session.flush()
            view = OrderView.model_validate(order)
            events = order.collect_events()

        self._publish(events)
        logger.info("driver_assigned", order_id=order_id, order_number=view.order_number, driver_id=driver_id)
        return view

    # -------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------
    def advance_status(
        self, order_id: str, next_status: OrderStatus | str, driver_id: str | None = None
    ) -> OrderView:
        """Move an order to ``next_status``, assigning ``driver_id`` first in the same unit of work."""
        target = parse_status(next_status)
        if driver_id and target in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            raise ValidationError(f"A driver cannot be assigned while moving an order to {target.value}")
        if target == OrderStatus.REFUNDED:
            return self.cancel(order_id, require_refund=True)
        if target == OrderStatus.CANCELLED:
            return self.cancel(order_id)

        with self._database.session() as session:
            order = find_order(session, order_id, for_update=True)
            previous = order.status
            if driver_id:
                order.assign_driver(find_driver(session, driver_id))
            order.advance_to(target)
            if target == OrderStatus.DELIVERED and order.driver is not None:
                order.driver.record_delivery(order.delivery_fee)
            session.flush()
            view = OrderView.model_validate(order)
            events = order.collect_events()

        self._publish(events)
        logger.info(
            "order_status_advanced",
            order_id=order_id,
            order_number=view.order_number,
            from_status=previous.value,
            to_status=target.value,
            driver_id=driver_id,
        )
        return view

    def cancel(
        self, order_id: str, require_refund: bool = False, customer: CustomerIdentity | None = None
    ) -> OrderView:
        """Cancel an order. A paid order is refunded first and ends up REFUNDED.

        With ``customer`` set, only the customer who placed the order may cancel it.
        """
        with self._database.session() as session:
            order = find_order(session, order_id, for_update=True)
            if customer is not None and not customer.matches(order.customer_email):
                raise CustomerMismatchError()
            if order.status in TERMINAL_STATES:
                raise InvalidTransitionError(f"Cannot cancel an order that is {order.status.value}")
            if require_refund and not order.is_paid:
                raise InvalidTransitionError("Only paid orders can be refunded")

            if not order.is_paid:
                order.cancel()
                session.flush()
                view = OrderView.model_validate(order)
                events = order.collect_events()
            else:
                view = None
                payment = find_payment(session, order_id)
                transaction_id = payment.transaction_id if payment is not None else None
                method = order.payment_method
                total = order.total

        if view is not None:
            self._publish(events)
            logger.info("order_cancelled", order_id=order_id, order_number=view.order_number)
            return view

        refund = self._refund(order_id, method, transaction_id, total)

        try:
            with self._database.session() as session:
                order = find_order(session, order_id, for_update=True)
                order.mark_refunded()
                session.execute(
                    update(Payment)
                    .where(Payment.order_id == order_id)
                    .values(status=PaymentStatus.REFUNDED, refund_id=refund.refund_id)
                )
                session.flush()
                view = OrderView.model_validate(order)
                events = order.collect_events()
        except (DineStreamError, IntegrityError) as exc:
            logger.error(
                "refund_reconciliation_required",
                order_id=order_id,
                refund_id=refund.refund_id,
                amount=total,
                error=str(exc),
            )
            raise ExternalDependencyError("Refund was issued but could not be recorded") from exc

        self._publish(events)
        logger.info("order_refunded", order_id=order_id, order_number=view.order_number, refund_id=refund.refund_id)
        return view

    def _refund(self, order_id: str, method, transaction_id: str | None, total: float) -> RefundResult:
        if method == PaymentMethod.CASH:
            return RefundResult(success=True, refund_id=f"cash_refund_{uuid4().hex[:12]}", gateway_status="CASH")

        if transaction_id is None:
            logger.error("refund_reconciliation_required", order_id=order_id, reason="no transaction on record")
            raise ExternalDependencyError("No payment transaction on record to refund")

        result = self._gateway.refund(transaction_id, total, reference=order_id)
        if not result.success:
            logger.error(
                "refund_reconciliation_required",
                order_id=order_id,
                transaction_id=transaction_id,
                reason=result.failure_reason,
            )
            raise ExternalDependencyError(f"Refund was not confirmed: {result.failure_reason or 'unknown reason'}")
        return result

    def _reverse_stranded_charge(
        self,
        order_id: str,
        method: PaymentMethod,
        charge: ChargeResult,
        total: float,
        order_status: OrderStatus,
    ) -> None:
        """Give back a charge that completed after the order stopped being payable.

        Always raises: the caller's payment did not go through.
        """
        logger.warning(
            "payment_landed_on_closed_order",
            order_id=order_id,
            order_status=order_status.value,
            transaction_id=charge.transaction_id,
        )
        try:
            refund = self._refund(order_id, method, charge.transaction_id, total)
        except ExternalDependencyError as exc:
            logger.error(
                "payment_reconciliation_required",
                order_id=order_id,
                transaction_id=charge.transaction_id,
                amount=total,
                error=str(exc),
            )
            raise

        try:
            with self._database.session() as session:
                order = find_order(session, order_id, for_update=True)
                order.mark_charge_reversed()
                session.execute(
                    update(Payment)
                    .where(Payment.order_id == order_id)
                    .values(
                        status=PaymentStatus.REFUNDED,
                        transaction_id=charge.transaction_id,
                        refund_id=refund.refund_id,
                    )
                )
                events = order.collect_events()
        except (DineStreamError, IntegrityError) as exc:
            logger.error(
                "refund_reconciliation_required",
                order_id=order_id,
                refund_id=refund.refund_id,
                amount=total,
                error=str(exc),
            )
            raise ExternalDependencyError("Refund was issued but could not be recorded") from exc

        self._publish(events)
        raise InvalidTransitionError(
            f"Order is {order_status.value}; the payment has been refunded",
            details={"orderId": order_id},
        )

    # -------------------------------------------------------------------
    # Rating
    # -------------------------------------------------------------------
    def submit_driver_rating(
        self,
        order_id: str,
        customer: CustomerIdentity,
        rating: int,
        comment: str | None = None,
        driver_id: str | None = None,
    ) -> DriverRatingView:
        rating = validate_rating(rating)

        with self._database.session() as session:
            order = find_order(session, order_id)
            if order.status != OrderStatus.DELIVERED:
                raise NotDeliveredError()
            if order.driver_id is None:
                raise DriverMismatchError("Order was not delivered by a driver")
            if driver_id is not None and driver_id != order.driver_id:
                raise DriverMismatchError()
            if not customer.matches(order.customer_email):
                raise CustomerMismatchError()

            upsert_rating(
                session,
                self._database,
                driver_id=order.driver_id,
                order_id=order_id,
                customer_email=order.customer_email,
                customer_name=customer.name or order.customer_name,
                rating=rating,
                comment=comment,
            )
            driver = find_driver(session, order.driver_id)
            average = recompute_driver_rating(session, driver)
            view = DriverRatingView(
                order_id=order_id,
                driver_id=driver.id,
                rating=rating,
                comment=comment,
                customer_name=customer.name or order.customer_name,
                driver_rating=average,
            )

        logger.info("driver_rated", order_id=order_id, driver_id=view.driver_id, rating=rating, average=average)
        return view

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_order(self, order_id: str) -> OrderView:
        with self._database.session() as session:
            return OrderView.model_validate(find_order(session, order_id))

    def track_order(self, order_number: str) -> OrderView:
        number = normalize_order_number(order_number or "")
        with self._database.session() as session:
            order = session.scalars(select(Order).where(Order.order_number == number)).first()
            if order is None:
                raise NotFoundError(f"Order not found: {number}")
            return OrderView.model_validate(order)

    def list_orders(self, status: OrderStatus | str | None = None, limit: int = 50) -> list[OrderView]:
        query = select(Order).order_by(Order.created_at.desc(), Order.sequence_number.desc()).limit(limit)
        if status is not None:
            query = query.where(Order.status == parse_status(status))

        with self._database.session() as session:
            return [OrderView.model_validate(order) for order in session.scalars(query)]

    def order_history(self, email: str | None = None, phone: str | None = None, limit: int = 10) -> list[OrderView]:
        if not email and not phone:
            raise ValidationError("Email or phone is required")

        query = select(Order).order_by(Order.created_at.desc(), Order.sequence_number.desc()).limit(limit)
        if email:
            query = query.where(func.lower(Order.customer_email) == email.strip().lower())
        else:
            query = query.where(Order.customer_phone == phone.strip())

        with self._database.session() as session:
            return [OrderView.model_validate(order) for order in session.scalars(query)]

    def _publish(self, events) -> None:
        for event in events:
            self._publisher.publish(event)
