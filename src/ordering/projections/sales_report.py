"""Sales report for the till.

Aggregates the orders created in a period. Cancelled and refunded orders
are excluded from every figure.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import select

from ordering.order.order import Order, OrderStatus
from ordering.pricing import round_money
from shared.database import Database, as_utc, utcnow
from shared.errors import ValidationError
from shared.schema import CamelModel

TOP_ITEMS_LIMIT = 10

_EXCLUDED_STATUSES = [OrderStatus.CANCELLED, OrderStatus.REFUNDED]


class ReportPeriod(Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"


class SalesSummary(CamelModel):
    total_orders: int
    total_revenue: float
    average_order_value: float


class SalesBreakdowns(CamelModel):
    payment_methods: dict[str, int]
    order_types: dict[str, int]
    status_breakdown: dict[str, int]


class TopItem(CamelModel):
    name: str
    quantity: int
    revenue: float


class ReportOrder(CamelModel):
    id: str
    order_number: str
    customer_name: str
    total: float
    status: str
    payment_method: str | None = None
    order_type: str
    created_at: datetime


class SalesReport(CamelModel):
    period: str
    start_date: datetime
    end_date: datetime
    summary: SalesSummary
    breakdowns: SalesBreakdowns
    top_items: list[TopItem]
    hourly_sales: dict[int, float]
    orders: list[ReportOrder]


def period_bounds(
    period: ReportPeriod,
    now: datetime,
    start: datetime | None = None,
    end: datetime | None = None,
) -> tuple[datetime, datetime]:
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == ReportPeriod.WEEK:
        return midnight - timedelta(days=now.weekday()), now
    if period == ReportPeriod.MONTH:
        return midnight.replace(day=1), now
    if period == ReportPeriod.CUSTOM and start is not None and end is not None:
        start, end = as_utc(start), as_utc(end)
        if start > end:
            raise ValidationError("startDate must be before endDate")
        return start, end
    return midnight, now


class SalesReporter:
    def __init__(self, database: Database) -> None:
        self._database = database

    def report(
        self,
        period: ReportPeriod = ReportPeriod.TODAY,
        start: datetime | None = None,
        end: datetime | None = None,
        now: datetime | None = None,
    ) -> SalesReport:
        start, end = period_bounds(period, as_utc(now) or utcnow(), start, end)

        with self._database.session() as session:
            orders = session.scalars(
                select(Order)
                .where(Order.created_at >= start, Order.created_at <= end, Order.status.not_in(_EXCLUDED_STATUSES))
                .order_by(Order.created_at)
            ).all()

            payment_methods: Counter = Counter()
            order_types: Counter = Counter()
            statuses: Counter = Counter()
            hourly: defaultdict = defaultdict(float)
            item_quantities: Counter = Counter()
            item_revenue: defaultdict = defaultdict(float)
            report_orders = []

            for order in orders:
                payment_methods[order.payment_method.value.lower() if order.payment_method else "unknown"] += 1
                order_types[order.order_type.value.lower()] += 1
                statuses[order.status.value.lower()] += 1
                hourly[as_utc(order.created_at).hour] += order.total
                for item in order.items:
                    item_quantities[item.name] += item.quantity
                    item_revenue[item.name] += item.total_price
                report_orders.append(
                    ReportOrder(
                        id=order.id,
                        order_number=order.order_number,
                        customer_name=order.customer_name,
                        total=order.total,
                        status=order.status.value,
                        payment_method=order.payment_method.value if order.payment_method else None,
                        order_type=order.order_type.value,
                        created_at=order.created_at,
                    )
                )

        total_orders = len(report_orders)
        total_revenue = round_money(sum(order.total for order in report_orders))
        return SalesReport(
            period=period.value,
            start_date=start,
            end_date=end,
            summary=SalesSummary(
                total_orders=total_orders,
                total_revenue=total_revenue,
                average_order_value=round_money(total_revenue / total_orders) if total_orders else 0.0,
            ),
            breakdowns=SalesBreakdowns(
                payment_methods=dict(payment_methods),
                order_types=dict(order_types),
                status_breakdown=dict(statuses),
            ),
            top_items=[
                TopItem(name=name, quantity=quantity, revenue=round_money(item_revenue[name]))
                for name, quantity in item_quantities.most_common(TOP_ITEMS_LIMIT)
            ],
            hourly_sales={hour: round_money(amount) for hour, amount in sorted(hourly.items())},
            orders=report_orders,
        )
