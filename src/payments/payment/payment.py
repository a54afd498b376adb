"""Payment record: one row per order.

Every write is an upsert keyed by ``order_id``, so retrying a payment
updates the existing record instead of adding a second one.

Status:
    PENDING → PROCESSING → COMPLETED | FAILED
    FAILED → PROCESSING (retry)
    COMPLETED → REFUNDED
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, select
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, Session, mapped_column

from ordering.order.order import PaymentMethod, PaymentStatus
from shared.database import Base, Database, new_id, utcnow
from shared.schema import CamelModel


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True)
    amount: Mapped[float] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3), default="GBP")
    method: Mapped[PaymentMethod] = mapped_column(SQLEnum(PaymentMethod, native_enum=False, length=16))
    status: Mapped[PaymentStatus] = mapped_column(SQLEnum(PaymentStatus, native_enum=False, length=32))
    transaction_id: Mapped[str | None] = mapped_column(String(255), default=None)
    refund_id: Mapped[str | None] = mapped_column(String(255), default=None)
    failure_reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class PaymentView(CamelModel):
    id: str
    order_id: str
    amount: float
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str | None = None
    refund_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime


def upsert_payment(
    session: Session,
    database: Database,
    *,
    order_id: str,
    amount: float,
    currency: str,
    method: PaymentMethod,
    status: PaymentStatus,
    transaction_id: str | None = None,
    failure_reason: str | None = None,
) -> None:
    now = utcnow()
    insert = database.insert(Payment).values(
        id=new_id(),
        order_id=order_id,
        amount=amount,
        currency=currency,
        method=method,
        status=status,
        transaction_id=transaction_id,
        failure_reason=failure_reason,
        created_at=now,
        updated_at=now,
    )
    statement = insert.on_conflict_do_update(
        index_elements=["order_id"],
        set_={
            "amount": insert.excluded.amount,
            "currency": insert.excluded.currency,
            "method": insert.excluded.method,
            "status": insert.excluded.status,
            "transaction_id": insert.excluded.transaction_id,
            "failure_reason": insert.excluded.failure_reason,
            "updated_at": insert.excluded.updated_at,
        },
    )
    session.execute(statement)


def find_payment(session: Session, order_id: str) -> Payment | None:
    return session.scalars(
        select(Payment).where(Payment.order_id == order_id).execution_options(populate_existing=True)
    ).first()
