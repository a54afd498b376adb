"""DriverRating persistence and the driver's aggregate rating."""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from drivers.driver import Driver, DriverRating
from shared.database import Database, new_id, utcnow
from shared.errors import ValidationError


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be a whole number between 1 and 5")
    return rating


def upsert_rating(
    session: Session,
    database: Database,
    *,
    driver_id: str,
    order_id: str,
    customer_email: str,
    customer_name: str | None,
    rating: int,
    comment: str | None = None,
) -> None:
    """One rating per order; resubmitting replaces the earlier one."""
    now = utcnow()
    insert = database.insert(DriverRating).values(
        id=new_id(),
        driver_id=driver_id,
        order_id=order_id,
        customer_email=customer_email,
        customer_name=customer_name,
        rating=rating,
        comment=comment,
        created_at=now,
        updated_at=now,
    )
    statement = insert.on_conflict_do_update(
        index_elements=["order_id"],
        set_={
            "rating": insert.excluded.rating,
            "comment": insert.excluded.comment,
            "customer_name": insert.excluded.customer_name,
            "updated_at": insert.excluded.updated_at,
        },
    )
    session.execute(statement)


def recompute_driver_rating(session: Session, driver: Driver) -> float:
    average = session.scalar(select(func.avg(DriverRating.rating)).where(DriverRating.driver_id == driver.id))
    driver.rating = round(float(average), 2) if average is not None else 0.0
    return driver.rating
