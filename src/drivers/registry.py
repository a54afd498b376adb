"""Driver Registry & Location Tracker."""

from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from drivers.driver import Driver
from drivers.passwords import hash_password, verify_password
from drivers.projections.driver_views import ActiveDriverView, DeliveryBrief, DriverDetailView, DriverView
from ordering.order.order import DRIVER_BUSY_STATES, Order, OrderStatus
from shared.config import Settings
from shared.database import Database, utcnow
from shared.errors import ConflictError, InvalidCredentialsError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

RECENT_DELIVERIES_LIMIT = 10


def find_driver(session, driver_id: str) -> Driver:
    driver = session.get(Driver, driver_id)
    if driver is None:
        raise NotFoundError(f"Driver not found: {driver_id}")
    return driver


class DriverRegistry:
    def __init__(self, database: Database, publisher, settings: Settings) -> None:
        self._database = database
        self._publisher = publisher
        self._settings = settings

    # -------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------
    def register(
        self,
        name: str,
        phone: str,
        password: str,
        vehicle_info: str | None = None,
        email: str | None = None,
    ) -> DriverView:
        name = (name or "").strip()
        phone = (phone or "").strip()
        if not name or not phone:
            raise ValidationError("Name and phone are required")

        password_hash = hash_password(
            password,
            min_length=self._settings.password_min_length,
            method=self._settings.password_hash_method,
        )

        try:
            with self._database.session() as session:
                if session.scalar(select(Driver.id).where(Driver.phone == phone)) is not None:
                    raise ConflictError("A driver with this phone number already exists")

                driver = Driver(
                    name=name,
                    phone=phone,
                    email=email,
                    vehicle_info=vehicle_info,
                    password_hash=password_hash,
                    is_available=True,
                )
                session.add(driver)
                session.flush()
                view = DriverView.model_validate(driver)
        except IntegrityError as exc:
            raise ConflictError("A driver with this phone number already exists") from exc

        logger.info("driver_registered", driver_id=view.id)
        return view

    def authenticate(self, phone: str, password: str) -> DriverView:
        phone = (phone or "").strip()
        with self._database.session() as session:
            driver = session.scalars(select(Driver).where(Driver.phone == phone)).first()
            if driver is None:
                raise NotFoundError("No driver registered with this phone number")

            if not verify_password(driver.password_hash, password):
                logger.warning("driver_login_failed", driver_id=driver.id, has_password=bool(driver.password_hash))
                raise InvalidCredentialsError()

            return DriverView.model_validate(driver)

    def update_profile(
        self,
        driver_id: str,
        *,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        vehicle_info: str | None = None,
    ) -> DriverView:
        try:
            with self._database.session() as session:
                driver = find_driver(session, driver_id)
                if phone is not None:
                    phone = phone.strip()
                    taken = session.scalar(select(Driver.id).where(Driver.phone == phone, Driver.id != driver_id))
                    if taken is not None:
                        raise ConflictError("A driver with this phone number already exists")
                    driver.phone = phone
                if name is not None:
                    driver.name = name.strip()
                if email is not None:
                    driver.email = email
                if vehicle_info is not None:
                    driver.vehicle_info = vehicle_info
                session.flush()
                return DriverView.model_validate(driver)
        except IntegrityError as exc:
            raise ConflictError("A driver with this phone number already exists") from exc

    def set_availability(self, driver_id: str, is_available: bool) -> DriverView:
        with self._database.session() as session:
            driver = find_driver(session, driver_id)
            driver.set_availability(is_available)
            session.flush()
            view = DriverView.model_validate(driver)

        logger.info("driver_availability_changed", driver_id=driver_id, is_available=is_available)
        return view

    def delete(self, driver_id: str) -> None:
        with self._database.session() as session:
            driver = find_driver(session, driver_id)
            busy = session.scalar(
                select(Order.id)
                .where(Order.driver_id == driver_id, Order.status.in_(list(DRIVER_BUSY_STATES)))
                .limit(1)
            )
            if busy is not None:
                raise ConflictError("Driver still has active deliveries")
            session.delete(driver)

        logger.info("driver_deleted", driver_id=driver_id)

    # -------------------------------------------------------------------
    # Location
    # -------------------------------------------------------------------
    def update_location(
        self,
        driver_id: str,
        latitude,
        longitude,
        accuracy: float | None = None,
        timestamp: datetime | None = None,
    ) -> DriverView:
        with self._database.session() as session:
            driver = find_driver(session, driver_id)
            driver.update_location(latitude, longitude, accuracy=accuracy, timestamp=timestamp)
            session.flush()
            view = DriverView.model_validate(driver)
            events = driver.collect_events()

        for event in events:
            self._publisher.publish(event)

        logger.debug("driver_location_updated", driver_id=driver_id)
        return view

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get(self, driver_id: str) -> DriverDetailView:
        with self._database.session() as session:
            driver = find_driver(session, driver_id)
            recent = session.scalars(
                select(Order)
                .where(Order.driver_id == driver_id)
                .order_by(Order.created_at.desc())
                .limit(RECENT_DELIVERIES_LIMIT)
            ).all()

            view = DriverDetailView.model_validate(driver)
            view.recent_deliveries = [DeliveryBrief.model_validate(order) for order in recent]
            return view

    def list_drivers(self, available: bool | None = None, limit: int = 50) -> list[DriverView]:
        query = select(Driver).order_by(Driver.name).limit(limit)
        if available is not None:
            query = query.where(Driver.is_available.is_(available))

        with self._database.session() as session:
            return [DriverView.model_validate(driver) for driver in session.scalars(query)]

    def list_active(
        self,
        max_staleness: timedelta | None = None,
        now: datetime | None = None,
        with_location_only: bool = False,
    ) -> list[ActiveDriverView]:
        """Available drivers whose last update falls inside the staleness window.

        Each carries its OUT_FOR_DELIVERY orders.
        """
        if max_staleness is None:
            max_staleness = timedelta(minutes=self._settings.active_driver_staleness_minutes)
        cutoff = (now or utcnow()) - max_staleness

        query = (
            select(Driver)
            .where(Driver.is_available.is_(True), Driver.updated_at >= cutoff)
            .order_by(Driver.updated_at.desc())
        )
        if with_location_only:
            query = query.where(Driver.current_location.is_not(None))

        with self._database.session() as session:
            drivers = session.scalars(query).all()
            if not drivers:
                return []

            in_flight: dict[str, list[DeliveryBrief]] = {driver.id: [] for driver in drivers}
            deliveries = session.scalars(
                select(Order)
                .where(Order.driver_id.in_(list(in_flight)), Order.status == OrderStatus.OUT_FOR_DELIVERY)
                .order_by(Order.created_at)
            )
            for order in deliveries:
                in_flight[order.driver_id].append(DeliveryBrief.model_validate(order))

            result = []
            for driver in drivers:
                view = ActiveDriverView.model_validate(driver)
                view.active_deliveries = in_flight[driver.id]
                result.append(view)
            return result
