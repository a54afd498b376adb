"""Wiring: builds the lifetime-scoped resources and the services on top.

Every model module is imported here so SQLAlchemy sees the whole schema
(relationships between contexts are declared by name).
"""

from dataclasses import dataclass

import structlog
from fastapi import Request

import drivers.driver  # noqa: F401
import ordering.cart.cart  # noqa: F401
import ordering.menu  # noqa: F401
import ordering.order.order  # noqa: F401
import payments.payment.payment  # noqa: F401
from drivers.registry import DriverRegistry
from ordering.cart.store import CartStore
from ordering.menu import MenuCatalog
from ordering.order.lifecycle import OrderLifecycleManager
from ordering.projections.sales_report import SalesReporter
from payments.gateway import build_gateway
from payments.gateway.port import PaymentGateway
from shared.config import Settings, get_settings
from shared.database import Database
from tracking.broker import NotificationBroker, build_broker

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    database: Database
    broker: NotificationBroker
    gateway: PaymentGateway
    menu: MenuCatalog
    carts: CartStore
    orders: OrderLifecycleManager
    drivers: DriverRegistry
    reports: SalesReporter

    async def aclose(self) -> None:
        await self.broker.close()
        self.gateway.close()
        self.database.dispose()
        logger.info("services_closed")


def build_services(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    broker: NotificationBroker | None = None,
    gateway: PaymentGateway | None = None,
    create_schema: bool = True,
) -> Services:
    settings = settings or get_settings()
    database = database or Database(settings.database_url, echo=settings.database_echo)
    broker = broker or build_broker(settings)
    gateway = gateway or build_gateway(settings)

    if create_schema:
        database.create_all()

    logger.info(
        "services_built",
        env=settings.env,
        database=database.dialect,
        broker=broker.name,
        gateway=gateway.name,
    )
    return Services(
        settings=settings,
        database=database,
        broker=broker,
        gateway=gateway,
        menu=MenuCatalog(database),
        carts=CartStore(database),
        orders=OrderLifecycleManager(database, gateway, broker, settings),
        drivers=DriverRegistry(database, broker, settings),
        reports=SalesReporter(database),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
