"""
Job handler registration.

Registers every job handler with the job handler registry once at startup;
the registry is frozen afterwards.
"""

import logging

from delayed_jobs.config.settings import Settings
from delayed_jobs.v1.core.registries import JobHandlerRegistry
from delayed_jobs.v1.jobs.handlers import (
    OrderCancellationJobHandler,
    OrderEmailJobHandler,
    ShippingNotificationJobHandler,
)
from delayed_jobs.v1.notifications.mailer import LoggingMailer, Mailer
from delayed_jobs.v1.orders.client import OrderLookup, OrderServiceClient

logger = logging.getLogger(__name__)


def register_job_handlers(
    registry: JobHandlerRegistry,
    settings: Settings,
    orders: OrderLookup | None = None,
    mailer: Mailer | None = None,
) -> None:
    """Register all job handlers and freeze the registry."""

    logger.info("Registering job handlers")

    orders = orders or OrderServiceClient.from_settings(settings)
    mailer = mailer or LoggingMailer()

    # Order email handlers
    registry.register(OrderEmailJobHandler(settings, orders, mailer))
    registry.register(ShippingNotificationJobHandler(settings, orders, mailer))
    registry.register(OrderCancellationJobHandler(settings, orders, mailer))

    registry.freeze()

    logger.info(
        "Job handlers registered", extra={"registered_handlers": registry.list()}
    )
