"""
Delayed job handlers for order emails.

Each handler implements the JobHandler protocol and is registered in the job
handler registry at startup. The job's actor id is the order id.
"""

import logging

from delayed_jobs.config.settings import Settings
from delayed_jobs.v1.core.exceptions import RecoverableJobError, TerminalJobError
from delayed_jobs.v1.notifications.mailer import (
    EmailMessage,
    MailDeliveryError,
    Mailer,
)
from delayed_jobs.v1.orders.client import (
    STATUS_CANCELLED,
    InvalidOrderError,
    Order,
    OrderLookup,
    OrderLookupError,
)

logger = logging.getLogger(__name__)


class OrderJobHandler:
    """Shared order loading and mail sending for the order email handlers."""

    def __init__(self, settings: Settings, orders: OrderLookup, mailer: Mailer):
        self.settings = settings
        self.orders = orders
        self.mailer = mailer

    async def load_order(self, actor_id: str) -> Order:
        try:
            order = await self.orders.get_order(actor_id)
        except InvalidOrderError as e:
            logger.error(
                "Invalid order returned", extra={"order_id": actor_id, "error": str(e)}
            )
            raise TerminalJobError(str(e)) from e
        except OrderLookupError as e:
            raise RecoverableJobError(str(e)) from e

        if order is None:
            logger.error("Order not found", extra={"order_id": actor_id})
            raise TerminalJobError(f"Order not found: {actor_id}")

        return order

    async def send(self, recipient: str, subject: str, body: str) -> None:
        message = EmailMessage(
            sender=self.settings.email_order_from,
            recipient=recipient,
            subject=subject,
            body=body,
        )
        try:
            await self.mailer.send(message)
        except MailDeliveryError as e:
            logger.error(
                "Failed to send email",
                extra={"recipient": recipient, "subject": subject, "error": str(e)},
            )
            raise RecoverableJobError(f"Failed to send email: {e}") from e


class OrderEmailJobHandler(OrderJobHandler):
    """
    Sends the order confirmation to the customer and a new order notice to
    the admin mailbox.
    """

    priority = 10
    description = "Order confirmation email sender"

    async def run(self, actor_id: str) -> None:
        logger.info(
            "Processing order confirmation email", extra={"order_id": actor_id}
        )

        order = await self.load_order(actor_id)
        if not order.customer_email:
            raise TerminalJobError(f"No customer email found for order: {actor_id}")

        order_number = order.order_number or order.id
        status_url = f"{self.settings.app_base_url}/orders/{order.id}"

        await self.send(
            order.customer_email,
            f"Order Confirmation - Village Compute Calendar #{order_number}",
            f"Thank you for your order #{order_number}.\n\n"
            f"Items: {order.item_count}\n"
            f"Track your order at {status_url}\n",
        )
        await self.send(
            self.settings.email_admin_to,
            f"New Order Received - #{order_number}",
            f"Order #{order_number} was placed by {order.customer_email}.\n\n"
            f"Items: {order.item_count}\n"
            f"Details: {self.settings.app_base_url}/admin/orders/{order.id}\n",
        )

        logger.info(
            "Order confirmation emails sent",
            extra={"order_id": actor_id, "recipient": order.customer_email},
        )


class ShippingNotificationJobHandler(OrderJobHandler):
    """Tells the customer their order has shipped, with its tracking number."""

    priority = 10
    description = "Shipping notification email sender"

    async def run(self, actor_id: str) -> None:
        logger.info(
            "Processing shipping notification email", extra={"order_id": actor_id}
        )

        order = await self.load_order(actor_id)
        if not order.tracking_number or not order.tracking_number.strip():
            # Tracking numbers can lag behind the status change
            raise RecoverableJobError(f"Order has no tracking number: {actor_id}")
        if not order.customer_email:
            raise TerminalJobError(f"No customer email found for order: {actor_id}")

        await self.send(
            order.customer_email,
            "Your Order Has Shipped! - Village Compute Calendar",
            f"Your order #{order.order_number or order.id} is on its way.\n\n"
            f"Tracking number: {order.tracking_number}\n",
        )


class OrderCancellationJobHandler(OrderJobHandler):
    """Confirms a cancellation to the customer, noting a refund if one is due."""

    priority = 5
    description = "Order cancellation email sender"

    async def run(self, actor_id: str) -> None:
        logger.info(
            "Processing order cancellation email", extra={"order_id": actor_id}
        )

        order = await self.load_order(actor_id)
        if order.status != STATUS_CANCELLED:
            logger.warning(
                "Order is not cancelled",
                extra={"order_id": actor_id, "status": order.status},
            )
            raise RecoverableJobError(f"Order is not cancelled: {actor_id}")
        if not order.customer_email:
            raise TerminalJobError(f"No customer email found for order: {actor_id}")

        body = f"Your order #{order.order_number or order.id} has been cancelled.\n"
        if order.is_paid:
            body += "\nYour refund is being processed and should arrive in 5-10 business days.\n"

        await self.send(
            order.customer_email,
            "Order Cancelled - Village Compute Calendar",
            body,
        )
