"""Outgoing email for job handlers."""

from dataclasses import dataclass
from typing import Protocol

from delayed_jobs.config.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    sender: str
    recipient: str
    subject: str
    body: str


class MailDeliveryError(Exception):
    """The message could not be handed to the mail transport."""


class Mailer(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class LoggingMailer:
    """Mailer that writes messages to the log instead of sending them."""

    async def send(self, message: EmailMessage) -> None:
        if not message.recipient:
            raise MailDeliveryError("Message has no recipient")

        logger.info(
            "Email sent",
            sender=message.sender,
            recipient=message.recipient,
            subject=message.subject,
        )
