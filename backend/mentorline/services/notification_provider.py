# backend/mentorline/services/notification_provider.py
"""
Notification delivery providers.

The scheduling core only knows opaque user ids; a provider turns
``(recipient, template, data)`` into an actual message. The console provider
logs messages for local development and tests; the Resend provider sends
email, resolving user ids to addresses through an injected callable.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Protocol

import resend

from ..core.config import settings
from ..core.exceptions import ServiceException
from .notification_templates import NotificationTemplate

logger = logging.getLogger(__name__)

RecipientResolver = Callable[[str], Optional[str]]


def recipient_as_address(recipient: str) -> Optional[str]:
    """Default resolver: ids that are already email addresses are used as-is."""
    return recipient if "@" in recipient else None


class NotificationProviderError(RuntimeError):
    """Raised when a provider could not deliver a message."""


class NotificationProvider(Protocol):
    def send(self, recipient: str, template: NotificationTemplate, data: Dict[str, Any]) -> None:
        """Deliver one message or raise."""


class ConsoleNotificationProvider:
    """Logs rendered messages instead of delivering them."""

    def send(self, recipient: str, template: NotificationTemplate, data: Dict[str, Any]) -> None:
        subject, body = template.render(data)
        logger.info(
            "notification %s to=%s subject=%s body=%s",
            template.type,
            recipient,
            subject,
            body[:500],
        )


class ResendNotificationProvider:
    """
    Email delivery through Resend.

    Usage:
        provider = ResendNotificationProvider(resolve_email=profile_lookup)
        provider.send("user_123", CALL_CONFIRMED, {...})
    """

    def __init__(
        self,
        resolve_email: RecipientResolver = recipient_as_address,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
    ) -> None:
        key = api_key or settings.resend_api_key
        if not key:
            raise ServiceException("RESEND_API_KEY must be set for the resend provider")
        resend.api_key = key
        self._resolve_email = resolve_email
        self._from_email = from_email or settings.from_email

    def send(self, recipient: str, template: NotificationTemplate, data: Dict[str, Any]) -> None:
        to_email = self._resolve_email(recipient)
        if not to_email:
            raise NotificationProviderError(f"No email address for recipient {recipient}")

        subject, body = template.render(data)
        email_data = {
            "from": self._from_email,
            "to": to_email,
            "subject": subject,
            "text": body,
            "html": f"<p>{body}</p>",
        }
        try:
            resend.Emails.send(email_data)
        except Exception as exc:
            logger.error("Failed to send %s to %s: %s", template.type, recipient, exc)
            raise NotificationProviderError(str(exc)) from exc
        logger.info("Email sent successfully to %s - Subject: %s", recipient, subject)


def build_notification_provider(
    resolve_email: Optional[RecipientResolver] = None,
) -> NotificationProvider:
    """Provider selected by ``settings.notification_provider``."""
    if settings.notification_provider == "resend":
        return ResendNotificationProvider(resolve_email=resolve_email or recipient_as_address)
    return ConsoleNotificationProvider()
