"""
Notification Service
====================

Decides *what* to tell a volunteer about their background checks and hands
it to a ``NotificationDispatcher``. Delivery (email, SMS, push) is owned by
the external messaging subsystem; the default dispatcher only logs.

Notification kinds:

  - ``expiring``: an approved check is approaching its expiry date
  - ``expired``: an approved check passed its expiry date
  - ``status_changed``: a provider reported a new status
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from screening.models import CheckStatus, CheckType

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    EXPIRING = "expiring"
    EXPIRED = "expired"
    STATUS_CHANGED = "status_changed"


@dataclass(frozen=True)
class RecipientContact:
    """Where and to whom a notification is addressed."""
    volunteer_id: uuid.UUID
    email: str
    name: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class NotificationMessage:
    title: str
    body: str


class NotificationDispatcher(Protocol):
    """Transport-agnostic notification sink."""

    async def send(
        self,
        recipient: RecipientContact,
        kind: NotificationKind,
        check_type: CheckType,
        days_until_expiration: Optional[int] = None,
        status: Optional[CheckStatus] = None,
    ) -> bool:
        ...


def _label(check_type: CheckType) -> str:
    return check_type.value.replace("_", " ")


def build_message(
    kind: NotificationKind,
    check_type: CheckType,
    days_until_expiration: Optional[int] = None,
    status: Optional[CheckStatus] = None,
) -> NotificationMessage:
    """Render the title and body for a notification."""
    label = _label(check_type)

    if kind == NotificationKind.EXPIRED:
        return NotificationMessage(
            title="Background Check Expired",
            body=(
                f"Your {label} background check has expired. Please request a "
                f"renewal to keep serving in roles that require it."
            ),
        )

    if kind == NotificationKind.EXPIRING:
        days = days_until_expiration or 0
        if days <= 7:
            title = "Background Check Expiring Soon"
        else:
            title = "Background Check Renewal Reminder"
        return NotificationMessage(
            title=title,
            body=(
                f"Your {label} background check expires in {days} "
                f"day{'s' if days != 1 else ''}. Please plan to renew it before expiration."
            ),
        )

    status_text = (status.value if status else "updated").replace("_", " ")
    return NotificationMessage(
        title="Background Check Update",
        body=f"Your {label} background check is now {status_text}.",
    )


class LoggingNotificationDispatcher:
    """Default dispatcher: logs the rendered notification and reports success."""

    async def send(
        self,
        recipient: RecipientContact,
        kind: NotificationKind,
        check_type: CheckType,
        days_until_expiration: Optional[int] = None,
        status: Optional[CheckStatus] = None,
    ) -> bool:
        message = build_message(kind, check_type, days_until_expiration, status)
        logger.info(
            "Notification [%s] to volunteer=%s <%s>: %s -- %s",
            kind.value,
            recipient.volunteer_id,
            recipient.email,
            message.title,
            message.body,
        )
        return True


async def dispatch_safely(
    dispatcher: NotificationDispatcher,
    recipient: RecipientContact,
    kind: NotificationKind,
    check_type: CheckType,
    days_until_expiration: Optional[int] = None,
    status: Optional[CheckStatus] = None,
) -> bool:
    """Send through ``dispatcher`` without letting a delivery failure escape.

    Status changes have already been decided by the time a notification is
    sent, so a failed delivery is logged and reported as ``False``.
    """
    try:
        return await dispatcher.send(
            recipient,
            kind,
            check_type,
            days_until_expiration=days_until_expiration,
            status=status,
        )
    except Exception:
        logger.exception(
            "Notification dispatch failed: volunteer=%s, kind=%s, check_type=%s",
            recipient.volunteer_id,
            kind.value,
            check_type.value,
        )
        return False
