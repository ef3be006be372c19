"""Notification services: in-app notifications and email delivery."""

from __future__ import annotations

import logging

from django.conf import settings  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.utils.html import strip_tags  # type: ignore

from .models import Notification

logger = logging.getLogger(__name__)


def notify(
    user_id: int,
    title: str,
    message: str,
    *,
    kind: str = Notification.Kind.INFO,
    event: str = "",
    booking_id: int | None = None,
) -> Notification:
    """Store an in-app notification for ``user_id``."""
    notification = Notification.objects.create(
        user_id=user_id,
        title=title,
        message=message,
        kind=kind,
        event=event,
        booking_id=booking_id,
    )
    logger.info(f"Notification {notification.pk} ({event or kind}) created for user {user_id}")
    return notification


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(
    recipient_email: str,
    subject: str,
    *,
    html_message: str | None = None,
    text_message: str = "",
) -> bool:
    """
    Send one email.

    Args:
        recipient_email: Recipient address
        subject: Subject line
        html_message: HTML body (optional); the text body is derived from it
        text_message: Plain text body when there is no HTML

    Returns:
        bool: True if the message was handed to the mail backend
    """
    if not recipient_email:
        return False
    if html_message:
        text_message = strip_tags(html_message)

    try:
        send_mail(
            subject=subject,
            message=text_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            html_message=html_message,
            fail_silently=False,
        )
    except OSError as e:
        # Delivery failures never propagate to the event publisher
        logger.error(f"Failed to send email to {recipient_email}: {e}", exc_info=True)
        return False

    logger.info(f"Email sent successfully to {recipient_email}: {subject}")
    return True
