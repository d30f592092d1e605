"""Notification services for sending emails and Telegram messages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import requests
from django.conf import settings  # type: ignore
from django.contrib.auth import get_user_model  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.utils.html import strip_tags  # type: ignore

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/{method}"


# ============================================================================
# MESSAGE TEMPLATES
# ============================================================================

def _booking_paid(booking: "Booking") -> tuple[str, str]:
    subject = f"Booking {booking.reference} is paid"
    html = f"""
    <html>
    <body>
        <h2>Thank you!</h2>
        <p>Your payment for booking <strong>{booking.reference}</strong> has been received.</p>
        <ul>
            <li><strong>Date:</strong> {booking.booking_date:%d.%m.%Y}</li>
            <li><strong>Time:</strong> {booking.start_time:%H:%M} - {booking.end_time:%H:%M}</li>
            <li><strong>Guests:</strong> {booking.party_size}</li>
            <li><strong>Paid:</strong> {booking.total_price} {booking.currency}</li>
        </ul>
        <p>Your invoice will follow in a separate message.</p>
    </body>
    </html>
    """
    return subject, html


def _booking_cancelled(booking: "Booking") -> tuple[str, str]:
    subject = f"Booking {booking.reference} is cancelled"
    refund = "<p>Your payment will be refunded to the original payment method.</p>" if booking.paid_at else ""
    html = f"""
    <html>
    <body>
        <p>Booking <strong>{booking.reference}</strong> for {booking.booking_date:%d.%m.%Y} has been cancelled.</p>
        {refund}
    </body>
    </html>
    """
    return subject, html


def _booking_expired(booking: "Booking") -> tuple[str, str]:
    subject = f"Booking {booking.reference} has expired"
    html = f"""
    <html>
    <body>
        <p>The payment window for booking <strong>{booking.reference}</strong> has elapsed
        and the time slot was released.</p>
        <p>You are welcome to book again at any time.</p>
    </body>
    </html>
    """
    return subject, html


TEMPLATES = {
    "booking_paid": _booking_paid,
    "booking_cancelled": _booking_cancelled,
    "booking_expired": _booking_expired,
}


def render_booking_message(booking: "Booking", template: str) -> tuple[str, str]:
    """Return ``(subject, html)`` for a booking template."""
    try:
        renderer = TEMPLATES[template]
    except KeyError:
        raise LookupError(f"Unknown notification template {template!r}") from None
    return renderer(booking)


def booking_recipient_email(booking: "Booking") -> Optional[str]:
    if booking.user_id is None:
        return None
    user = get_user_model().objects.filter(pk=booking.user_id).only("email").first()
    return (user.email or None) if user else None


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(recipient_email: str, subject: str, html_message: str) -> bool:
    """
    Send one e-mail with a plain-text alternative.

    Transport errors propagate so the calling job is retried.
    """
    send_mail(
        subject=subject,
        message=strip_tags(html_message).strip(),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[recipient_email],
        html_message=html_message,
        fail_silently=False,
    )
    logger.info(f"Email sent to {recipient_email}: {subject}")
    return True


def send_booking_email(booking: "Booking", template: str, recipient_email: Optional[str] = None) -> bool:
    recipient_email = recipient_email or booking_recipient_email(booking)
    if not recipient_email:
        logger.warning(f"Booking {booking.reference} has no e-mail recipient, skipping {template}")
        return False
    subject, html = render_booking_message(booking, template)
    return send_email_notification(recipient_email, subject, html)


# ============================================================================
# TELEGRAM NOTIFICATIONS
# ============================================================================

def send_telegram_message(chat_id: str | int, text: str) -> bool:
    """
    Send a Telegram message through the Bot API.

    Returns False when the bot is not configured; HTTP errors propagate.
    """
    token = settings.TELEGRAM_BOT_TOKEN
    if not token or not chat_id:
        logger.info(f"[TELEGRAM] Not configured, would send to {chat_id}: {text[:50]}...")
        return False

    response = requests.post(
        TELEGRAM_API_URL.format(token=token, method="sendMessage"),
        json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
        timeout=settings.PAYMENT_PROVIDER_TIMEOUT,
    )
    response.raise_for_status()
    logger.info(f"Telegram message sent to {chat_id}")
    return True


def notify_operators(text: str) -> bool:
    """Message the operations chat (manual refunds, payment reviews)."""
    return send_telegram_message(settings.TELEGRAM_ADMIN_CHAT_ID, text)


def send_booking_telegram(booking: "Booking", template: str, chat_id: str | int | None = None) -> bool:
    if template == "booking_paid":
        text = (
            f"<b>Booking {booking.reference} paid</b>\n"
            f"{booking.bookable_type} #{booking.bookable_id}, {booking.booking_date:%d.%m.%Y} "
            f"{booking.start_time:%H:%M}-{booking.end_time:%H:%M}\n"
            f"Guests: {booking.party_size}\n"
            f"Amount: {booking.total_price} {booking.currency} via {booking.payment_method or 'n/a'}"
        )
    else:
        subject, html = render_booking_message(booking, template)
        text = f"<b>{subject}</b>"
    return send_telegram_message(chat_id or settings.TELEGRAM_ADMIN_CHAT_ID, text)
