from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string

from notifications.models import NotificationLog

logger = logging.getLogger(__name__)


def _render(template: str, context: dict) -> str:
    """Render a template relative to the notifications app."""
    return render_to_string(template, context).strip()


def _build_email_context(extra: Optional[dict]) -> dict:
    frontend_origin = (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/")
    context = {
        "site_name": getattr(settings, "SITE_NAME", "Carshare"),
        "site_url": frontend_origin,
        "support_email": getattr(settings, "SUPPORT_EMAIL", "") or settings.DEFAULT_FROM_EMAIL,
    }
    if extra:
        context.update(extra)
    return context


def _log_notification(
    type_: str,
    status: str,
    *,
    recipient: str | None = None,
    user_id: int | None = None,
    booking_id: int | None = None,
    error: str | None = None,
) -> None:
    try:
        NotificationLog.objects.create(
            type=type_,
            recipient=recipient or "",
            status=status,
            user_id=user_id,
            booking_id=booking_id,
            error=error or "",
        )
    except Exception:
        logger.exception(
            "notifications: failed to persist notification log",
            extra={"type": type_, "status": status},
        )


def _prepare_email_bodies(subject: str, template: str, context: dict | None) -> tuple[str, str | None]:
    context_with_brand = _build_email_context(context or {})
    context_with_brand["subject"] = subject
    text_template_path = template if template.startswith("email/") else f"email/{template}"
    body = _render(text_template_path, context_with_brand)
    html_template_path = f"{text_template_path.rsplit('.', 1)[0]}.html"
    try:
        html_body = _render(html_template_path, context_with_brand)
    except TemplateDoesNotExist:
        html_body = None
    return body, html_body


def _send_email_logged(
    type_: str,
    *,
    to_email: str | None,
    subject: str,
    template: str,
    context: dict | None = None,
    user_id: int | None = None,
    booking_id: int | None = None,
) -> bool:
    if not to_email:
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            booking_id=booking_id,
            error="missing recipient email",
        )
        logger.warning(
            "notifications: cannot send email without recipient",
            extra={"booking_id": booking_id},
        )
        return False

    text_body, html_body = _prepare_email_bodies(subject, template, context)
    message = EmailMultiAlternatives(
        subject=subject,
        body=text_body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[to_email],
    )
    if html_body:
        message.attach_alternative(html_body, "text/html")

    try:
        message.send(fail_silently=False)
    except Exception as exc:
        logger.exception(
            "notifications: email send failed",
            extra={"type": type_, "booking_id": booking_id, "user_id": user_id},
        )
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            recipient=to_email,
            user_id=user_id,
            booking_id=booking_id,
            error=str(exc) or exc.__class__.__name__,
        )
        return False

    _log_notification(
        type_,
        NotificationLog.Status.SENT,
        recipient=to_email,
        user_id=user_id,
        booking_id=booking_id,
    )
    return True


def _get_booking(booking_id: int):
    from bookings.models import Booking

    try:
        return Booking.objects.select_related("listing", "renter").get(pk=booking_id)
    except Booking.DoesNotExist:
        logger.warning("notifications: booking %s no longer exists", booking_id)
        return None


def _booking_context(booking, **extra) -> dict:
    context = {
        "booking": booking,
        "guest_name": booking.notification_name,
        "vehicle": booking.listing.display_name,
        "booking_code": booking.booking_code,
    }
    context.update(extra)
    return context


def _send_booking_email(booking, type_: str, *, subject: str, template: str, context: dict) -> bool:
    return _send_email_logged(
        type_,
        to_email=booking.notification_email,
        subject=subject,
        template=template,
        context=context,
        user_id=booking.renter_id,
        booking_id=booking.id,
    )


@shared_task(queue="emails")
def send_verification_approved_email(booking_id: int):
    """Tell the guest their verification passed and when the pickup window closes."""
    booking = _get_booking(booking_id)
    if not booking:
        return
    _send_booking_email(
        booking,
        "verification_approved",
        subject=f"You're verified: booking {booking.booking_code} is confirmed",
        template="verification_approved.txt",
        context=_booking_context(
            booking,
            pickup_window_start=booking.pickup_window_start,
            pickup_window_end=booking.pickup_window_end,
            pickup_location=booking.pickup_location or booking.listing.pickup_location,
        ),
    )


@shared_task(queue="emails")
def send_verification_rejected_email(booking_id: int, reason: str):
    booking = _get_booking(booking_id)
    if not booking:
        return
    _send_booking_email(
        booking,
        "verification_rejected",
        subject=f"Booking {booking.booking_code} could not be verified",
        template="verification_rejected.txt",
        context=_booking_context(booking, reason=reason),
    )


@shared_task(queue="emails")
def send_charges_processed_email(booking_id: int, amount: str, charge_id: str | None = None):
    """Receipt for post-trip charges collected from the card on file."""
    booking = _get_booking(booking_id)
    if not booking:
        return
    _send_booking_email(
        booking,
        "trip_charges_processed",
        subject=f"Trip charges for booking {booking.booking_code}",
        template="trip_charges_processed.txt",
        context=_booking_context(booking, amount=amount, charge_id=charge_id or ""),
    )


@shared_task(queue="emails")
def send_charges_waived_email(booking_id: int, waived_amount: str, remaining_amount: str, reason: str):
    booking = _get_booking(booking_id)
    if not booking:
        return
    _send_booking_email(
        booking,
        "trip_charges_waived",
        subject=f"Trip charges waived for booking {booking.booking_code}",
        template="trip_charges_waived.txt",
        context=_booking_context(
            booking,
            waived_amount=waived_amount,
            remaining_amount=remaining_amount,
            has_remaining=remaining_amount not in ("", "0", "0.00"),
            reason=reason,
        ),
    )
