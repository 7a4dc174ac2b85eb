from datetime import timedelta
from decimal import Decimal

import pytest
import stripe
from django.core import mail

from bookings.models import Booking, BookingMessage
from notifications import tasks as notification_tasks
from notifications.models import NotificationLog
from operator_verifications.actions import ActionRequest
from operator_verifications.exceptions import BookingAlreadyReviewed, InvalidAction
from operator_verifications.router import resolve_verification
from payments.models import Transaction

pytestmark = pytest.mark.django_db


def test_approve_captures_hold_and_opens_pickup_window(booking_factory, operator_user, gateway):
    booking = booking_factory()

    result = resolve_verification(booking.id, "approve", operator_user, ActionRequest())

    booking.refresh_from_db()
    assert result.success is True
    assert booking.verification_status == Booking.VerificationStatus.APPROVED
    assert booking.status == Booking.Status.CONFIRMED
    assert booking.payment_status == Booking.PaymentStatus.PAID
    assert booking.reviewed_by == operator_user
    assert booking.verification_notes == "Documents verified successfully"
    assert booking.pickup_window_end - booking.pickup_window_start == timedelta(hours=12)
    assert gateway.captures == ["pi_test_hold"]

    capture = Transaction.objects.get(booking=booking, kind=Transaction.Kind.BOOKING_CAPTURE)
    assert capture.amount == Decimal("267.00")
    assert capture.stripe_id == "pi_test_hold"

    message = BookingMessage.objects.get(booking=booking)
    assert message.kind == "verification_approved"
    assert message.payload["version"] == 1
    assert message.payload["payment_status"] == Booking.PaymentStatus.PAID

    assert len(mail.outbox) == 1
    assert booking.booking_code in mail.outbox[0].subject
    assert mail.outbox[0].to == ["renter@example.com"]
    assert NotificationLog.objects.filter(
        booking_id=booking.id, type="verification_approved", status=NotificationLog.Status.SENT
    ).exists()


def test_approve_respects_configured_pickup_window(settings, booking_factory, operator_user, gateway):
    settings.PICKUP_WINDOW_HOURS = 4
    booking = booking_factory()

    resolve_verification(booking.id, "approve", operator_user)

    booking.refresh_from_db()
    assert booking.pickup_window_end - booking.pickup_window_start == timedelta(hours=4)


def test_approve_with_failed_capture_still_confirms(booking_factory, operator_user, gateway):
    gateway.retrieve_error = stripe.CardError("Your card was declined.", None, "card_declined")
    booking = booking_factory()

    result = resolve_verification(booking.id, "approve", operator_user, ActionRequest(notes="Looks good"))

    booking.refresh_from_db()
    assert result.success is True
    assert booking.verification_status == Booking.VerificationStatus.APPROVED
    assert booking.status == Booking.Status.CONFIRMED
    assert booking.payment_status == Booking.PaymentStatus.FAILED
    assert booking.payment_failure_reason == "Your card was declined."
    assert booking.verification_notes == "Looks good"
    assert not Transaction.objects.filter(booking=booking).exists()
    message = BookingMessage.objects.get(booking=booking)
    assert message.payload["payment_error"] == "Your card was declined."


def test_approve_without_payment_intent_leaves_payment_pending(booking_factory, operator_user, gateway):
    booking = booking_factory(payment_intent_id="")

    resolve_verification(booking.id, "approve", operator_user)

    booking.refresh_from_db()
    assert booking.verification_status == Booking.VerificationStatus.APPROVED
    assert booking.payment_status == Booking.PaymentStatus.PENDING
    assert gateway.captures == []


def test_approve_twice_is_rejected(booking_factory, operator_user, gateway):
    booking = booking_factory()
    resolve_verification(booking.id, "approve", operator_user)

    with pytest.raises(BookingAlreadyReviewed):
        resolve_verification(booking.id, "approve", operator_user)

    assert gateway.captures == ["pi_test_hold"]
    assert BookingMessage.objects.filter(booking=booking).count() == 1


def test_reject_cancels_booking_and_releases_hold(booking_factory, operator_user, gateway):
    booking = booking_factory()

    result = resolve_verification(booking.id, "reject", operator_user)

    booking.refresh_from_db()
    assert result.success is True
    assert booking.verification_status == Booking.VerificationStatus.REJECTED
    assert booking.status == Booking.Status.CANCELLED
    assert booking.verification_notes == "Verification requirements not met"
    assert gateway.cancels == ["pi_test_hold"]
    assert Transaction.objects.filter(booking=booking, kind=Transaction.Kind.HOLD_RELEASE).exists()
    message = BookingMessage.objects.get(booking=booking)
    assert message.kind == "verification_rejected"
    assert message.payload["hold_released"] is True
    assert "Verification requirements not met" in mail.outbox[0].body


def test_reject_hold_release_failure_is_only_logged(booking_factory, operator_user, gateway):
    gateway.retrieve_error = stripe.APIConnectionError("Network down")
    booking = booking_factory()

    result = resolve_verification(booking.id, "reject", operator_user, ActionRequest(notes="Licence expired"))

    booking.refresh_from_db()
    assert result.success is True
    assert booking.status == Booking.Status.CANCELLED
    assert booking.verification_notes == "Licence expired"
    message = BookingMessage.objects.get(booking=booking)
    assert message.payload["hold_released"] is False
    assert message.payload["hold_error"] == "Temporary Stripe error, please retry."


def test_post_trip_action_is_invalid_before_the_trip(booking_factory, operator_user, gateway):
    booking = booking_factory()

    with pytest.raises(InvalidAction) as excinfo:
        resolve_verification(booking.id, "process_charges", operator_user)

    assert excinfo.value.message == "Invalid action 'process_charges' for pre-trip verification"


def test_notifier_failure_does_not_fail_approval(monkeypatch, booking_factory, operator_user, gateway):
    def _boom(*args, **kwargs):
        raise RuntimeError("broker down")

    monkeypatch.setattr(notification_tasks.send_verification_approved_email, "delay", _boom)
    booking = booking_factory()

    result = resolve_verification(booking.id, "approve", operator_user)

    booking.refresh_from_db()
    assert result.success is True
    assert booking.verification_status == Booking.VerificationStatus.APPROVED
    assert mail.outbox == []
