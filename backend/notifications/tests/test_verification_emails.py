from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone

from notifications import tasks
from notifications.models import NotificationLog

pytestmark = pytest.mark.django_db


def test_verification_approved_email_includes_pickup_window(booking_factory):
    start = timezone.now()
    booking = booking_factory(pickup_window_start=start, pickup_window_end=start + timedelta(hours=12))

    tasks.send_verification_approved_email.run(booking.id)

    assert len(mail.outbox) == 1
    message = mail.outbox[0]
    assert message.to == ["renter@example.com"]
    assert booking.booking_code in message.subject
    assert "Riley Renter" in message.body
    assert "2021 Toyota RAV4" in message.body
    assert "Pickup window:" in message.body
    log = NotificationLog.objects.get(booking_id=booking.id)
    assert log.type == "verification_approved"
    assert log.status == NotificationLog.Status.SENT
    assert log.recipient == "renter@example.com"


def test_guest_email_overrides_account_email(booking_factory):
    booking = booking_factory(guest_email="guest@example.com", guest_name="Sam Guest")

    tasks.send_verification_rejected_email.run(booking.id, "Licence expired")

    assert mail.outbox[0].to == ["guest@example.com"]
    assert "Sam Guest" in mail.outbox[0].body
    assert "Licence expired" in mail.outbox[0].body


def test_charges_processed_email(booking_factory):
    booking = booking_factory()

    tasks.send_charges_processed_email.run(booking.id, "70.00", "pi_fee_1")

    assert "$70.00" in mail.outbox[0].body
    assert "pi_fee_1" in mail.outbox[0].body


def test_charges_waived_email_mentions_remainder(booking_factory):
    booking = booking_factory()

    tasks.send_charges_waived_email.run(booking.id, "35.00", "35.00", "Shared fault")

    body = mail.outbox[0].body
    assert "$35.00 in trip charges" in body
    assert "remaining $35.00" in body
    assert "Shared fault" in body


def test_missing_booking_sends_nothing():
    tasks.send_charges_processed_email.run(999999, "10.00")

    assert mail.outbox == []
    assert not NotificationLog.objects.exists()


def test_email_without_recipient_is_logged_as_failed(booking_factory, renter_user):
    renter_user.email = ""
    renter_user.save(update_fields=["email"])
    booking = booking_factory()

    tasks.send_verification_approved_email.run(booking.id)

    assert mail.outbox == []
    log = NotificationLog.objects.get(booking_id=booking.id)
    assert log.status == NotificationLog.Status.FAILED
    assert log.error == "missing recipient email"


def test_send_failure_is_logged(monkeypatch, booking_factory):
    booking = booking_factory()

    def _raise(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr("django.core.mail.EmailMultiAlternatives.send", _raise)

    assert tasks._send_email_logged(
        "custom_type",
        to_email="user@example.com",
        subject="Subject",
        template="trip_charges_processed.txt",
        context={"guest_name": "Riley", "amount": "1.00"},
        booking_id=booking.id,
    ) is False

    log = NotificationLog.objects.get(booking_id=booking.id)
    assert log.status == NotificationLog.Status.FAILED
    assert log.error == "smtp down"
