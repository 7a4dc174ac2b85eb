from decimal import Decimal

import pytest
import stripe
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from bookings.models import Booking, TripCharge

pytestmark = pytest.mark.django_db

User = get_user_model()
BASE_URL = "/api/operator/verifications/"


def _authed_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def _action_url(booking_id):
    return f"{BASE_URL}{booking_id}/actions/"


def test_review_queue_lists_bookings_awaiting_a_decision(booking_factory, operator_user):
    pending = booking_factory()
    charges = booking_factory(verification_status=Booking.VerificationStatus.PENDING_CHARGES)
    booking_factory(
        verification_status=Booking.VerificationStatus.COMPLETED,
        status=Booking.Status.COMPLETED,
    )

    resp = _authed_client(operator_user).get(BASE_URL)

    assert resp.status_code == 200
    assert [row["id"] for row in resp.data] == [pending.id, charges.id]
    assert resp.data[0]["listing_title"] == "2021 Toyota RAV4"
    assert resp.data[0]["renter"]["name"] == "Riley Renter"


def test_review_queue_filters_by_verification_status(booking_factory, operator_user):
    booking_factory()
    charges = booking_factory(verification_status=Booking.VerificationStatus.PENDING_CHARGES)

    resp = _authed_client(operator_user).get(BASE_URL, {"verification_status": "pending_charges"})

    assert resp.status_code == 200
    assert [row["id"] for row in resp.data] == [charges.id]


def test_review_queue_filters_open_disputes(post_trip_booking, booking_factory, dispute_factory, operator_user):
    booking_factory(verification_status=Booking.VerificationStatus.PENDING_CHARGES)
    dispute_factory(post_trip_booking)

    resp = _authed_client(operator_user).get(BASE_URL, {"has_open_disputes": "true"})

    assert [row["id"] for row in resp.data] == [post_trip_booking.id]


def test_detail_includes_charges_disputes_and_ledger(
    post_trip_booking, trip_charge_factory, dispute_factory, operator_user
):
    trip_charge_factory(post_trip_booking, fuel_charge=Decimal("15.00"))
    dispute_factory(post_trip_booking)

    resp = _authed_client(operator_user).get(f"{BASE_URL}{post_trip_booking.id}/")

    assert resp.status_code == 200
    assert resp.data["trip_charges"][0]["total"] == "15.00"
    assert resp.data["trip_charges"][0]["outstanding_amount"] == "15.00"
    assert resp.data["disputes"][0]["status"] == "OPEN"
    assert resp.data["messages"] == []
    assert resp.data["ledger"] == {"charged": "0.00", "waived": "0.00"}


def test_approve_action_returns_booking(booking_factory, operator_user, gateway):
    booking = booking_factory()

    resp = _authed_client(operator_user).post(
        _action_url(booking.id),
        {"action": "approve", "notes": "Licence matches"},
        format="json",
    )

    assert resp.status_code == 200
    assert resp.data["success"] is True
    assert resp.data["booking"]["verification_status"] == Booking.VerificationStatus.APPROVED
    assert resp.data["booking"]["verification_notes"] == "Licence matches"
    assert resp.data["booking"]["messages"][0]["kind"] == "verification_approved"


def test_partial_waive_action_reports_amounts(post_trip_booking, trip_charge_factory, operator_user, gateway):
    trip_charge_factory(post_trip_booking, mileage_charge=Decimal("20.00"), damage_charge=Decimal("50.00"))

    resp = _authed_client(operator_user).post(
        _action_url(post_trip_booking.id),
        {"action": "partial_waive", "waive_percentage": "50", "waive_reason": "Shared fault"},
        format="json",
    )

    assert resp.status_code == 200
    assert resp.data["waived_amount"] == "35.00"
    assert resp.data["remaining_amount"] == "35.00"
    assert resp.data["charge_result"]["status"] == "succeeded"
    assert resp.data["booking"]["ledger"] == {"charged": "35.00", "waived": "35.00"}


def test_adjust_action_accepts_line_items(post_trip_booking, trip_charge_factory, operator_user, gateway):
    trip_charge = trip_charge_factory(
        post_trip_booking, mileage_charge=Decimal("20.00"), damage_charge=Decimal("50.00")
    )

    resp = _authed_client(operator_user).post(
        _action_url(post_trip_booking.id),
        {
            "action": "adjust",
            "charge_adjustments": [
                {"type": "mileage", "original_amount": "20.00", "adjusted_amount": "10.00"},
                {
                    "type": "damage",
                    "original_amount": "50.00",
                    "adjusted_amount": "50.00",
                    "included": False,
                    "reason": "Pre-existing",
                },
            ],
        },
        format="json",
    )

    trip_charge.refresh_from_db()
    assert resp.status_code == 200
    assert resp.data["adjustment_record"]["adjusted_total"] == "10.00"
    assert trip_charge.charge_status == TripCharge.ChargeStatus.ADJUSTED_CHARGED
    assert gateway.creates[0]["amount"] == 1000


def test_declined_charge_is_a_200_with_failure_data(
    post_trip_booking, trip_charge_factory, operator_user, gateway
):
    trip_charge_factory(post_trip_booking, late_charge=Decimal("40.00"))
    gateway.create_error = stripe.CardError("Your card was declined.", None, "card_declined")

    resp = _authed_client(operator_user).post(
        _action_url(post_trip_booking.id), {"action": "process_charges"}, format="json"
    )

    assert resp.status_code == 200
    assert resp.data["success"] is False
    assert resp.data["charge_result"]["error"] == "Your card was declined."
    assert resp.data["booking"]["payment_status"] == Booking.PaymentStatus.PAYMENT_FAILED


def test_action_invalid_for_phase_is_400(booking_factory, operator_user, gateway):
    booking = booking_factory()

    resp = _authed_client(operator_user).post(
        _action_url(booking.id), {"action": "waive", "waive_reason": "x"}, format="json"
    )

    assert resp.status_code == 400
    assert resp.data["detail"] == "Invalid action 'waive' for pre-trip verification"
    assert resp.data["code"] == "InvalidAction"


def test_post_trip_hint_rejects_pre_trip_action(booking_factory, operator_user, gateway):
    booking = booking_factory()

    resp = _authed_client(operator_user).post(
        _action_url(booking.id), {"action": "approve", "is_post_trip": True}, format="json"
    )

    assert resp.status_code == 400
    assert resp.data["detail"] == "Invalid action 'approve' for post-trip verification"


def test_malformed_request_is_400(post_trip_booking, operator_user, gateway):
    resp = _authed_client(operator_user).post(
        _action_url(post_trip_booking.id),
        {"action": "partial_waive", "waive_percentage": "lots"},
        format="json",
    )

    assert resp.status_code == 400
    assert "waive_percentage" in resp.data["errors"]


def test_unknown_booking_is_404(operator_user, gateway):
    resp = _authed_client(operator_user).post(_action_url(999999), {"action": "approve"}, format="json")

    assert resp.status_code == 404
    assert resp.data["detail"] == "Booking not found"


def test_missing_payment_method_is_409(booking_factory, trip_charge_factory, operator_user, gateway):
    booking = booking_factory(
        verification_status=Booking.VerificationStatus.PENDING_CHARGES,
        stripe_payment_method_id="",
    )
    trip_charge_factory(booking, cleaning_charge=Decimal("25.00"))

    resp = _authed_client(operator_user).post(
        _action_url(booking.id), {"action": "process_charges"}, format="json"
    )

    assert resp.status_code == 409
    assert resp.data["detail"] == "No payment method on file"


def test_no_charges_is_409(post_trip_booking, operator_user, gateway):
    resp = _authed_client(operator_user).post(
        _action_url(post_trip_booking.id), {"action": "process_charges"}, format="json"
    )

    assert resp.status_code == 409
    assert resp.data["detail"] == "No charges to process"


def test_staff_without_operator_role_is_forbidden(booking_factory):
    staff = User.objects.create_user(username="staff", password="pass123", is_staff=True)
    booking = booking_factory()

    resp = _authed_client(staff).post(_action_url(booking.id), {"action": "approve"}, format="json")

    assert resp.status_code == 403
    booking.refresh_from_db()
    assert booking.verification_status == Booking.VerificationStatus.PENDING


def test_guest_cannot_see_review_queue(renter_user):
    resp = _authed_client(renter_user).get(BASE_URL)

    assert resp.status_code == 403
