from decimal import Decimal

import pytest

from bookings.models import Booking
from operator_verifications.actions import PHASE_ACTIONS, Phase, VerificationAction, phase_for
from operator_verifications.exceptions import InvalidAction, NotFound
from operator_verifications.payloads import ChargeOutcomePayload
from operator_verifications.router import POST_TRIP_STRATEGIES, PRE_TRIP_STRATEGIES, resolve_verification


def test_every_action_has_exactly_one_phase():
    pre = PHASE_ACTIONS[Phase.PRE_TRIP]
    post = PHASE_ACTIONS[Phase.POST_TRIP]

    assert pre.isdisjoint(post)
    assert pre | post == set(VerificationAction.values)
    assert set(PRE_TRIP_STRATEGIES) == pre
    assert set(POST_TRIP_STRATEGIES) == post


@pytest.mark.parametrize(
    "verification_status, hint, expected",
    [
        (Booking.VerificationStatus.PENDING, False, Phase.PRE_TRIP),
        (Booking.VerificationStatus.PENDING, True, Phase.POST_TRIP),
        (Booking.VerificationStatus.PENDING_CHARGES, False, Phase.POST_TRIP),
        (Booking.VerificationStatus.DISPUTE_REVIEW, False, Phase.POST_TRIP),
        (Booking.VerificationStatus.APPROVED, False, Phase.PRE_TRIP),
    ],
)
def test_phase_for(verification_status, hint, expected):
    booking = Booking(verification_status=verification_status)

    assert phase_for(booking, is_post_trip=hint) == expected


def test_charge_payload_is_versioned_and_json_safe():
    payload = ChargeOutcomePayload(
        amount=Decimal("70"),
        line_items={"mileage": Decimal("20.00"), "damage": Decimal("50.00")},
        charge_result={"status": "succeeded", "charge_id": "pi_1"},
        idempotency_key="key",
    ).to_payload()

    assert payload == {
        "kind": "charges_processed",
        "version": 1,
        "amount": "70.00",
        "line_items": {"mileage": "20.00", "damage": "50.00"},
        "charge_result": {"status": "succeeded", "charge_id": "pi_1"},
        "idempotency_key": "key",
    }


@pytest.mark.django_db
def test_unknown_action_is_invalid(post_trip_booking, operator_user):
    with pytest.raises(InvalidAction) as excinfo:
        resolve_verification(post_trip_booking.id, "refund", operator_user)

    assert excinfo.value.context == {"action": "refund", "phase": Phase.POST_TRIP}


@pytest.mark.django_db
def test_unknown_booking(operator_user):
    with pytest.raises(NotFound):
        resolve_verification(424242, "approve", operator_user)
