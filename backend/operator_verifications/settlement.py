"""
Reserve-then-finalize protocol for settling a trip charge.

A settlement action first reserves the trip charge under a row lock, recording
the action and an idempotency key. The gateway call happens outside any
transaction. The outcome is then written in one transaction that also clears
the reservation and appends the audit message. A crash between the gateway
call and finalize leaves the reservation behind; once it is older than
SETTLEMENT_RESERVATION_TTL_SECONDS the same action may retry and will reuse
the recorded key, so the gateway dedupes the charge.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterable

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from bookings.domain import record_message
from bookings.models import Booking, BookingMessage, TripCharge
from payments.stripe_api import idempotency_key_for

from .exceptions import NoChargesToProcess, SettlementInProgress

logger = logging.getLogger(__name__)

RESERVATION_FIELDS = ["in_flight_action", "in_flight_started_at", "idempotency_key"]


def _reservation_ttl() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "SETTLEMENT_RESERVATION_TTL_SECONDS", 300)))


def reserve(trip_charge_id, *, action: str, now=None) -> TripCharge:
    """
    Claim a trip charge for one settlement attempt and return the locked copy.

    Raises NoChargesToProcess when the charge was resolved in the meantime and
    SettlementInProgress when another attempt holds a live reservation.
    """
    now = now or timezone.now()
    with transaction.atomic():
        trip_charge = TripCharge.objects.select_for_update().get(pk=trip_charge_id)
        if not trip_charge.is_unresolved() or trip_charge.outstanding_amount <= 0:
            raise NoChargesToProcess()

        key = None
        if trip_charge.in_flight_action:
            started = trip_charge.in_flight_started_at or now
            if now - started < _reservation_ttl():
                raise SettlementInProgress(
                    trip_charge_id=trip_charge.pk,
                    in_flight_action=trip_charge.in_flight_action,
                )
            logger.warning(
                "settlement: taking over stale %s reservation",
                trip_charge.in_flight_action,
                extra={"booking_id": trip_charge.booking_id, "trip_charge_id": trip_charge.pk},
            )
            if trip_charge.in_flight_action == action and trip_charge.idempotency_key:
                key = trip_charge.idempotency_key

        if key is None:
            key = idempotency_key_for(
                trip_charge.booking_id,
                action,
                trip_charge.pk,
                trip_charge.attempt_count + 1,
            )
        trip_charge.in_flight_action = action
        trip_charge.in_flight_started_at = now
        trip_charge.idempotency_key = key
        trip_charge.save(update_fields=[*RESERVATION_FIELDS, "updated_at"])
    return trip_charge


def release(trip_charge: TripCharge) -> None:
    """Drop a reservation without recording an attempt."""
    TripCharge.objects.filter(pk=trip_charge.pk).update(
        in_flight_action="",
        in_flight_started_at=None,
        updated_at=timezone.now(),
    )
    trip_charge.in_flight_action = ""
    trip_charge.in_flight_started_at = None


def finalize(
    booking: Booking,
    trip_charge: TripCharge,
    *,
    booking_fields: Iterable[str],
    charge_fields: Iterable[str],
    category: str,
    kind: str,
    text: str,
    payload: dict,
    actor=None,
) -> BookingMessage:
    """
    Persist an attempt's outcome, clear the reservation and append its message.

    Callers wrap this in their own atomic block when the ledger must be written
    alongside.
    """
    with transaction.atomic():
        trip_charge.in_flight_action = ""
        trip_charge.in_flight_started_at = None
        trip_charge.attempt_count += 1
        booking.save(update_fields=sorted({*booking_fields, "updated_at"}))
        trip_charge.save(
            update_fields=sorted(
                {*charge_fields, "in_flight_action", "in_flight_started_at", "attempt_count", "updated_at"}
            )
        )
        return record_message(
            booking,
            category=category,
            kind=kind,
            text=text,
            payload=payload,
            actor=actor,
            trip_charge=trip_charge,
        )


@contextmanager
def releasing_on_error(trip_charge: TripCharge):
    """
    Release the reservation when an attempt dies with an unexpected error.

    The attempt count is untouched, so the next attempt of the same action
    derives the same idempotency key.
    """
    try:
        yield
    except Exception:
        logger.exception(
            "settlement: %s attempt failed before finalize",
            trip_charge.in_flight_action,
            extra={"booking_id": trip_charge.booking_id, "trip_charge_id": trip_charge.pk},
        )
        release(trip_charge)
        raise
