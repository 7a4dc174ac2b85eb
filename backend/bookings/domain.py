"""Domain helpers for loading and recording booking verification state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.db.models import Prefetch

from disputes.models import DisputeCase

from .models import Booking, BookingMessage, TripCharge

logger = logging.getLogger(__name__)
TWO_PLACES = Decimal("0.01")


def money(value) -> Decimal:
    """Quantize an amount to cents, rounding half up."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class VerificationState:
    """Everything a verification action needs to decide and act on a booking."""

    booking: Booking
    trip_charge: Optional[TripCharge] = None
    open_disputes: list[DisputeCase] = field(default_factory=list)


def latest_unresolved_trip_charge(booking: Booking) -> Optional[TripCharge]:
    """Return the newest trip charge that still needs an operator decision."""
    return (
        TripCharge.objects.filter(
            booking=booking,
            charge_status__in=TripCharge.UNRESOLVED_STATUSES,
        )
        .order_by("-created_at", "-id")
        .first()
    )


def load_verification_state(booking_id) -> VerificationState:
    """
    Load a booking with its latest unresolved trip charge and open disputes.

    Raises Booking.DoesNotExist when the id cannot be resolved.
    """
    booking = (
        Booking.objects.select_related("listing", "owner", "renter", "reviewed_by")
        .prefetch_related(
            Prefetch(
                "dispute_cases",
                queryset=DisputeCase.objects.filter(status=DisputeCase.Status.OPEN),
                to_attr="prefetched_open_disputes",
            )
        )
        .get(pk=booking_id)
    )
    return VerificationState(
        booking=booking,
        trip_charge=latest_unresolved_trip_charge(booking),
        open_disputes=list(booking.prefetched_open_disputes),
    )


def record_message(
    booking: Booking,
    *,
    category: str,
    kind: str,
    text: str,
    payload: dict | None = None,
    actor=None,
    trip_charge: TripCharge | None = None,
) -> BookingMessage:
    """Append an audit message for a verification or settlement attempt."""
    return BookingMessage.objects.create(
        booking=booking,
        trip_charge=trip_charge,
        actor=actor,
        category=category,
        kind=kind,
        text=text,
        payload=payload or {},
    )
