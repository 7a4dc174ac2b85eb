"""Verification actions, their phases, and the request/response shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from django.db import models

from bookings.models import Booking
from payments.stripe_api import LineItemAdjustment


class Phase(models.TextChoices):
    PRE_TRIP = "pre-trip", "pre-trip"
    POST_TRIP = "post-trip", "post-trip"


class VerificationAction(models.TextChoices):
    APPROVE = "approve", "Approve"
    REJECT = "reject", "Reject"
    PROCESS_CHARGES = "process_charges", "Process charges"
    WAIVE = "waive", "Waive"
    PARTIAL_WAIVE = "partial_waive", "Partial waive"
    ADJUST = "adjust", "Adjust"
    REVIEW_DISPUTE = "review_dispute", "Review dispute"


PHASE_ACTIONS: dict[str, frozenset[str]] = {
    Phase.PRE_TRIP: frozenset({VerificationAction.APPROVE, VerificationAction.REJECT}),
    Phase.POST_TRIP: frozenset(
        {
            VerificationAction.PROCESS_CHARGES,
            VerificationAction.WAIVE,
            VerificationAction.PARTIAL_WAIVE,
            VerificationAction.ADJUST,
            VerificationAction.REVIEW_DISPUTE,
        }
    ),
}

# Verification states that only occur after a trip has ended.
POST_TRIP_VERIFICATION_STATUSES = (
    Booking.VerificationStatus.PENDING_CHARGES,
    Booking.VerificationStatus.DISPUTE_REVIEW,
)


def phase_for(booking: Booking, *, is_post_trip: bool = False) -> str:
    if is_post_trip or booking.verification_status in POST_TRIP_VERIFICATION_STATUSES:
        return Phase.POST_TRIP
    return Phase.PRE_TRIP


@dataclass
class ActionRequest:
    """Parameters accompanying a verification action."""

    notes: Optional[str] = None
    is_post_trip: bool = False
    waive_percentage: Optional[Decimal] = None
    waive_reason: Optional[str] = None
    charge_adjustments: list[LineItemAdjustment] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return (self.waive_reason or self.notes or "").strip()


@dataclass
class ResolutionResult:
    """Concrete monetary outcome of one verification action."""

    success: bool
    message: str
    booking: Booking
    charge_result: Optional[dict[str, Any]] = None
    waived_amount: Optional[Decimal] = None
    remaining_amount: Optional[Decimal] = None
    adjustment_record: Optional[dict[str, Any]] = None
    payment_result: Optional[dict[str, Any]] = None
