"""Operator settlement of post-trip charges: charge, waive, adjust, or review."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Sequence

from django.db import transaction
from django.utils import timezone

from bookings.domain import VerificationState, money, record_message
from bookings.models import Booking, BookingMessage, TripCharge
from disputes.models import DisputeCase
from notifications import tasks as notification_tasks
from payments import stripe_api
from payments.ledger import log_transaction_once
from payments.models import Transaction
from payments.waivers import WaiverResult, split_waiver, waive_charges

from . import settlement
from .actions import ResolutionResult, VerificationAction
from .exceptions import (
    ChargesAlreadyWaived,
    InvalidAdjustment,
    InvalidWaivePercentage,
    MissingField,
    NoAdjustmentsProvided,
    NoChargesToProcess,
    NoPaymentMethod,
)
from .notify import queue_notification
from .payloads import (
    AdjustmentOutcomePayload,
    ChargeOutcomePayload,
    DisputeReviewPayload,
    WaiverOutcomePayload,
)

logger = logging.getLogger(__name__)
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def validate_adjustments(
    adjustments: Sequence[stripe_api.LineItemAdjustment],
    line_items: dict[str, Decimal] | None = None,
) -> None:
    """Reject malformed line items; with ``line_items`` the originals must match them."""
    if not adjustments:
        raise NoAdjustmentsProvided()
    seen = set()
    for item in adjustments:
        if item.type not in TripCharge.CATEGORIES:
            raise InvalidAdjustment(f"Unknown charge type '{item.type}'", type=item.type)
        if item.type in seen:
            raise InvalidAdjustment(f"Duplicate charge type '{item.type}'", type=item.type)
        seen.add(item.type)
        if item.original_amount < 0 or item.adjusted_amount < 0:
            raise InvalidAdjustment(f"Amounts for '{item.type}' cannot be negative", type=item.type)
        if item.adjusted_amount > item.original_amount:
            raise InvalidAdjustment(
                f"Adjusted amount for '{item.type}' exceeds the original amount",
                type=item.type,
            )
        if line_items is not None and money(item.original_amount) != money(line_items[item.type]):
            raise InvalidAdjustment(
                f"Original amount for '{item.type}' does not match the trip charge",
                type=item.type,
            )


def _failed_charge_status(trip_charge: TripCharge) -> str:
    # A committed partial waiver survives a failed charge of the remainder.
    if trip_charge.waived_amount > ZERO:
        return TripCharge.ChargeStatus.PARTIALLY_WAIVED
    return TripCharge.ChargeStatus.FAILED


class PostTripChargeResolver:
    def __init__(self, state: VerificationState, actor):
        self.state = state
        self.booking = state.booking
        self.actor = actor

    def _require_trip_charge(self) -> TripCharge:
        trip_charge = self.state.trip_charge
        if trip_charge is None or trip_charge.outstanding_amount <= ZERO:
            raise NoChargesToProcess()
        return trip_charge

    def _require_payment_method(self) -> None:
        if not self.booking.has_payment_method:
            raise NoPaymentMethod()

    def _record_charge(self, trip_charge: TripCharge, amount: Decimal, charge_id: str | None, kind: str):
        log_transaction_once(
            booking=self.booking,
            kind=Transaction.Kind.TRIP_CHARGE,
            amount=amount,
            user=self.booking.renter,
            stripe_id=charge_id,
            meta={
                "trip_charge_id": trip_charge.pk,
                "action": kind,
                "idempotency_key": trip_charge.idempotency_key,
            },
        )

    def _mark_completed(self, now) -> list[str]:
        booking = self.booking
        booking.status = Booking.Status.COMPLETED
        booking.verification_status = Booking.VerificationStatus.COMPLETED
        booking.charges_processed_at = now
        booking.pending_charges_amount = None
        booking.payment_failure_reason = ""
        return [
            "status",
            "verification_status",
            "charges_processed_at",
            "pending_charges_amount",
            "payment_failure_reason",
        ]

    def _mark_charge_failed(self, trip_charge: TripCharge, amount: Decimal, error: str) -> tuple[list, list]:
        booking = self.booking
        booking.payment_status = Booking.PaymentStatus.PAYMENT_FAILED
        booking.payment_failure_reason = error
        booking.pending_charges_amount = amount
        trip_charge.charge_status = _failed_charge_status(trip_charge)
        trip_charge.failure_reason = error
        trip_charge.processed_by = self.actor
        return (
            ["payment_status", "payment_failure_reason", "pending_charges_amount"],
            ["charge_status", "failure_reason", "processed_by"],
        )

    def _mark_charged(self, trip_charge: TripCharge, amount: Decimal, charge_id: str | None, now) -> list[str]:
        trip_charge.charged_amount = amount
        trip_charge.stripe_charge_id = charge_id or ""
        trip_charge.charged_at = now
        trip_charge.failure_reason = ""
        trip_charge.processed_by = self.actor
        return [
            "charge_status",
            "charged_amount",
            "stripe_charge_id",
            "charged_at",
            "failure_reason",
            "processed_by",
        ]

    def process_charges(self, notes: str | None = None) -> ResolutionResult:
        """
        Charge the outstanding trip charges to the card on file.

        A decline is persisted and returned as an unsuccessful result; the
        booking stays actionable for a retry or another action.
        """
        trip_charge = self._require_trip_charge()
        self._require_payment_method()
        booking = self.booking

        trip_charge = settlement.reserve(trip_charge.pk, action=VerificationAction.PROCESS_CHARGES)
        amount = trip_charge.outstanding_amount
        partial = trip_charge.waived_amount > ZERO
        with settlement.releasing_on_error(trip_charge):
            charge = stripe_api.charge_additional_fees(
                booking.stripe_customer_id,
                booking.stripe_payment_method_id,
                stripe_api.to_cents(amount),
                f"Trip charges for booking {booking.booking_code}",
                {
                    "booking_id": booking.pk,
                    "trip_charge_id": trip_charge.pk,
                    "kind": "trip_charges",
                    **{f"{category}_charge": value for category, value in trip_charge.line_items.items()},
                },
                idempotency_key=trip_charge.idempotency_key,
            )

        now = timezone.now()
        booking_fields = booking.stamp_review(self.actor, notes, now=now)
        if charge.succeeded:
            booking_fields += self._mark_completed(now)
            booking.payment_status = (
                Booking.PaymentStatus.PARTIAL_PAID if partial else Booking.PaymentStatus.CHARGES_PAID
            )
            booking.stripe_charge_id = charge.charge_id or ""
            booking_fields += ["payment_status", "stripe_charge_id"]
            trip_charge.charge_status = (
                TripCharge.ChargeStatus.PARTIAL_CHARGED if partial else TripCharge.ChargeStatus.CHARGED
            )
            charge_fields = self._mark_charged(trip_charge, amount, charge.charge_id, now)
            text = f"Charged ${amount} for trip charges."
            message = "Charges processed successfully"
        else:
            extra_booking, charge_fields = self._mark_charge_failed(trip_charge, amount, charge.error or "")
            booking_fields += extra_booking
            text = f"Attempted to charge ${amount} but payment failed: {charge.error}"
            message = f"Payment failed: {charge.error}"

        payload = ChargeOutcomePayload(
            amount=amount,
            line_items=trip_charge.line_items,
            charge_result=charge.to_dict(),
            idempotency_key=trip_charge.idempotency_key,
        )
        with transaction.atomic():
            if charge.succeeded:
                self._record_charge(trip_charge, amount, charge.charge_id, VerificationAction.PROCESS_CHARGES)
            settlement.finalize(
                booking,
                trip_charge,
                booking_fields=booking_fields,
                charge_fields=charge_fields,
                category=BookingMessage.Category.CHARGES,
                kind=payload.kind,
                text=text,
                payload=payload.to_payload(),
                actor=self.actor,
            )

        if charge.succeeded:
            queue_notification(
                notification_tasks.send_charges_processed_email,
                booking,
                f"{amount}",
                charge.charge_id,
            )
        return ResolutionResult(
            success=charge.succeeded,
            message=message,
            booking=booking,
            charge_result=charge.to_dict(),
        )

    def waive(self, reason: str) -> ResolutionResult:
        """Forgive everything still outstanding; no gateway call is made."""
        reason = (reason or "").strip()
        if not reason:
            raise MissingField("waive_reason")
        trip_charge = self._require_trip_charge()
        booking = self.booking

        trip_charge = settlement.reserve(trip_charge.pk, action=VerificationAction.WAIVE)
        amount = trip_charge.outstanding_amount
        now = timezone.now()

        with transaction.atomic():
            waiver = self._commit_waiver(trip_charge, amount, HUNDRED, reason, now)
            booking_fields = ["charges_waived_amount", "charges_waived_reason"]
            booking_fields += booking.stamp_review(self.actor, f"Charges waived: {reason}", now=now)
            booking_fields += self._mark_completed(now)
            booking.payment_status = Booking.PaymentStatus.CHARGES_WAIVED
            booking_fields.append("payment_status")
            trip_charge.charge_status = TripCharge.ChargeStatus.FULLY_WAIVED
            payload = WaiverOutcomePayload(
                percentage=HUNDRED,
                original_amount=amount,
                waived_amount=waiver.waived_amount,
                remaining_amount=ZERO,
                reason=reason,
                idempotency_key=trip_charge.idempotency_key,
            )
            settlement.finalize(
                booking,
                trip_charge,
                booking_fields=booking_fields,
                charge_fields=self._waiver_charge_fields(),
                category=BookingMessage.Category.CHARGES,
                kind=payload.kind,
                text=f"Waived ${waiver.waived_amount} in trip charges. Reason: {reason}",
                payload=payload.to_payload(),
                actor=self.actor,
            )

        queue_notification(
            notification_tasks.send_charges_waived_email,
            booking,
            f"{waiver.waived_amount}",
            f"{ZERO}",
            reason,
        )
        return ResolutionResult(
            success=True,
            message="Charges waived",
            booking=booking,
            waived_amount=waiver.waived_amount,
            remaining_amount=ZERO,
        )

    def _commit_waiver(self, trip_charge: TripCharge, base: Decimal, percentage: Decimal, reason: str, now) -> WaiverResult:
        """Write the waiver to the ledger and onto the trip charge and booking."""
        booking = self.booking
        waiver = waive_charges(
            booking,
            base,
            percentage,
            reason,
            self.actor,
            idempotency_key=trip_charge.idempotency_key,
        )
        trip_charge.waived_amount = money(trip_charge.waived_amount + waiver.waived_amount)
        trip_charge.waive_reason = reason
        trip_charge.waived_by = self.actor
        trip_charge.waived_at = now
        booking.charges_waived_amount = trip_charge.waived_amount
        booking.charges_waived_reason = reason
        return waiver

    @staticmethod
    def _waiver_charge_fields() -> list[str]:
        return ["charge_status", "waived_amount", "waive_reason", "waived_by", "waived_at"]

    def _resume_waiver(self, trip_charge: TripCharge) -> WaiverResult | None:
        """Return the waiver already recorded under this attempt's key, if any."""
        tx = Transaction.objects.filter(
            booking=self.booking,
            kind=Transaction.Kind.CHARGE_WAIVER,
            meta__idempotency_key=trip_charge.idempotency_key,
        ).first()
        if tx is None:
            return None
        return WaiverResult(
            waived_amount=money(tx.amount),
            remaining_amount=money(tx.meta.get("remaining_amount", "0")),
            percentage=Decimal(str(tx.meta.get("percentage", "0"))),
        )

    def partial_waive(self, percentage, reason: str) -> ResolutionResult:
        """
        Waive a percentage of the outstanding charges and charge the rest.

        The waiver commits before the gateway call, so a declined remainder or a
        missing card leaves the charge PARTIALLY_WAIVED with only the remainder
        outstanding.
        """
        try:
            pct = Decimal(str(percentage))
        except (ArithmeticError, ValueError, TypeError):
            raise InvalidWaivePercentage(percentage=percentage)
        if not pct.is_finite() or pct <= 0 or pct > HUNDRED:
            raise InvalidWaivePercentage(percentage=percentage)
        reason = (reason or "").strip()
        if not reason:
            raise MissingField("waive_reason")
        trip_charge = self._require_trip_charge()
        booking = self.booking

        trip_charge = settlement.reserve(trip_charge.pk, action=VerificationAction.PARTIAL_WAIVE)
        now = timezone.now()
        waiver = self._resume_waiver(trip_charge)
        deferred_base = None
        if waiver is None:
            base = trip_charge.outstanding_amount
            waiver = split_waiver(base, pct)
            if waiver.remaining_amount > ZERO:
                with transaction.atomic():
                    waiver = self._commit_waiver(trip_charge, base, pct, reason, now)
                    trip_charge.charge_status = TripCharge.ChargeStatus.PARTIALLY_WAIVED
                    booking.pending_charges_amount = waiver.remaining_amount
                    booking.save(
                        update_fields=[
                            "charges_waived_amount",
                            "charges_waived_reason",
                            "pending_charges_amount",
                            "updated_at",
                        ]
                    )
                    trip_charge.save(update_fields=[*self._waiver_charge_fields(), "updated_at"])
            else:
                # Nothing left to charge: the waiver is written with the outcome.
                deferred_base = base
        else:
            logger.info(
                "verification: resuming partial waiver %s",
                trip_charge.idempotency_key,
                extra={"booking_id": booking.id},
            )
        original_amount = money(waiver.waived_amount + waiver.remaining_amount)
        remaining = waiver.remaining_amount

        charge = None
        if remaining > ZERO and not booking.has_payment_method:
            # The waiver stands; the remainder waits for a card.
            charge = stripe_api.ChargeResult(status="failed", error=NoPaymentMethod.default_message)
        elif remaining > ZERO:
            with settlement.releasing_on_error(trip_charge):
                charge = stripe_api.charge_additional_fees(
                    booking.stripe_customer_id,
                    booking.stripe_payment_method_id,
                    stripe_api.to_cents(remaining),
                    f"Trip charges for booking {booking.booking_code} ({waiver.percentage}% waived)",
                    {
                        "booking_id": booking.pk,
                        "trip_charge_id": trip_charge.pk,
                        "kind": "trip_charges_partial",
                        "waived_amount": waiver.waived_amount,
                    },
                    idempotency_key=trip_charge.idempotency_key,
                )

        now = timezone.now()
        booking_fields = booking.stamp_review(
            self.actor, f"{waiver.percentage}% of charges waived: {reason}", now=now
        )
        charge_fields = ["charge_status"]
        if charge is None:
            booking_fields += self._mark_completed(now)
            booking.payment_status = Booking.PaymentStatus.CHARGES_WAIVED
            booking_fields.append("payment_status")
            trip_charge.charge_status = TripCharge.ChargeStatus.FULLY_WAIVED
            text = f"Waived ${waiver.waived_amount} ({waiver.percentage}%) in trip charges. Reason: {reason}"
        elif charge.succeeded:
            booking_fields += self._mark_completed(now)
            booking.payment_status = Booking.PaymentStatus.PARTIAL_PAID
            booking.stripe_charge_id = charge.charge_id or ""
            booking_fields += ["payment_status", "stripe_charge_id"]
            trip_charge.charge_status = TripCharge.ChargeStatus.PARTIAL_CHARGED
            charge_fields = self._mark_charged(trip_charge, remaining, charge.charge_id, now)
            text = (
                f"Waived ${waiver.waived_amount} ({waiver.percentage}%) and charged "
                f"${remaining}. Reason: {reason}"
            )
        else:
            extra_booking, charge_fields = self._mark_charge_failed(trip_charge, remaining, charge.error or "")
            booking_fields += extra_booking
            text = (
                f"Waived ${waiver.waived_amount} ({waiver.percentage}%); charging the remaining "
                f"${remaining} failed: {charge.error}"
            )

        payload = WaiverOutcomePayload(
            percentage=waiver.percentage,
            original_amount=original_amount,
            waived_amount=waiver.waived_amount,
            remaining_amount=remaining,
            reason=reason,
            charge_result=charge.to_dict() if charge is not None else None,
            idempotency_key=trip_charge.idempotency_key,
        )
        with transaction.atomic():
            if deferred_base is not None:
                self._commit_waiver(trip_charge, deferred_base, pct, reason, now)
                booking_fields += ["charges_waived_amount", "charges_waived_reason"]
                charge_fields = [*charge_fields, *self._waiver_charge_fields()]
            if charge is not None and charge.succeeded:
                self._record_charge(trip_charge, remaining, charge.charge_id, VerificationAction.PARTIAL_WAIVE)
            settlement.finalize(
                booking,
                trip_charge,
                booking_fields=booking_fields,
                charge_fields=charge_fields,
                category=BookingMessage.Category.CHARGES,
                kind=payload.kind,
                text=text,
                payload=payload.to_payload(),
                actor=self.actor,
            )

        queue_notification(
            notification_tasks.send_charges_waived_email,
            booking,
            f"{waiver.waived_amount}",
            f"{remaining}",
            reason,
        )
        return ResolutionResult(
            success=True,
            message=f"{waiver.percentage}% of charges waived",
            booking=booking,
            charge_result=charge.to_dict() if charge is not None else None,
            waived_amount=waiver.waived_amount,
            remaining_amount=remaining,
        )

    def adjust(self, adjustments: Sequence[stripe_api.LineItemAdjustment], notes: str | None = None) -> ResolutionResult:
        """Charge an operator-revised set of line items and keep the full breakdown."""
        validate_adjustments(adjustments)
        trip_charge = self._require_trip_charge()
        if trip_charge.waived_amount > ZERO:
            raise ChargesAlreadyWaived(trip_charge_id=trip_charge.pk)
        validate_adjustments(adjustments, trip_charge.line_items)
        self._require_payment_method()
        booking = self.booking

        trip_charge = settlement.reserve(trip_charge.pk, action=VerificationAction.ADJUST)
        if trip_charge.waived_amount > ZERO:
            settlement.release(trip_charge)
            raise ChargesAlreadyWaived(trip_charge_id=trip_charge.pk)
        with settlement.releasing_on_error(trip_charge):
            result = stripe_api.adjust_and_charge(
                booking.stripe_customer_id,
                booking.stripe_payment_method_id,
                adjustments,
                booking.pk,
                getattr(self.actor, "pk", None),
                idempotency_key=trip_charge.idempotency_key,
                description=f"Adjusted trip charges for booking {booking.booking_code}",
            )
        record = result.adjustment_record
        record_dict = record.to_dict()

        now = timezone.now()
        booking_fields = booking.stamp_review(self.actor, notes, now=now)
        trip_charge.adjustment_record = record_dict
        if result.succeeded:
            booking_fields += self._mark_completed(now)
            booking.payment_status = Booking.PaymentStatus.ADJUSTED_PAID
            booking.stripe_charge_id = result.charge_id or ""
            booking.charges_adjusted_amount = record.total_adjustment
            booking_fields += ["payment_status", "stripe_charge_id", "charges_adjusted_amount"]
            trip_charge.charge_status = TripCharge.ChargeStatus.ADJUSTED_CHARGED
            charge_fields = self._mark_charged(trip_charge, record.adjusted_total, result.charge_id, now)
            text = (
                f"Adjusted trip charges from ${record.original_total} to "
                f"${record.adjusted_total} and charged the guest."
            )
            message = "Adjusted charges processed successfully"
        else:
            extra_booking, charge_fields = self._mark_charge_failed(
                trip_charge, record.adjusted_total, result.error or ""
            )
            booking_fields += extra_booking
            text = f"Attempted to charge adjusted ${record.adjusted_total} but payment failed: {result.error}"
            message = f"Payment failed: {result.error}"
        charge_fields = [*charge_fields, "adjustment_record"]

        payload = AdjustmentOutcomePayload(
            adjustment_record=record_dict,
            charge_result=result.to_dict(),
            idempotency_key=trip_charge.idempotency_key,
        )
        with transaction.atomic():
            if result.succeeded and record.adjusted_total > ZERO:
                self._record_charge(trip_charge, record.adjusted_total, result.charge_id, VerificationAction.ADJUST)
            settlement.finalize(
                booking,
                trip_charge,
                booking_fields=booking_fields,
                charge_fields=charge_fields,
                category=BookingMessage.Category.CHARGES,
                kind=payload.kind,
                text=text,
                payload=payload.to_payload(),
                actor=self.actor,
            )

        if result.succeeded and record.adjusted_total > ZERO:
            queue_notification(
                notification_tasks.send_charges_processed_email,
                booking,
                f"{record.adjusted_total}",
                result.charge_id,
            )
        return ResolutionResult(
            success=result.succeeded,
            message=message,
            booking=booking,
            charge_result=result.charge.to_dict() if result.charge is not None else None,
            adjustment_record=record_dict,
        )

    def review_dispute(self, notes: str | None = None) -> ResolutionResult:
        """Move open disputes under review; payment state is left alone."""
        self._require_trip_charge()
        booking = self.booking
        now = timezone.now()
        dispute_ids = [dispute.pk for dispute in self.state.open_disputes]

        with transaction.atomic():
            DisputeCase.objects.filter(
                booking=booking,
                status=DisputeCase.Status.OPEN,
            ).update(
                status=DisputeCase.Status.UNDER_REVIEW,
                review_started_at=now,
                reviewed_by=self.actor,
                updated_at=now,
            )
            booking.verification_status = Booking.VerificationStatus.DISPUTE_REVIEW
            review_fields = booking.stamp_review(
                self.actor, (notes or "").strip() or "Disputes under review", now=now
            )
            booking.save(update_fields=["verification_status", *review_fields, "updated_at"])
            payload = DisputeReviewPayload(dispute_ids=dispute_ids)
            record_message(
                booking,
                category=BookingMessage.Category.DISPUTE,
                kind=payload.kind,
                text=f"Dispute review started for {len(dispute_ids)} open dispute(s).",
                payload=payload.to_payload(),
                actor=self.actor,
                trip_charge=self.state.trip_charge,
            )

        return ResolutionResult(
            success=True,
            message="Disputes moved to review",
            booking=booking,
        )
