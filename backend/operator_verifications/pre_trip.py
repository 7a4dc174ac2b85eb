"""Operator approval or rejection of a guest's pre-trip verification."""

from __future__ import annotations

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from bookings.domain import VerificationState, record_message
from bookings.models import Booking, BookingMessage
from notifications import tasks as notification_tasks
from payments import stripe_api
from payments.ledger import log_transaction_once
from payments.models import Transaction

from .actions import ResolutionResult
from .exceptions import BookingAlreadyReviewed
from .notify import queue_notification
from .payloads import ApprovalPayload, RejectionPayload

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_NOTES = "Documents verified successfully"
DEFAULT_REJECTION_NOTES = "Verification requirements not met"
STRIPE_ERRORS = (
    stripe_api.StripeConfigurationError,
    stripe_api.StripePaymentError,
    stripe_api.StripeTransientError,
)


class PreTripResolver:
    def __init__(self, state: VerificationState, actor):
        self.state = state
        self.booking = state.booking
        self.actor = actor

    def _lock_pending_booking(self) -> Booking:
        locked = Booking.objects.select_for_update().get(pk=self.booking.pk)
        if locked.verification_status != Booking.VerificationStatus.PENDING:
            raise BookingAlreadyReviewed(verification_status=locked.verification_status)
        return locked

    def _ensure_pending(self) -> None:
        if self.booking.verification_status != Booking.VerificationStatus.PENDING:
            raise BookingAlreadyReviewed(verification_status=self.booking.verification_status)

    def approve(self, notes: str | None = None) -> ResolutionResult:
        """
        Approve the guest, capture the reservation hold and open the pickup window.

        A failed capture does not undo the approval: the booking is confirmed
        with payment_status FAILED and the failure lands in the audit trail.
        """
        self._ensure_pending()
        booking = self.booking
        payment_status = booking.payment_status
        payment_result = None
        payment_error = None

        if booking.payment_intent_id and booking.stripe_payment_method_id:
            try:
                capture = stripe_api.confirm_and_capture_payment(
                    booking.payment_intent_id,
                    booking.stripe_payment_method_id,
                )
            except STRIPE_ERRORS as exc:
                logger.warning(
                    "verification: capture failed on approval: %s",
                    exc,
                    extra={"booking_id": booking.id},
                )
                payment_status = Booking.PaymentStatus.FAILED
                payment_error = str(exc)
            else:
                payment_status = Booking.PaymentStatus.PAID
                payment_result = capture.to_dict()

        now = timezone.now()
        window_hours = int(getattr(settings, "PICKUP_WINDOW_HOURS", 12))
        with transaction.atomic():
            locked = self._lock_pending_booking()
            locked.verification_status = Booking.VerificationStatus.APPROVED
            locked.status = Booking.Status.CONFIRMED
            locked.payment_status = payment_status
            locked.payment_failure_reason = payment_error or ""
            locked.pickup_window_start = now
            locked.pickup_window_end = now + timedelta(hours=window_hours)
            review_fields = locked.stamp_review(
                self.actor, (notes or "").strip() or DEFAULT_APPROVAL_NOTES, now=now
            )
            locked.save(
                update_fields=[
                    "verification_status",
                    "status",
                    "payment_status",
                    "payment_failure_reason",
                    "pickup_window_start",
                    "pickup_window_end",
                    *review_fields,
                    "updated_at",
                ]
            )
            if payment_result is not None:
                log_transaction_once(
                    booking=locked,
                    kind=Transaction.Kind.BOOKING_CAPTURE,
                    amount=capture.amount,
                    user=locked.renter,
                    stripe_id=capture.id,
                )
            payload = ApprovalPayload(
                payment_status=payment_status,
                pickup_window_start=locked.pickup_window_start.isoformat(),
                pickup_window_end=locked.pickup_window_end.isoformat(),
                payment_result=payment_result,
                payment_error=payment_error,
            )
            record_message(
                locked,
                category=BookingMessage.Category.VERIFICATION,
                kind=payload.kind,
                text=(
                    "Verification approved. Pickup window: "
                    f"{locked.pickup_window_start:%Y-%m-%d %H:%M} to "
                    f"{locked.pickup_window_end:%Y-%m-%d %H:%M}"
                ),
                payload=payload.to_payload(),
                actor=self.actor,
            )

        queue_notification(notification_tasks.send_verification_approved_email, locked)
        return ResolutionResult(
            success=True,
            message="Verification approved",
            booking=locked,
            payment_result=payment_result,
        )

    def reject(self, notes: str | None = None) -> ResolutionResult:
        """Reject the guest, cancel the booking and release the reservation hold."""
        self._ensure_pending()
        booking = self.booking
        reason = (notes or "").strip() or DEFAULT_REJECTION_NOTES

        hold_released = False
        hold_error = None
        if booking.payment_intent_id:
            try:
                stripe_api.cancel_payment(booking.payment_intent_id)
            except STRIPE_ERRORS as exc:
                logger.warning(
                    "verification: could not release hold on rejection: %s",
                    exc,
                    extra={"booking_id": booking.id},
                )
                hold_error = str(exc)
            else:
                hold_released = True

        with transaction.atomic():
            locked = self._lock_pending_booking()
            locked.verification_status = Booking.VerificationStatus.REJECTED
            locked.status = Booking.Status.CANCELLED
            review_fields = locked.stamp_review(self.actor, reason)
            locked.save(update_fields=["verification_status", "status", *review_fields, "updated_at"])
            if hold_released:
                log_transaction_once(
                    booking=locked,
                    kind=Transaction.Kind.HOLD_RELEASE,
                    amount=locked.total_amount,
                    user=locked.renter,
                    stripe_id=locked.payment_intent_id,
                )
            payload = RejectionPayload(
                reason=reason,
                hold_released=hold_released,
                hold_error=hold_error,
            )
            record_message(
                locked,
                category=BookingMessage.Category.VERIFICATION,
                kind=payload.kind,
                text=f"Verification rejected: {reason}",
                payload=payload.to_payload(),
                actor=self.actor,
            )

        queue_notification(notification_tasks.send_verification_rejected_email, locked, reason)
        return ResolutionResult(success=True, message="Verification rejected", booking=locked)
