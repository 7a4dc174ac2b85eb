"""Errors raised by verification actions before any side effect happens."""

from __future__ import annotations


class VerificationError(Exception):
    """Base class for rejected verification requests."""

    default_message = "Verification request rejected."

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class ValidationFailure(VerificationError):
    default_message = "Invalid verification request."


class InvalidAction(ValidationFailure):
    def __init__(self, action: str, phase: str):
        super().__init__(
            f"Invalid action '{action}' for {phase} verification",
            action=action,
            phase=phase,
        )


class MissingField(ValidationFailure):
    def __init__(self, field: str):
        super().__init__(f"{field} is required", field=field)


class InvalidWaivePercentage(ValidationFailure):
    default_message = "Invalid waive percentage"


class NoAdjustmentsProvided(ValidationFailure):
    default_message = "No adjustments provided"


class InvalidAdjustment(ValidationFailure):
    default_message = "Invalid charge adjustment"


class NotFound(VerificationError):
    default_message = "Booking not found"


class DomainPrecondition(VerificationError):
    default_message = "Booking is not in a state that allows this action."


class NoChargesToProcess(DomainPrecondition):
    default_message = "No charges to process"


class NoPaymentMethod(DomainPrecondition):
    default_message = "No payment method on file"


class BookingAlreadyReviewed(DomainPrecondition):
    default_message = "Booking verification has already been decided."


class SettlementInProgress(DomainPrecondition):
    default_message = "Another settlement action is in progress for this trip charge."


class ChargesAlreadyWaived(DomainPrecondition):
    default_message = "Part of this trip charge was waived; charge or waive the remainder instead"
