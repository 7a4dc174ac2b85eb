"""Database models for vehicle reservations and their post-trip settlement."""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from listings.models import Listing

ZERO = Decimal("0.00")


class Booking(models.Model):
    """A guest's reservation of a host vehicle, gated by operator verification."""

    class Status(models.TextChoices):
        PENDING_VERIFICATION = "PENDING_VERIFICATION", "pending verification"
        CONFIRMED = "CONFIRMED", "confirmed"
        CANCELLED = "CANCELLED", "cancelled"
        COMPLETED = "COMPLETED", "completed"

    class VerificationStatus(models.TextChoices):
        PENDING = "PENDING", "pending"
        APPROVED = "APPROVED", "approved"
        REJECTED = "REJECTED", "rejected"
        PENDING_CHARGES = "PENDING_CHARGES", "pending charges"
        DISPUTE_REVIEW = "DISPUTE_REVIEW", "dispute review"
        COMPLETED = "COMPLETED", "completed"

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", "pending"
        PAID = "PAID", "paid"
        FAILED = "FAILED", "failed"
        PARTIAL_PAID = "PARTIAL_PAID", "partial paid"
        CHARGES_WAIVED = "CHARGES_WAIVED", "charges waived"
        CHARGES_PAID = "CHARGES_PAID", "charges paid"
        ADJUSTED_PAID = "ADJUSTED_PAID", "adjusted paid"
        PAYMENT_FAILED = "PAYMENT_FAILED", "payment failed"

    booking_code = models.CharField(max_length=32, unique=True)
    listing = models.ForeignKey(
        Listing,
        related_name="bookings",
        on_delete=models.CASCADE,
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_owner",
        on_delete=models.CASCADE,
    )
    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_renter",
        on_delete=models.CASCADE,
    )
    guest_name = models.CharField(max_length=255, blank=True, default="")
    guest_email = models.EmailField(blank=True, default="")
    start_date = models.DateField()
    end_date = models.DateField(help_text="End date (return), must be after start_date.")
    pickup_location = models.CharField(max_length=255, blank=True, default="")
    pickup_window_start = models.DateTimeField(null=True, blank=True)
    pickup_window_end = models.DateTimeField(null=True, blank=True)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)

    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.PENDING_VERIFICATION,
    )
    verification_status = models.CharField(
        max_length=32,
        choices=VerificationStatus.choices,
        default=VerificationStatus.PENDING,
    )
    payment_status = models.CharField(
        max_length=32,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )

    stripe_customer_id = models.CharField(max_length=120, blank=True, default="")
    stripe_payment_method_id = models.CharField(max_length=120, blank=True, default="")
    payment_intent_id = models.CharField(
        max_length=120,
        blank=True,
        default="",
        help_text="PaymentIntent holding the reservation amount until verification.",
    )
    stripe_charge_id = models.CharField(max_length=120, blank=True, default="")
    payment_failure_reason = models.TextField(blank=True, default="")

    pending_charges_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    charges_waived_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    charges_waived_reason = models.TextField(blank=True, default="")
    charges_adjusted_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    charges_processed_at = models.DateTimeField(null=True, blank=True)

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_reviewed",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    verification_notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["verification_status", "created_at"], name="booking_verif_created_idx"),
            models.Index(fields=["renter", "status"], name="booking_renter_status_idx"),
            models.Index(fields=["owner", "status"], name="booking_owner_status_idx"),
        ]

    def __str__(self) -> str:
        """Return a human-readable representation."""
        return f"Booking {self.booking_code} ({self.status}/{self.verification_status})"

    @property
    def has_payment_method(self) -> bool:
        return bool(
            (self.stripe_customer_id or "").strip()
            and (self.stripe_payment_method_id or "").strip()
        )

    @property
    def notification_email(self) -> str:
        if self.guest_email:
            return self.guest_email
        return getattr(self.renter, "email", "") or ""

    @property
    def notification_name(self) -> str:
        if self.guest_name:
            return self.guest_name
        renter = getattr(self, "renter", None)
        return getattr(renter, "display_name", "") or "Guest"

    def stamp_review(self, actor, notes: str | None = None, *, now=None) -> list[str]:
        """Record who reviewed the booking and when; returns the touched fields."""
        self.reviewed_by = actor
        self.reviewed_at = now or timezone.now()
        fields = ["reviewed_by", "reviewed_at"]
        if notes is not None:
            self.verification_notes = notes
            fields.append("verification_notes")
        return fields


class TripCharge(models.Model):
    """Settlement record for additional costs accrued on a completed trip."""

    class ChargeStatus(models.TextChoices):
        PENDING = "PENDING", "pending"
        CHARGED = "CHARGED", "charged"
        FAILED = "FAILED", "failed"
        FULLY_WAIVED = "FULLY_WAIVED", "fully waived"
        PARTIALLY_WAIVED = "PARTIALLY_WAIVED", "partially waived"
        PARTIAL_CHARGED = "PARTIAL_CHARGED", "partial charged"
        ADJUSTED_CHARGED = "ADJUSTED_CHARGED", "adjusted charged"
        DISPUTED = "DISPUTED", "disputed"

    # Statuses that still need an operator decision.
    UNRESOLVED_STATUSES = (
        ChargeStatus.PENDING,
        ChargeStatus.DISPUTED,
        ChargeStatus.FAILED,
        ChargeStatus.PARTIALLY_WAIVED,
    )
    CATEGORIES = ("mileage", "fuel", "late", "damage", "cleaning")

    booking = models.ForeignKey(
        Booking,
        related_name="trip_charges",
        on_delete=models.CASCADE,
    )
    mileage_charge = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    fuel_charge = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    late_charge = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    damage_charge = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    cleaning_charge = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    charge_status = models.CharField(
        max_length=32,
        choices=ChargeStatus.choices,
        default=ChargeStatus.PENDING,
    )

    waived_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    waive_reason = models.TextField(blank=True, default="")
    waived_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="trip_charges_waived",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    waived_at = models.DateTimeField(null=True, blank=True)

    charged_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    stripe_charge_id = models.CharField(max_length=120, blank=True, default="")
    charged_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="trip_charges_processed",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    adjustment_record = models.JSONField(null=True, blank=True)

    in_flight_action = models.CharField(
        max_length=32,
        blank=True,
        default="",
        help_text="Settlement action reserved but not yet finalized.",
    )
    in_flight_started_at = models.DateTimeField(null=True, blank=True)
    idempotency_key = models.CharField(max_length=160, blank=True, default="")
    attempt_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["booking", "charge_status"], name="tripcharge_booking_status_idx"),
        ]

    def __str__(self) -> str:
        return f"TripCharge #{self.pk} booking {self.booking_id} ({self.charge_status})"

    @property
    def line_items(self) -> dict[str, Decimal]:
        return {category: getattr(self, f"{category}_charge") for category in self.CATEGORIES}

    @property
    def outstanding_amount(self) -> Decimal:
        return max(self.total - (self.waived_amount or ZERO), ZERO)

    def is_unresolved(self) -> bool:
        return self.charge_status in self.UNRESOLVED_STATUSES


class BookingMessage(models.Model):
    """Append-only audit trail entry for a verification or settlement attempt."""

    class Category(models.TextChoices):
        VERIFICATION = "verification", "verification"
        CHARGES = "charges", "charges"
        DISPUTE = "dispute", "dispute"

    booking = models.ForeignKey(
        Booking,
        related_name="messages",
        on_delete=models.CASCADE,
    )
    trip_charge = models.ForeignKey(
        TripCharge,
        related_name="messages",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="booking_messages",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    category = models.CharField(max_length=16, choices=Category.choices)
    kind = models.CharField(max_length=64)
    text = models.TextField()
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["booking", "created_at"], name="bookingmsg_booking_created_idx"),
            models.Index(fields=["kind", "created_at"], name="bookingmsg_kind_created_idx"),
        ]

    def __str__(self) -> str:
        return f"BookingMessage {self.pk} for booking {self.booking_id} ({self.kind})"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Booking messages are append-only.")
        super().save(*args, **kwargs)
