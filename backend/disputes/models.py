"""Models for guest disputes raised against post-trip charges."""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone


class DisputeCase(models.Model):
    """Represents a guest's contest of an assessed trip charge."""

    class Category(models.TextChoices):
        DAMAGE = "damage", "damage"
        MILEAGE = "mileage", "mileage"
        FUEL = "fuel", "fuel"
        LATE_RETURN = "late_return", "late_return"
        CLEANING = "cleaning", "cleaning"
        INCORRECT_CHARGES = "incorrect_charges", "incorrect_charges"

    class Status(models.TextChoices):
        OPEN = "OPEN", "open"
        UNDER_REVIEW = "UNDER_REVIEW", "under review"
        RESOLVED_GUEST = "RESOLVED_GUEST", "resolved for guest"
        RESOLVED_HOST = "RESOLVED_HOST", "resolved for host"
        RESOLVED_PARTIAL = "RESOLVED_PARTIAL", "resolved partially"
        CLOSED = "CLOSED", "closed"

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="dispute_cases",
    )
    trip_charge = models.ForeignKey(
        "bookings.TripCharge",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="disputes",
    )
    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="disputes_opened",
    )
    category = models.CharField(
        choices=Category.choices,
        max_length=32,
    )
    description = models.TextField()
    status = models.CharField(
        choices=Status.choices,
        max_length=32,
        default=Status.OPEN,
    )
    filed_at = models.DateTimeField(default=timezone.now)
    review_started_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="disputes_reviewed",
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    decision_notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["booking", "status"], name="dispute_booking_status_idx"),
            models.Index(fields=["opened_by"], name="dispute_opened_by_idx"),
        ]

    def __str__(self) -> str:
        """Return a readable identifier."""
        return f"DisputeCase #{self.pk} booking {self.booking_id} ({self.status})"
