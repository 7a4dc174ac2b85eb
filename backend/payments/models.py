from django.conf import settings
from django.db import models


class Transaction(models.Model):
    class Kind(models.TextChoices):
        BOOKING_CAPTURE = "BOOKING_CAPTURE", "Booking capture"
        HOLD_RELEASE = "HOLD_RELEASE", "Hold release"
        TRIP_CHARGE = "TRIP_CHARGE", "Trip charge"
        CHARGE_WAIVER = "CHARGE_WAIVER", "Charge waiver"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    kind = models.CharField(max_length=64, choices=Kind.choices)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=8, default="cad")
    stripe_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="Related Stripe PaymentIntent / Charge id.",
    )
    meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["booking", "kind"], name="payments_tx_booking_kind_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.booking_id} {self.kind} {self.amount} {self.currency}"
