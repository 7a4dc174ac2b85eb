from django.conf import settings
from django.db import models


class NotificationLog(models.Model):
    """One delivery attempt of a guest-facing email."""

    class Channel(models.TextChoices):
        EMAIL = "email", "Email"

    class Status(models.TextChoices):
        SENT = "sent", "Sent"
        FAILED = "failed", "Failed"

    channel = models.CharField(max_length=8, choices=Channel.choices, default=Channel.EMAIL)
    type = models.CharField(max_length=128)
    recipient = models.CharField(max_length=255, blank=True, default="")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notification_logs",
    )
    # Plain id so the log outlives the booking.
    booking_id = models.BigIntegerField(null=True, blank=True)
    status = models.CharField(max_length=8, choices=Status.choices)
    error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["booking_id", "created_at"], name="notiflog_booking_created_idx"),
            models.Index(fields=["type", "status"], name="notiflog_type_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.type} -> {self.recipient or '?'} ({self.status})"
