from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Platform account for guests, hosts and operators."""

    phone = models.CharField(
        max_length=32,
        unique=True,
        null=True,
        blank=True,
        help_text="Optional E.164 formatted phone number.",
    )
    email_verified = models.BooleanField(default=False)
    can_rent = models.BooleanField(default=True)
    can_list = models.BooleanField(default=True)
    stripe_customer_id = models.CharField(
        max_length=120,
        blank=True,
        default="",
        help_text="Stripe Customer ID for guest payments.",
    )

    @property
    def display_name(self) -> str:
        full_name = (self.get_full_name() or "").strip()
        return full_name or self.username
