import decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def _money(**kwargs):
    return models.DecimalField(decimal_places=2, max_digits=10, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("listings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("booking_code", models.CharField(max_length=32, unique=True)),
                ("guest_name", models.CharField(blank=True, default="", max_length=255)),
                ("guest_email", models.EmailField(blank=True, default="", max_length=254)),
                ("start_date", models.DateField()),
                (
                    "end_date",
                    models.DateField(help_text="End date (return), must be after start_date."),
                ),
                ("pickup_location", models.CharField(blank=True, default="", max_length=255)),
                ("pickup_window_start", models.DateTimeField(blank=True, null=True)),
                ("pickup_window_end", models.DateTimeField(blank=True, null=True)),
                ("total_amount", _money(default=decimal.Decimal("0.00"))),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING_VERIFICATION", "pending verification"),
                            ("CONFIRMED", "confirmed"),
                            ("CANCELLED", "cancelled"),
                            ("COMPLETED", "completed"),
                        ],
                        default="PENDING_VERIFICATION",
                        max_length=32,
                    ),
                ),
                (
                    "verification_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "pending"),
                            ("APPROVED", "approved"),
                            ("REJECTED", "rejected"),
                            ("PENDING_CHARGES", "pending charges"),
                            ("DISPUTE_REVIEW", "dispute review"),
                            ("COMPLETED", "completed"),
                        ],
                        default="PENDING",
                        max_length=32,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "pending"),
                            ("PAID", "paid"),
                            ("FAILED", "failed"),
                            ("PARTIAL_PAID", "partial paid"),
                            ("CHARGES_WAIVED", "charges waived"),
                            ("CHARGES_PAID", "charges paid"),
                            ("ADJUSTED_PAID", "adjusted paid"),
                            ("PAYMENT_FAILED", "payment failed"),
                        ],
                        default="PENDING",
                        max_length=32,
                    ),
                ),
                ("stripe_customer_id", models.CharField(blank=True, default="", max_length=120)),
                ("stripe_payment_method_id", models.CharField(blank=True, default="", max_length=120)),
                (
                    "payment_intent_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="PaymentIntent holding the reservation amount until verification.",
                        max_length=120,
                    ),
                ),
                ("stripe_charge_id", models.CharField(blank=True, default="", max_length=120)),
                ("payment_failure_reason", models.TextField(blank=True, default="")),
                ("pending_charges_amount", _money(blank=True, null=True)),
                ("charges_waived_amount", _money(blank=True, null=True)),
                ("charges_waived_reason", models.TextField(blank=True, default="")),
                ("charges_adjusted_amount", _money(blank=True, null=True)),
                ("charges_processed_at", models.DateTimeField(blank=True, null=True)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("verification_notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings",
                        to="listings.listing",
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings_as_owner",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "renter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings_as_renter",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bookings_reviewed",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["verification_status", "created_at"], name="booking_verif_created_idx"
                    ),
                    models.Index(fields=["renter", "status"], name="booking_renter_status_idx"),
                    models.Index(fields=["owner", "status"], name="booking_owner_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TripCharge",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("mileage_charge", _money(default=decimal.Decimal("0.00"))),
                ("fuel_charge", _money(default=decimal.Decimal("0.00"))),
                ("late_charge", _money(default=decimal.Decimal("0.00"))),
                ("damage_charge", _money(default=decimal.Decimal("0.00"))),
                ("cleaning_charge", _money(default=decimal.Decimal("0.00"))),
                ("total", _money(default=decimal.Decimal("0.00"))),
                (
                    "charge_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "pending"),
                            ("CHARGED", "charged"),
                            ("FAILED", "failed"),
                            ("FULLY_WAIVED", "fully waived"),
                            ("PARTIALLY_WAIVED", "partially waived"),
                            ("PARTIAL_CHARGED", "partial charged"),
                            ("ADJUSTED_CHARGED", "adjusted charged"),
                            ("DISPUTED", "disputed"),
                        ],
                        default="PENDING",
                        max_length=32,
                    ),
                ),
                ("waived_amount", _money(default=decimal.Decimal("0.00"))),
                ("waive_reason", models.TextField(blank=True, default="")),
                ("waived_at", models.DateTimeField(blank=True, null=True)),
                ("charged_amount", _money(blank=True, null=True)),
                ("stripe_charge_id", models.CharField(blank=True, default="", max_length=120)),
                ("charged_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("adjustment_record", models.JSONField(blank=True, null=True)),
                (
                    "in_flight_action",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Settlement action reserved but not yet finalized.",
                        max_length=32,
                    ),
                ),
                ("in_flight_started_at", models.DateTimeField(blank=True, null=True)),
                ("idempotency_key", models.CharField(blank=True, default="", max_length=160)),
                ("attempt_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="trip_charges",
                        to="bookings.booking",
                    ),
                ),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="trip_charges_processed",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "waived_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="trip_charges_waived",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(
                        fields=["booking", "charge_status"], name="tripcharge_booking_status_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingMessage",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("verification", "verification"),
                            ("charges", "charges"),
                            ("dispute", "dispute"),
                        ],
                        max_length=16,
                    ),
                ),
                ("kind", models.CharField(max_length=64)),
                ("text", models.TextField()),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="booking_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="bookings.booking",
                    ),
                ),
                (
                    "trip_charge",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="messages",
                        to="bookings.tripcharge",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["booking", "created_at"], name="bookingmsg_booking_created_idx"
                    ),
                    models.Index(fields=["kind", "created_at"], name="bookingmsg_kind_created_idx"),
                ],
            },
        ),
    ]
