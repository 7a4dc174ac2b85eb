import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="DisputeCase",
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
                            ("damage", "damage"),
                            ("mileage", "mileage"),
                            ("fuel", "fuel"),
                            ("late_return", "late_return"),
                            ("cleaning", "cleaning"),
                            ("incorrect_charges", "incorrect_charges"),
                        ],
                        max_length=32,
                    ),
                ),
                ("description", models.TextField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("OPEN", "open"),
                            ("UNDER_REVIEW", "under review"),
                            ("RESOLVED_GUEST", "resolved for guest"),
                            ("RESOLVED_HOST", "resolved for host"),
                            ("RESOLVED_PARTIAL", "resolved partially"),
                            ("CLOSED", "closed"),
                        ],
                        default="OPEN",
                        max_length=32,
                    ),
                ),
                ("filed_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("review_started_at", models.DateTimeField(blank=True, null=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("decision_notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="dispute_cases",
                        to="bookings.booking",
                    ),
                ),
                (
                    "opened_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="disputes_opened",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="disputes_reviewed",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "trip_charge",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="disputes",
                        to="bookings.tripcharge",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["booking", "status"], name="dispute_booking_status_idx"),
                    models.Index(fields=["opened_by"], name="dispute_opened_by_idx"),
                ],
            },
        ),
    ]
