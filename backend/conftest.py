"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import itertools
from datetime import timedelta
from decimal import Decimal
from typing import Callable

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking, TripCharge
from disputes.models import DisputeCase
from listings.models import Listing

User = get_user_model()
_booking_codes = itertools.count(1)


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture
def owner_user():
    return User.objects.create_user(
        username="owner",
        email="owner@example.com",
        password="testpass",
        first_name="Olive",
        last_name="Owner",
        can_list=True,
    )


@pytest.fixture
def renter_user():
    return User.objects.create_user(
        username="renter",
        email="renter@example.com",
        password="testpass",
        first_name="Riley",
        last_name="Renter",
        can_list=False,
        stripe_customer_id="cus_test_renter",
    )


@pytest.fixture
def operator_user():
    group, _ = Group.objects.get_or_create(name="operator_support")
    user = User.objects.create_user(
        username="operator",
        email="operator@example.com",
        password="pass123",
        is_staff=True,
    )
    user.groups.add(group)
    return user


@pytest.fixture
def listing(owner_user):
    return Listing.objects.create(
        owner=owner_user,
        make="Toyota",
        model="RAV4",
        year=2021,
        daily_price_cad=Decimal("89.00"),
        pickup_location="10250 101 St NW, Edmonton",
    )


@pytest.fixture
def booking_factory(listing, renter_user) -> Callable[..., Booking]:
    def _create(**overrides) -> Booking:
        start = timezone.localdate() + timedelta(days=1)
        data = {
            "booking_code": f"BK{next(_booking_codes):06d}",
            "listing": listing,
            "owner": listing.owner,
            "renter": renter_user,
            "start_date": start,
            "end_date": start + timedelta(days=3),
            "total_amount": Decimal("267.00"),
            "stripe_customer_id": renter_user.stripe_customer_id,
            "stripe_payment_method_id": "pm_test_card",
            "payment_intent_id": "pi_test_hold",
        }
        data.update(overrides)
        return Booking.objects.create(**data)

    return _create


@pytest.fixture
def post_trip_booking(booking_factory):
    return booking_factory(
        status=Booking.Status.CONFIRMED,
        verification_status=Booking.VerificationStatus.PENDING_CHARGES,
        payment_status=Booking.PaymentStatus.PAID,
    )


@pytest.fixture
def trip_charge_factory() -> Callable[..., TripCharge]:
    def _create(booking: Booking, **overrides) -> TripCharge:
        data = {
            "mileage_charge": Decimal("0.00"),
            "fuel_charge": Decimal("0.00"),
            "late_charge": Decimal("0.00"),
            "damage_charge": Decimal("0.00"),
            "cleaning_charge": Decimal("0.00"),
        }
        data.update(overrides)
        if "total" not in data:
            data["total"] = sum(data[f"{category}_charge"] for category in TripCharge.CATEGORIES)
        return TripCharge.objects.create(booking=booking, **data)

    return _create


@pytest.fixture
def dispute_factory(renter_user) -> Callable[..., DisputeCase]:
    def _create(booking: Booking, **overrides) -> DisputeCase:
        data = {
            "opened_by": renter_user,
            "category": DisputeCase.Category.DAMAGE,
            "description": "The scratch was there at pickup.",
        }
        data.update(overrides)
        return DisputeCase.objects.create(booking=booking, **data)

    return _create
