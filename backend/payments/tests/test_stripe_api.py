"""Tests for the Stripe adapter used by verification and post-trip settlement."""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from payments import stripe_api
from payments.stripe_api import LineItemAdjustment


@pytest.fixture(autouse=True)
def configure_stripe(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_ENV = "test"
    settings.STRIPE_CURRENCY = "cad"


@pytest.fixture
def fake_create(monkeypatch):
    calls: list[dict] = []
    state = {"status": "succeeded", "error": None}

    def _create(**kwargs):
        calls.append(kwargs)
        if state["error"] is not None:
            raise state["error"]
        return SimpleNamespace(id=f"pi_fee_{len(calls)}", status=state["status"])

    monkeypatch.setattr(stripe.PaymentIntent, "create", staticmethod(_create))
    return SimpleNamespace(calls=calls, state=state)


def test_charge_additional_fees_success_charges_off_session(fake_create):
    result = stripe_api.charge_additional_fees(
        "cus_123",
        "pm_123",
        7000,
        "Trip charges",
        {"booking_id": 5, "empty": "", "damage_charge": Decimal("50.00")},
        idempotency_key="booking:5:v1:process_charges:trip_charge:9:1",
    )

    assert result.succeeded
    assert result.charge_id == "pi_fee_1"
    assert result.amount_cents == 7000
    call = fake_create.calls[0]
    assert call["amount"] == 7000
    assert call["currency"] == "cad"
    assert call["off_session"] is True
    assert call["confirm"] is True
    assert call["idempotency_key"] == "booking:5:v1:process_charges:trip_charge:9:1"
    assert call["metadata"] == {"env": "test", "booking_id": "5", "damage_charge": "50.00"}


def test_charge_additional_fees_without_payment_method_never_calls_stripe(fake_create):
    result = stripe_api.charge_additional_fees("cus_123", "", 7000, "Trip charges")

    assert result.status == "failed"
    assert result.error == "No payment method on file"
    assert fake_create.calls == []


def test_charge_additional_fees_rejects_non_positive_amount(fake_create):
    result = stripe_api.charge_additional_fees("cus_123", "pm_123", 0, "Trip charges")

    assert result.status == "failed"
    assert fake_create.calls == []


def test_charge_additional_fees_decline_is_returned_as_data(fake_create):
    fake_create.state["error"] = stripe.CardError("Your card was declined.", None, "card_declined")

    result = stripe_api.charge_additional_fees("cus_123", "pm_123", 7000, "Trip charges")

    assert result.status == "failed"
    assert result.error == "Your card was declined."
    assert result.charge_id is None


def test_charge_additional_fees_network_error_is_returned_as_data(fake_create):
    fake_create.state["error"] = stripe.APIConnectionError("Request timed out")

    result = stripe_api.charge_additional_fees("cus_123", "pm_123", 7000, "Trip charges")

    assert result.status == "failed"
    assert result.error == "Temporary Stripe error, please retry."


def test_charge_additional_fees_incomplete_intent_is_failure(fake_create):
    fake_create.state["status"] = "requires_action"

    result = stripe_api.charge_additional_fees("cus_123", "pm_123", 7000, "Trip charges")

    assert result.status == "failed"
    assert result.charge_id == "pi_fee_1"
    assert "requires_action" in result.error


def test_charge_additional_fees_missing_secret_key(settings, fake_create):
    settings.STRIPE_SECRET_KEY = ""

    result = stripe_api.charge_additional_fees("cus_123", "pm_123", 7000, "Trip charges")

    assert result.status == "failed"
    assert result.error == "Stripe secret key not configured."
    assert fake_create.calls == []


def test_adjust_and_charge_sums_included_items_only(fake_create):
    adjustments = [
        LineItemAdjustment("mileage", Decimal("20.00"), Decimal("10.00")),
        LineItemAdjustment("damage", Decimal("50.00"), Decimal("50.00"), included=False),
    ]

    result = stripe_api.adjust_and_charge(
        "cus_123",
        "pm_123",
        adjustments,
        booking_id=5,
        actor_id=7,
        idempotency_key="key-1",
    )

    record = result.adjustment_record
    assert result.succeeded
    assert record.original_total == Decimal("70.00")
    assert record.adjusted_total == Decimal("10.00")
    assert record.total_adjustment == Decimal("60.00")
    assert record.adjusted_by == "7"
    assert fake_create.calls[0]["amount"] == 1000
    assert fake_create.calls[0]["idempotency_key"] == "key-1"
    items = record.to_dict()["items"]
    assert items[1]["adjusted_amount"] == "0.00"
    assert items[1]["included"] is False


def test_adjust_and_charge_zero_total_skips_gateway(fake_create):
    adjustments = [LineItemAdjustment("fuel", Decimal("15.00"), Decimal("0.00"))]

    result = stripe_api.adjust_and_charge("cus_123", "pm_123", adjustments, 5, 7)

    assert result.succeeded
    assert result.charge_id is None
    assert result.adjustment_record.adjusted_total == Decimal("0.00")
    assert fake_create.calls == []


def test_confirm_and_capture_payment_captures_authorized_hold(monkeypatch):
    captured = []
    monkeypatch.setattr(
        stripe.PaymentIntent,
        "retrieve",
        staticmethod(lambda intent_id: SimpleNamespace(id=intent_id, status="requires_capture")),
    )

    def _capture(intent_id):
        captured.append(intent_id)
        return SimpleNamespace(id=intent_id, status="succeeded", amount_received=26700)

    monkeypatch.setattr(stripe.PaymentIntent, "capture", staticmethod(_capture))

    result = stripe_api.confirm_and_capture_payment("pi_hold", "pm_123")

    assert captured == ["pi_hold"]
    assert result.status == "succeeded"
    assert result.amount == Decimal("267.00")


def test_confirm_and_capture_payment_raises_on_decline(monkeypatch):
    def _retrieve(intent_id):
        raise stripe.CardError("Your card was declined.", None, "card_declined")

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", staticmethod(_retrieve))

    with pytest.raises(stripe_api.StripePaymentError):
        stripe_api.confirm_and_capture_payment("pi_hold", "pm_123")


def test_cancel_payment_treats_missing_intent_as_released(monkeypatch):
    def _retrieve(intent_id):
        raise stripe.InvalidRequestError("No such payment_intent", "intent", code="resource_missing")

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", staticmethod(_retrieve))

    assert stripe_api.cancel_payment("pi_gone") is None


def test_cancel_payment_cancels_uncaptured_hold(monkeypatch):
    canceled = []
    monkeypatch.setattr(
        stripe.PaymentIntent,
        "retrieve",
        staticmethod(lambda intent_id: SimpleNamespace(id=intent_id, status="requires_capture")),
    )
    monkeypatch.setattr(
        stripe.PaymentIntent,
        "cancel",
        staticmethod(lambda intent_id: canceled.append(intent_id)),
    )

    stripe_api.cancel_payment("pi_hold")

    assert canceled == ["pi_hold"]


def test_cancel_payment_refuses_captured_intent(monkeypatch):
    monkeypatch.setattr(
        stripe.PaymentIntent,
        "retrieve",
        staticmethod(lambda intent_id: SimpleNamespace(id=intent_id, status="succeeded")),
    )

    with pytest.raises(stripe_api.StripePaymentError):
        stripe_api.cancel_payment("pi_hold")


def test_idempotency_key_is_scoped_to_action_and_attempt():
    assert (
        stripe_api.idempotency_key_for(12, "partial_waive", 34, 2)
        == "booking:12:v1:partial_waive:trip_charge:34:2"
    )
