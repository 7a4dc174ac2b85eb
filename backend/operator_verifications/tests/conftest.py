"""Fixtures faking the Stripe PaymentIntent API for verification tests."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
import stripe


@pytest.fixture(autouse=True)
def configure_stripe(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_ENV = "test"


@pytest.fixture
def gateway(monkeypatch):
    """
    Record PaymentIntent calls and answer them like Stripe would.

    Creates sharing an idempotency key return the first intent, mirroring the
    gateway-side dedupe settlement retries rely on.
    """
    state = SimpleNamespace(
        creates=[],
        captures=[],
        cancels=[],
        create_status="succeeded",
        create_error=None,
        hold_status="requires_capture",
        retrieve_error=None,
        by_key={},
    )

    def _create(**kwargs):
        state.creates.append(kwargs)
        key = kwargs.get("idempotency_key")
        if key and key in state.by_key:
            return state.by_key[key]
        if state.create_error is not None:
            raise state.create_error
        intent = SimpleNamespace(
            id=f"pi_fee_{len(state.creates)}",
            status=state.create_status,
            amount=kwargs["amount"],
        )
        if key:
            state.by_key[key] = intent
        return intent

    def _retrieve(intent_id):
        if state.retrieve_error is not None:
            raise state.retrieve_error
        return SimpleNamespace(id=intent_id, status=state.hold_status, amount=26700)

    def _capture(intent_id):
        state.captures.append(intent_id)
        return SimpleNamespace(id=intent_id, status="succeeded", amount_received=26700)

    def _cancel(intent_id):
        state.cancels.append(intent_id)
        return SimpleNamespace(id=intent_id, status="canceled")

    monkeypatch.setattr(stripe.PaymentIntent, "create", staticmethod(_create))
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", staticmethod(_retrieve))
    monkeypatch.setattr(stripe.PaymentIntent, "capture", staticmethod(_capture))
    monkeypatch.setattr(stripe.PaymentIntent, "cancel", staticmethod(_cancel))
    return state
