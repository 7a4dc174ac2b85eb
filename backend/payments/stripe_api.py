"""Stripe payment helpers for trip verification and post-trip settlement."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import stripe
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)
IDEMPOTENCY_VERSION = "v1"
TWO_PLACES = Decimal("0.01")
ADJUSTABLE_CATEGORIES = ("mileage", "fuel", "late", "damage", "cleaning")

_http_client = None
_http_client_timeout: float | None = None


class StripeConfigurationError(Exception):
    """Stripe is not configured correctly in the environment."""


class StripeTransientError(Exception):
    """Temporary Stripe/API issue that should be retried."""


class StripePaymentError(Exception):
    """Permanent payment failure for a booking charge."""


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of an off-session charge; failures are data, never exceptions."""

    status: str
    charge_id: Optional[str] = None
    error: Optional[str] = None
    amount_cents: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CaptureResult:
    status: str
    id: str
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "id": self.id, "amount": f"{self.amount}"}


@dataclass(frozen=True)
class LineItemAdjustment:
    """One trip charge category as reviewed by an operator."""

    type: str
    original_amount: Decimal
    adjusted_amount: Decimal
    included: bool = True
    reason: str = ""

    @property
    def effective_amount(self) -> Decimal:
        return self.adjusted_amount if self.included else Decimal("0.00")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "original_amount": f"{self.original_amount}",
            "adjusted_amount": f"{self.effective_amount}",
            "requested_amount": f"{self.adjusted_amount}",
            "included": self.included,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AdjustmentRecord:
    """Full original-vs-adjusted breakdown persisted for audit."""

    items: tuple[LineItemAdjustment, ...]
    original_total: Decimal
    adjusted_total: Decimal
    total_adjustment: Decimal
    adjusted_by: Optional[str] = None
    adjusted_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "original_total": f"{self.original_total}",
            "adjusted_total": f"{self.adjusted_total}",
            "total_adjustment": f"{self.total_adjustment}",
            "adjusted_by": self.adjusted_by,
            "adjusted_at": self.adjusted_at,
        }


@dataclass(frozen=True)
class AdjustedChargeResult:
    status: str
    adjustment_record: AdjustmentRecord
    charge_id: Optional[str] = None
    error: Optional[str] = None
    charge: Optional[ChargeResult] = field(default=None, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "charge_id": self.charge_id,
            "error": self.error,
            "adjustment_record": self.adjustment_record.to_dict(),
        }


def _get_stripe_api_key() -> str:
    """Return the configured Stripe API key or raise if missing."""
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise StripeConfigurationError("Stripe secret key not configured.")
    return api_key


def _configure_stripe() -> None:
    """Apply API key, retry budget and a bounded request timeout to the SDK."""
    global _http_client, _http_client_timeout

    stripe.api_key = _get_stripe_api_key()
    stripe.max_network_retries = getattr(settings, "STRIPE_MAX_NETWORK_RETRIES", 1)
    timeout = float(getattr(settings, "STRIPE_REQUEST_TIMEOUT_SECONDS", 20.0))
    if _http_client is None or _http_client_timeout != timeout:
        _http_client = stripe.RequestsClient(timeout=timeout)
        _http_client_timeout = timeout
    stripe.default_http_client = _http_client


def _currency() -> str:
    return getattr(settings, "STRIPE_CURRENCY", "cad") or "cad"


def to_cents(amount: Decimal) -> int:
    """Convert Decimal dollars to integer cents, rounding to the nearest cent."""
    cents = (amount * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def _from_cents(amount_cents: int) -> Decimal:
    return (Decimal(amount_cents) / Decimal("100")).quantize(TWO_PLACES)


def _parse_decimal(value: str | Decimal | int | float | None, field_name: str) -> Decimal:
    """Safely parse a representation of a Decimal amount."""
    if value is None:
        raise StripePaymentError(f"Amount '{field_name}' is missing.")
    try:
        return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as exc:
        raise StripePaymentError(f"Invalid amount '{field_name}'.") from exc


def _stringify_metadata(metadata: dict[str, Any] | None) -> dict[str, str]:
    """Stripe metadata values must be strings; drop empty entries."""
    env_label = getattr(settings, "STRIPE_ENV", "dev") or "dev"
    cleaned = {"env": env_label}
    for key, value in (metadata or {}).items():
        if value is None or value == "":
            continue
        cleaned[str(key)] = str(value)[:500]
    return cleaned


def _handle_stripe_error(exc: stripe.StripeError) -> None:
    """Map Stripe SDK errors onto internal exception types."""
    if isinstance(exc, stripe.CardError):
        message = exc.user_message or "Your card was declined."
        raise StripePaymentError(message) from exc
    if isinstance(
        exc,
        (
            stripe.RateLimitError,
            stripe.APIConnectionError,
            stripe.APIError,
        ),
    ):
        raise StripeTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
        raise StripeConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.InvalidRequestError):
        raise StripePaymentError(exc.user_message or "Invalid payment request.") from exc
    raise StripePaymentError(exc.user_message or "Stripe payment failure.") from exc


def idempotency_key_for(booking_id, action: str, trip_charge_id, attempt: int) -> str:
    """Stable key for one settlement attempt of a trip charge."""
    return (
        f"booking:{booking_id}:{IDEMPOTENCY_VERSION}:{action}"
        f":trip_charge:{trip_charge_id}:{attempt}"
    )


def charge_additional_fees(
    customer_id: str,
    payment_method_id: str,
    amount_cents: int,
    description: str,
    metadata: dict[str, Any] | None = None,
    *,
    idempotency_key: str | None = None,
) -> ChargeResult:
    """
    Charge the stored payment method off-session for post-trip fees.

    Every gateway problem (decline, timeout, processor or configuration error)
    comes back as ChargeResult(status="failed") so callers can persist it.
    """
    if not (customer_id or "").strip() or not (payment_method_id or "").strip():
        return ChargeResult(status="failed", error="No payment method on file")
    if amount_cents is None or amount_cents <= 0:
        return ChargeResult(status="failed", error="Charge amount must be greater than zero.")

    try:
        _configure_stripe()
        try:
            intent = stripe.PaymentIntent.create(
                amount=int(amount_cents),
                currency=_currency(),
                customer=customer_id,
                payment_method=payment_method_id,
                description=description,
                capture_method="automatic",
                confirm=True,
                off_session=True,
                metadata=_stringify_metadata(metadata),
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            _handle_stripe_error(exc)
    except StripeConfigurationError as exc:
        logger.error("stripe: configuration error while charging fees: %s", exc)
        return ChargeResult(status="failed", error=str(exc), amount_cents=int(amount_cents))
    except (StripePaymentError, StripeTransientError) as exc:
        logger.info(
            "stripe: additional fee charge failed: %s",
            exc,
            extra={"idempotency_key": idempotency_key},
        )
        return ChargeResult(status="failed", error=str(exc), amount_cents=int(amount_cents))

    intent_id = getattr(intent, "id", None)
    intent_status = getattr(intent, "status", "") or ""
    if intent_status != "succeeded":
        logger.info(
            "stripe: PaymentIntent %s for additional fees ended in %s",
            intent_id,
            intent_status,
        )
        return ChargeResult(
            status="failed",
            charge_id=intent_id,
            error=f"Payment not completed (status: {intent_status or 'unknown'}).",
            amount_cents=int(amount_cents),
        )
    return ChargeResult(status="succeeded", charge_id=intent_id, amount_cents=int(amount_cents))


def build_adjustment_record(
    adjustments: Iterable[LineItemAdjustment],
    *,
    actor_id=None,
) -> AdjustmentRecord:
    """Sum included line items only; excluded items contribute nothing."""
    items = tuple(adjustments)
    original_total = sum((item.original_amount for item in items), Decimal("0.00"))
    adjusted_total = sum((item.effective_amount for item in items), Decimal("0.00"))
    return AdjustmentRecord(
        items=items,
        original_total=original_total.quantize(TWO_PLACES),
        adjusted_total=adjusted_total.quantize(TWO_PLACES),
        total_adjustment=(original_total - adjusted_total).quantize(TWO_PLACES),
        adjusted_by=str(actor_id) if actor_id is not None else None,
        adjusted_at=timezone.now().isoformat(),
    )


def adjust_and_charge(
    customer_id: str,
    payment_method_id: str,
    adjustments: Iterable[LineItemAdjustment],
    booking_id,
    actor_id,
    *,
    idempotency_key: str | None = None,
    description: str | None = None,
) -> AdjustedChargeResult:
    """Charge the operator-adjusted total and return the full adjustment record."""
    record = build_adjustment_record(adjustments, actor_id=actor_id)
    if record.adjusted_total <= Decimal("0"):
        return AdjustedChargeResult(status="succeeded", adjustment_record=record)

    charge = charge_additional_fees(
        customer_id,
        payment_method_id,
        to_cents(record.adjusted_total),
        description or f"Adjusted trip charges for booking {booking_id}",
        {
            "booking_id": booking_id,
            "kind": "trip_charges_adjusted",
            "actor_id": actor_id,
            "original_total": record.original_total,
            "adjusted_total": record.adjusted_total,
        },
        idempotency_key=idempotency_key,
    )
    return AdjustedChargeResult(
        status=charge.status,
        adjustment_record=record,
        charge_id=charge.charge_id,
        error=charge.error,
        charge=charge,
    )


def confirm_and_capture_payment(payment_intent_id: str, payment_method_id: str) -> CaptureResult:
    """
    Confirm (if needed) and capture the reservation PaymentIntent.

    Raises StripePaymentError / StripeTransientError when the hold cannot be captured.
    """
    if not payment_intent_id:
        raise StripePaymentError("Booking is missing a PaymentIntent id.")

    _configure_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        intent_status = getattr(intent, "status", "") or ""
        if intent_status in ("requires_payment_method", "requires_confirmation"):
            intent = stripe.PaymentIntent.confirm(
                payment_intent_id,
                payment_method=payment_method_id or None,
            )
            intent_status = getattr(intent, "status", "") or ""
        if intent_status == "requires_capture":
            intent = stripe.PaymentIntent.capture(payment_intent_id)
            intent_status = getattr(intent, "status", "") or ""
    except stripe.StripeError as exc:
        _handle_stripe_error(exc)

    if intent_status != "succeeded":
        raise StripePaymentError(
            f"PaymentIntent {payment_intent_id} could not be captured (status: {intent_status})."
        )
    amount_cents = getattr(intent, "amount_received", None) or getattr(intent, "amount", 0) or 0
    return CaptureResult(
        status=intent_status,
        id=getattr(intent, "id", "") or payment_intent_id,
        amount=_from_cents(int(amount_cents)),
    )


def cancel_payment(payment_intent_id: str) -> None:
    """Release an uncaptured reservation hold; already-released holds are a no-op."""
    if not payment_intent_id:
        return

    _configure_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.InvalidRequestError as exc:
        if getattr(exc, "code", "") == "resource_missing":
            logger.info(
                "Stripe PaymentIntent %s missing; treating as released.", payment_intent_id
            )
            return
        _handle_stripe_error(exc)
    except stripe.StripeError as exc:
        _handle_stripe_error(exc)

    intent_status = getattr(intent, "status", "") or ""
    if intent_status == "canceled":
        return
    if intent_status == "succeeded":
        raise StripePaymentError(
            f"PaymentIntent {payment_intent_id} was already captured and must be refunded."
        )
    try:
        stripe.PaymentIntent.cancel(payment_intent_id)
    except stripe.InvalidRequestError as exc:
        if getattr(exc, "code", "") == "resource_missing":
            logger.info("Stripe PaymentIntent %s already released.", payment_intent_id)
            return
        _handle_stripe_error(exc)
    except stripe.StripeError as exc:
        _handle_stripe_error(exc)
