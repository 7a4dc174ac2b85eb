"""Waiver ledger: forgiving trip charges is recorded, never sent to Stripe."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from payments.ledger import log_transaction
from payments.models import Transaction

logger = logging.getLogger(__name__)
TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class WaiverResult:
    waived_amount: Decimal
    remaining_amount: Decimal
    percentage: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "waived_amount": f"{self.waived_amount}",
            "remaining_amount": f"{self.remaining_amount}",
            "percentage": f"{self.percentage}",
        }


def split_waiver(total_amount: Decimal, percentage: Decimal) -> WaiverResult:
    """
    Split a total into waived and remaining parts.

    The waived part is rounded half-up to cents and the remainder is derived from
    it, so waived + remaining always equals the total.
    """
    total = Decimal(str(total_amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    pct = Decimal(str(percentage))
    if pct <= 0 or pct > HUNDRED:
        raise ValueError("Waiver percentage must be greater than 0 and at most 100.")
    if pct == HUNDRED:
        waived = total
    else:
        waived = (total * pct / HUNDRED).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return WaiverResult(waived_amount=waived, remaining_amount=total - waived, percentage=pct)


def waive_charges(
    booking,
    total_amount: Decimal,
    percentage: Decimal,
    reason: str,
    actor,
    *,
    idempotency_key: str | None = None,
) -> WaiverResult:
    """Record a waiver of ``percentage`` of ``total_amount`` in the ledger."""
    result = split_waiver(total_amount, percentage)
    if result.waived_amount > Decimal("0"):
        log_transaction(
            user=actor,
            booking=booking,
            kind=Transaction.Kind.CHARGE_WAIVER,
            amount=result.waived_amount,
            meta={
                "percentage": f"{result.percentage}",
                "reason": reason,
                "actor_id": getattr(actor, "pk", None),
                "remaining_amount": f"{result.remaining_amount}",
                "idempotency_key": idempotency_key or "",
            },
        )
    logger.info(
        "waivers: recorded %s%% waiver of %s",
        result.percentage,
        total_amount,
        extra={"booking_id": getattr(booking, "pk", None)},
    )
    return result
