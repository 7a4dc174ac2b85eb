from decimal import Decimal
from typing import Optional

from .models import Transaction

TWO_PLACES = Decimal("0.01")


def log_transaction(
    *,
    booking,
    kind: str,
    amount: Decimal,
    user=None,
    currency: str = "cad",
    stripe_id: Optional[str] = None,
    meta: Optional[dict] = None,
) -> Transaction:
    """
    Create and return a Transaction row.

    Amounts are stored as given; callers round to cents first.
    """
    return Transaction.objects.create(
        user=user,
        booking=booking,
        kind=kind,
        amount=amount,
        currency=currency,
        stripe_id=stripe_id,
        meta=meta or {},
    )


def log_transaction_once(
    *,
    booking,
    kind: str,
    amount: Decimal,
    stripe_id: Optional[str],
    **kwargs,
) -> Transaction:
    """Log a transaction unless one already exists for the same Stripe object."""
    if stripe_id:
        existing = Transaction.objects.filter(
            booking=booking,
            kind=kind,
            stripe_id=stripe_id,
        ).first()
        if existing is not None:
            return existing
    return log_transaction(
        booking=booking,
        kind=kind,
        amount=amount,
        stripe_id=stripe_id,
        **kwargs,
    )


def booking_ledger_totals(booking) -> dict[str, str]:
    """Summarize collected and forgiven trip charge amounts for a booking."""
    charged = Decimal("0.00")
    waived = Decimal("0.00")
    for tx in Transaction.objects.filter(booking=booking):
        if tx.kind == Transaction.Kind.TRIP_CHARGE:
            charged += Decimal(tx.amount)
        elif tx.kind == Transaction.Kind.CHARGE_WAIVER:
            waived += Decimal(tx.amount)
    return {
        "charged": f"{charged.quantize(TWO_PLACES)}",
        "waived": f"{waived.quantize(TWO_PLACES)}",
    }
