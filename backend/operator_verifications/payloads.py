"""Versioned audit payloads stored on booking messages, one type per outcome."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, ClassVar, Optional

PAYLOAD_VERSION = 1


def _serialize(value: Any) -> Any:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


@dataclass(frozen=True)
class _Payload:
    kind: ClassVar[str] = ""

    def to_payload(self) -> dict[str, Any]:
        body = {key: _serialize(value) for key, value in asdict(self).items()}
        return {"kind": self.kind, "version": PAYLOAD_VERSION, **body}


@dataclass(frozen=True)
class ApprovalPayload(_Payload):
    kind: ClassVar[str] = "verification_approved"

    payment_status: str
    pickup_window_start: str
    pickup_window_end: str
    payment_result: Optional[dict[str, Any]] = None
    payment_error: Optional[str] = None


@dataclass(frozen=True)
class RejectionPayload(_Payload):
    kind: ClassVar[str] = "verification_rejected"

    reason: str
    hold_released: bool
    hold_error: Optional[str] = None


@dataclass(frozen=True)
class ChargeOutcomePayload(_Payload):
    kind: ClassVar[str] = "charges_processed"

    amount: Decimal
    line_items: dict[str, Decimal]
    charge_result: dict[str, Any]
    idempotency_key: str = ""


@dataclass(frozen=True)
class WaiverOutcomePayload(_Payload):
    kind: ClassVar[str] = "charges_waived"

    percentage: Decimal
    original_amount: Decimal
    waived_amount: Decimal
    remaining_amount: Decimal
    reason: str
    charge_result: Optional[dict[str, Any]] = None
    idempotency_key: str = ""


@dataclass(frozen=True)
class AdjustmentOutcomePayload(_Payload):
    kind: ClassVar[str] = "charges_adjusted"

    adjustment_record: dict[str, Any]
    charge_result: dict[str, Any]
    idempotency_key: str = ""


@dataclass(frozen=True)
class DisputeReviewPayload(_Payload):
    kind: ClassVar[str] = "dispute_review_started"

    dispute_ids: list[int] = field(default_factory=list)
