"""Entry point that dispatches an operator verification action to its resolver."""

from __future__ import annotations

import logging
from typing import Callable

from bookings.domain import load_verification_state
from bookings.models import Booking

from .actions import PHASE_ACTIONS, ActionRequest, Phase, ResolutionResult, VerificationAction, phase_for
from .exceptions import InvalidAction, NotFound
from .post_trip import PostTripChargeResolver
from .pre_trip import PreTripResolver

logger = logging.getLogger(__name__)

Strategy = Callable[..., ResolutionResult]

PRE_TRIP_STRATEGIES: dict[str, Strategy] = {
    VerificationAction.APPROVE: lambda resolver, request: resolver.approve(request.notes),
    VerificationAction.REJECT: lambda resolver, request: resolver.reject(request.notes),
}

POST_TRIP_STRATEGIES: dict[str, Strategy] = {
    VerificationAction.PROCESS_CHARGES: lambda resolver, request: resolver.process_charges(request.notes),
    VerificationAction.WAIVE: lambda resolver, request: resolver.waive(request.reason),
    VerificationAction.PARTIAL_WAIVE: lambda resolver, request: resolver.partial_waive(
        request.waive_percentage, request.reason
    ),
    VerificationAction.ADJUST: lambda resolver, request: resolver.adjust(
        request.charge_adjustments, request.notes
    ),
    VerificationAction.REVIEW_DISPUTE: lambda resolver, request: resolver.review_dispute(request.notes),
}

STRATEGIES = {
    Phase.PRE_TRIP: (PreTripResolver, PRE_TRIP_STRATEGIES),
    Phase.POST_TRIP: (PostTripChargeResolver, POST_TRIP_STRATEGIES),
}

for _phase, (_resolver, _table) in STRATEGIES.items():
    if set(_table) != set(PHASE_ACTIONS[_phase]):
        raise ImportError(f"Verification strategies for {_phase} do not match its actions.")
if set(PRE_TRIP_STRATEGIES) | set(POST_TRIP_STRATEGIES) != set(VerificationAction.values):
    raise ImportError("Every verification action needs a strategy.")


def resolve_verification(booking_id, action: str, actor, request: ActionRequest | None = None) -> ResolutionResult:
    """
    Load the booking, decide its phase and run ``action`` against it.

    Raises NotFound for unknown bookings and InvalidAction when the action is
    not legal in the booking's current phase.
    """
    request = request or ActionRequest()
    try:
        state = load_verification_state(booking_id)
    except Booking.DoesNotExist:
        raise NotFound(booking_id=booking_id)

    phase = phase_for(state.booking, is_post_trip=request.is_post_trip)
    resolver_cls, table = STRATEGIES[phase]
    strategy = table.get(action)
    if strategy is None:
        raise InvalidAction(action, phase)

    logger.info(
        "verification: %s (%s) by operator %s",
        action,
        phase,
        getattr(actor, "pk", None),
        extra={"booking_id": state.booking.pk},
    )
    return strategy(resolver_cls(state, actor), request)
