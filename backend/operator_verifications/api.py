from __future__ import annotations

import logging

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.response import Response

from bookings.models import Booking
from operator_core.api_base import OperatorAPIView, OperatorThrottleMixin
from operator_verifications.exceptions import (
    DomainPrecondition,
    NotFound,
    ValidationFailure,
    VerificationError,
)
from operator_verifications.filters import VerificationQueueFilter
from operator_verifications.router import resolve_verification
from operator_verifications.serializers import (
    VerificationActionSerializer,
    VerificationBookingDetailSerializer,
    VerificationBookingListSerializer,
    resolution_response,
)

logger = logging.getLogger(__name__)

REVIEW_QUEUE_STATUSES = (
    Booking.VerificationStatus.PENDING,
    Booking.VerificationStatus.PENDING_CHARGES,
    Booking.VerificationStatus.DISPUTE_REVIEW,
)
ERROR_STATUS = (
    (ValidationFailure, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (DomainPrecondition, status.HTTP_409_CONFLICT),
)


def _base_queryset():
    return Booking.objects.select_related("listing", "owner", "renter", "reviewed_by")


def _status_for(exc: VerificationError) -> int:
    for error_cls, http_status in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return http_status
    return status.HTTP_400_BAD_REQUEST


class OperatorVerificationListView(OperatorThrottleMixin, generics.ListAPIView):
    serializer_class = VerificationBookingListSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = VerificationQueueFilter
    http_method_names = ["get"]

    def get_queryset(self):
        return (
            _base_queryset()
            .filter(verification_status__in=REVIEW_QUEUE_STATUSES)
            .order_by("created_at", "id")
        )


class OperatorVerificationDetailView(OperatorThrottleMixin, generics.RetrieveAPIView):
    serializer_class = VerificationBookingDetailSerializer
    http_method_names = ["get"]
    lookup_field = "pk"

    def get_queryset(self):
        return _base_queryset().prefetch_related(*VerificationBookingDetailSerializer.prefetches())


class OperatorVerificationActionView(OperatorAPIView):
    http_method_names = ["post"]

    def post(self, request, pk: int):
        serializer = VerificationActionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"detail": "Invalid verification request.", "errors": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        action = serializer.validated_data["action"].strip().lower()
        try:
            result = resolve_verification(
                pk,
                action,
                request.user,
                serializer.to_action_request(),
            )
        except VerificationError as exc:
            logger.info(
                "verification: %s rejected: %s",
                action,
                exc.message,
                extra={"booking_id": pk, **exc.context},
            )
            return self.error_response(exc.message, type(exc).__name__, _status_for(exc))

        return Response(resolution_response(result), status=status.HTTP_200_OK)
