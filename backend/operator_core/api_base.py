from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle, UserRateThrottle
from rest_framework.views import APIView

from .permissions import HasOperatorRole


class OperatorThrottleMixin:
    throttle_scope = "operator"
    throttle_classes = [UserRateThrottle, ScopedRateThrottle]
    permission_classes = [HasOperatorRole]


class OperatorAPIView(OperatorThrottleMixin, APIView):
    """Base view for operator write endpoints."""

    def error_response(self, detail: str, code: str, http_status=status.HTTP_400_BAD_REQUEST, **extra):
        return Response({"detail": detail, "code": code, **extra}, status=http_status)
