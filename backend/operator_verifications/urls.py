from django.urls import path

from operator_verifications.api import (
    OperatorVerificationActionView,
    OperatorVerificationDetailView,
    OperatorVerificationListView,
)

urlpatterns = [
    path("", OperatorVerificationListView.as_view(), name="operator_verifications_list"),
    path("<int:pk>/", OperatorVerificationDetailView.as_view(), name="operator_verifications_detail"),
    path(
        "<int:pk>/actions/",
        OperatorVerificationActionView.as_view(),
        name="operator_verifications_action",
    ),
]
