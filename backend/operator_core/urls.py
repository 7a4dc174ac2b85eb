from django.urls import include, path

urlpatterns = [
    path("verifications/", include("operator_verifications.urls")),
]
