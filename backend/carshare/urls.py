from django.conf import settings
from django.contrib import admin
from django.urls import include, path

urlpatterns = []

if settings.ENABLE_DJANGO_ADMIN:
    urlpatterns.insert(0, path("admin/", admin.site.urls))

if settings.ENABLE_OPERATOR:
    urlpatterns.append(path("api/operator/", include("operator_core.urls")))
