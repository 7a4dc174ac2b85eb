from django.apps import AppConfig


class DisputesConfig(AppConfig):
    """Guest disputes raised against post-trip charges."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "disputes"
    verbose_name = "Trip charge disputes"
