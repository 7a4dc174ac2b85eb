from django.apps import AppConfig


class OperatorVerificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "operator_verifications"
