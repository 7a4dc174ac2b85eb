from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "email", "phone", "can_rent", "can_list", "is_staff", "is_active")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Capabilities", {"fields": ("can_rent", "can_list")}),
        ("Payments", {"fields": ("phone", "email_verified", "stripe_customer_id")}),
    )
