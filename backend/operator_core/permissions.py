"""Access control for the operator console.

Operators are staff accounts that belong to at least one role group.
"""

from __future__ import annotations

from rest_framework.permissions import BasePermission

OPERATOR_SUPPORT = "operator_support"
OPERATOR_FINANCE = "operator_finance"
OPERATOR_ADMIN = "operator_admin"
OPERATOR_ROLES = (OPERATOR_SUPPORT, OPERATOR_FINANCE, OPERATOR_ADMIN)


def is_staff_user(user) -> bool:
    return bool(user and user.is_authenticated and user.is_staff)


class IsOperator(BasePermission):
    message = "Operator access required."

    def has_permission(self, request, view):
        return is_staff_user(getattr(request, "user", None))


class HasOperatorRole(IsOperator):
    """Staff user in any of ``required_roles``; superusers need a role too."""

    message = "Your operator role does not allow this."
    required_roles: tuple[str, ...] = OPERATOR_ROLES

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        if not self.required_roles:
            return False
        return request.user.groups.filter(name__in=self.required_roles).exists()

    @classmethod
    def with_roles(cls, *roles: str):
        return type(f"{cls.__name__}WithRoles", (cls,), {"required_roles": tuple(roles)})
