from rest_framework.permissions import BasePermission

from .models import UserRole


def is_admin(user) -> bool:
    return bool(
        user
        and user.is_authenticated
        and (user.is_superuser or getattr(user, "role", None) == UserRole.ADMIN)
    )


class IsAdminUserRole(BasePermission):
    """Allow only admin role or superuser."""

    def has_permission(self, request, view):
        return is_admin(request.user)


class IsCustomerOrAdminRole(BasePermission):
    """Allow any signed-in shopper or admin.

    Object access is limited to the owner unless the user is an admin. The
    owner is read from ``customer_id`` (orders) or ``user_id`` (ledger rows,
    withdrawal requests, reviews).
    """

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        return user.is_superuser or getattr(user, "role", None) in UserRole.values

    def has_object_permission(self, request, view, obj):
        if is_admin(request.user):
            return True
        owner_id = getattr(obj, "customer_id", None) or getattr(obj, "user_id", None)
        return owner_id == request.user.pk
