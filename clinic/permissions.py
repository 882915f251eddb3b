"""
Role based permission classes for hospital staff.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

from .models import User


def _has_role(request, roles) -> bool:
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return False
    return bool(user.is_superuser or getattr(user, "role", None) in roles)


class IsAdminRole(BasePermission):
    """Allow access only to hospital administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, {User.ROLE_ADMIN})


class IsDoctor(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, {User.ROLE_ADMIN, User.ROLE_DOCTOR})


class IsFrontDesk(BasePermission):
    """Reception work: booking, check-in and billing."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, {User.ROLE_ADMIN, User.ROLE_RECEPTIONIST, User.ROLE_NURSE, User.ROLE_DOCTOR})


class IsPharmacyStaff(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, {User.ROLE_ADMIN, User.ROLE_PHARMACIST})


class IsAdminOrReadOnly(BasePermission):
    """Any authenticated user may read; only administrators may write."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        if request.method in SAFE_METHODS:
            return bool(request.user and request.user.is_authenticated)
        return _has_role(request, {User.ROLE_ADMIN})
