"""
Role-Based Access Control (RBAC) definitions and helpers.
"""
from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    """
    Marketplace roles used for authorization.
    """

    ADMIN = "admin"
    PROFESSIONAL = "professional"
    PATIENT = "patient"


class Permission(str, Enum):
    """
    Fine-grained permissions mapped to roles.
    """

    COUPONS_VALIDATE = "coupons:validate"
    BILLING_QUOTE = "billing:quote"
    BILLING_CHECKOUT = "billing:checkout"
    ADMIN_COUPONS_READ = "admin:coupons_read"
    ADMIN_COUPONS_MANAGE = "admin:coupons_manage"


ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.ADMIN: frozenset(permission for permission in Permission),
    UserRole.PROFESSIONAL: frozenset(
        {
            Permission.COUPONS_VALIDATE,
            Permission.BILLING_QUOTE,
            Permission.BILLING_CHECKOUT,
        }
    ),
    UserRole.PATIENT: frozenset(
        {
            Permission.COUPONS_VALIDATE,
            Permission.BILLING_QUOTE,
        }
    ),
}


def normalize_role(role: str | UserRole | None) -> UserRole:
    """
    Normalize string/enum role values to a valid ``UserRole``.

    Args:
        role: Raw role value from DB/token input.

    Returns:
        Normalized role. Falls back to ``UserRole.PATIENT`` (least privileged)
        for unknown values.
    """

    if isinstance(role, UserRole):
        return role

    if role is None:
        return UserRole.PATIENT

    try:
        return UserRole(str(role))
    except ValueError:
        return UserRole.PATIENT


def get_role_permissions(role: str | UserRole | None) -> frozenset[Permission]:
    """
    Resolve the permission set for a role.
    """

    normalized_role = normalize_role(role)
    return ROLE_PERMISSIONS.get(normalized_role, frozenset())


def has_permission(role: str | UserRole | None, permission: Permission) -> bool:
    """
    Check if role grants the required permission.
    """

    return permission in get_role_permissions(role)


def audience_for_role(role: str | UserRole | None) -> str:
    """
    Coupon audience implied by a role.

    Patients validate against ``patients``; everybody else (professionals and
    admins previewing the professional pricing page) against ``professionals``.
    """

    if normalize_role(role) == UserRole.PATIENT:
        return "patients"
    return "professionals"
