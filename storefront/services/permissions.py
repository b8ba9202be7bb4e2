from __future__ import annotations

from typing import Any, Dict, Optional

from storefront.constants import ADMIN_ROLES, ROLE_ADMIN, ROLE_SUPER_ADMIN, ROLES
from storefront.errors import PermissionDenied, ValidationError


def is_admin(role: Optional[str]) -> bool:
    return role in ADMIN_ROLES


def require_admin(user: Optional[Dict[str, Any]]) -> None:
    if not user or not is_admin(user.get("role")):
        raise PermissionDenied("Forbidden: You do not have permission to access this resource.")


def check_can_manage(actor: Dict[str, Any], target: Dict[str, Any]) -> None:
    """Raise PermissionDenied unless actor may edit or delete target."""
    require_admin(actor)
    if actor["id"] == target["id"]:
        raise PermissionDenied(
            "Forbidden: You cannot manage your own user account via this admin API. Use your profile page instead."
        )
    if actor["role"] == ROLE_ADMIN and target["role"] == ROLE_SUPER_ADMIN:
        raise PermissionDenied("Forbidden: Admins cannot manage Super Admin accounts.")
    if actor["role"] == ROLE_ADMIN and target["role"] == ROLE_ADMIN:
        raise PermissionDenied("Forbidden: Admins cannot manage other Admin accounts.")


def check_can_assign_role(actor: Dict[str, Any], target: Dict[str, Any], role: str) -> None:
    if role not in ROLES:
        raise ValidationError("Invalid role provided.")
    if actor["role"] == ROLE_ADMIN and role in ADMIN_ROLES:
        raise PermissionDenied("Forbidden: Admins cannot assign Admin or Super Admin roles.")
    if target["role"] == ROLE_SUPER_ADMIN and actor["role"] != ROLE_SUPER_ADMIN:
        raise PermissionDenied("Forbidden: Only Super Admins can modify Super Admin accounts.")
