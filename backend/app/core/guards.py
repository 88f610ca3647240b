"""
Security guards for role-based and ownership-based access control.

Provides dependencies and helpers for protecting payment endpoints.
"""

from typing import Iterable
from fastapi import Depends
from backend.app.models.enums import UserRole, ELEVATED_ROLES, STAFF_ROLES
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import InsufficientPermissionsError


def require_role(allowed_roles: Iterable[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/payments/record")
        async def record_payment(current_user: dict = Depends(require_role(ELEVATED_ROLES))):
            ...

    Raises:
        InsufficientPermissionsError 403 if user role is not in allowed_roles
    """
    allowed = frozenset(allowed_roles)

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        if UserRole(current_user["role"]) not in allowed:
            raise InsufficientPermissionsError(
                "Access denied. Required role: " + ", ".join(sorted(r.value for r in allowed))
            )
        return current_user

    return role_checker


def is_elevated(current_user: dict) -> bool:
    return UserRole(current_user.get("role")) in ELEVATED_ROLES


def is_staff(current_user: dict) -> bool:
    return UserRole(current_user.get("role")) in STAFF_ROLES


def verify_ownership(customer_user_id: int, current_user: dict) -> bool:
    """
    Verify that the current user may pay for a customer's invoice.

    Customers: must be the user behind the invoice's customer record.
    Elevated staff: always allowed.
    Everyone else: denied.
    """
    role = UserRole(current_user.get("role"))

    if role == UserRole.CUSTOMER:
        return current_user.get("user_id") == customer_user_id

    return role in ELEVATED_ROLES


class OwnershipGuard:
    """
    Ownership guard for invoice-scoped operations.

    Usage:
        ownership_guard.enforce(invoice.customer.user_id, current_user, "invoice")
    """

    def enforce(
        self,
        customer_user_id: int,
        current_user: dict,
        resource_name: str = "resource"
    ):
        """Raise 403 unless the user may pay against this resource."""
        if not verify_ownership(customer_user_id, current_user):
            raise InsufficientPermissionsError(
                f"Access denied. You do not have permission to access this {resource_name}."
            )

    def enforce_read(
        self,
        customer_user_id: int,
        current_user: dict,
        resource_name: str = "resource"
    ):
        """Raise 403 unless the user owns the resource or is any staff member."""
        if current_user.get("user_id") == customer_user_id or is_staff(current_user):
            return
        raise InsufficientPermissionsError(
            f"Access denied. You do not have permission to view this {resource_name}."
        )


ownership_guard = OwnershipGuard()
