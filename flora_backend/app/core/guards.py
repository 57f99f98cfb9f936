"""
Role guards for the tracking endpoints.

Every endpoint is scoped to the caller's organization; these guards decide
which operations a caller may perform inside it.
"""

from typing import Iterable
from fastapi import Depends, HTTPException, status
from flora_backend.app.models.enums import UserRole, MANAGEMENT_ROLES
from flora_backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: Iterable[UserRole]):
    """
    Dependency factory that admits only users with one of ``allowed_roles``.

    Usage:
        @router.get("/manager/couriers/locations")
        async def list_locations(current_user: dict = Depends(require_role(MANAGEMENT_ROLES))):
            ...

    Raises:
        HTTPException 403 if the caller's role is not allowed
    """
    allowed = frozenset(allowed_roles)
    allowed_names = ", ".join(sorted(role.value for role in allowed))

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        # The role is refreshed from the users table by get_current_user
        if current_user["role"] not in {role.value for role in allowed}:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {allowed_names}",
            )
        return current_user

    return role_checker


require_courier = require_role([UserRole.COURIER])
require_management = require_role(MANAGEMENT_ROLES)
