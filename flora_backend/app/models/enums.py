"""
Enumerations shared by the tracking and routing models.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        OWNER: Owns the organization, full access
        MANAGER: Manages orders and staff, sees courier positions and routes
        FLORIST: Assembles bouquets
        COURIER: Delivers orders and reports GPS positions
    """
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    FLORIST = "FLORIST"
    COURIER = "COURIER"


MANAGEMENT_ROLES = [UserRole.OWNER, UserRole.MANAGER]
