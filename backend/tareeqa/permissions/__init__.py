# Overview: Permission system package.
# Re-exports all public APIs for package-level imports.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    POS_PERMISSIONS,
    PRODUCT_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    REPORT_PERMISSIONS,
    HARDWARE_PERMISSIONS,
    USER_PERMISSIONS,
    SETTINGS_PERMISSIONS,
    CUSTOMER_PERMISSIONS,
    SECURITY_PERMISSIONS,
)
from .roles import ALL_PERMISSIONS, BULK_OPERATION_PERMISSIONS, DEFAULT_ROLE_PERMISSIONS, ROLES, Role
from .helpers import (
    get_all_permission_codes,
    get_all_roles,
    get_permission_definition,
    get_permissions_by_category,
    get_role,
    validate_permission_code,
    validate_role,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "POS_PERMISSIONS",
    "PRODUCT_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "HARDWARE_PERMISSIONS",
    "USER_PERMISSIONS",
    "SETTINGS_PERMISSIONS",
    "CUSTOMER_PERMISSIONS",
    "SECURITY_PERMISSIONS",
    "ALL_PERMISSIONS",
    "BULK_OPERATION_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLES",
    "Role",
    "get_all_permission_codes",
    "get_all_roles",
    "get_permission_definition",
    "get_permissions_by_category",
    "get_role",
    "validate_permission_code",
    "validate_role",
]
