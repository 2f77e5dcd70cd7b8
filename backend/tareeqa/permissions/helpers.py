# Overview: Utility functions for permission and role lookups and validation.

from .definitions import PERMISSION_DEFINITIONS
from .roles import ROLES


def get_all_permission_codes():
    """Get list of all permission keys."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_permissions_by_category(category=None):
    """Get all permissions in a category, or all permissions grouped by category."""
    if category is not None:
        return [perm for perm in PERMISSION_DEFINITIONS if perm[3] == category]
    grouped = {}
    for perm in PERMISSION_DEFINITIONS:
        grouped.setdefault(perm[3], []).append(perm)
    return grouped


def get_permission_definition(code):
    """Get full definition for a permission key."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == code:
            return {
                "code": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None


def validate_permission_code(code):
    """Check if a permission key is valid."""
    return code in get_all_permission_codes()


def get_role(name):
    return ROLES.get(name)


def get_all_roles():
    """Roles sorted by priority (most privileged first)."""
    return sorted(ROLES.values(), key=lambda role: role.priority)


def validate_role(name):
    return name in ROLES
