# Overview: Role-based permission evaluation over the static role table.

"""
Permission Evaluator

WHY: The UI gates screens and buttons on permission keys; this is the only
place those checks are answered.

DESIGN PRINCIPLES:
- Fail closed: no session, or a locked session, has no permissions
- Wildcard: a role holding "*" is granted every key, even unknown ones
- Pure: no side effects and no persistence; activity tracking is the
  SessionManager's job
"""

from __future__ import annotations

from typing import Iterable

from ..errors import InvalidRoleError
from ..permissions import (
    ALL_PERMISSIONS,
    BULK_OPERATION_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    ROLES,
    get_all_permission_codes,
)


class PermissionEvaluator:
    def __init__(self, roles: dict | None = None):
        self._roles = roles if roles is not None else ROLES

    @property
    def roles(self) -> dict:
        return self._roles

    def role_permissions(self, role: str) -> frozenset:
        """Permission keys of a role; {"*"} for the wildcard role."""
        definition = self._roles.get(role)
        if definition is None:
            raise InvalidRoleError(f"Unknown role: {role}")
        return definition.permissions

    def role_allows(self, role: str, permission_key: str) -> bool:
        definition = self._roles.get(role)
        if definition is None:
            return False
        return ALL_PERMISSIONS in definition.permissions or permission_key in definition.permissions

    @staticmethod
    def _usable(session) -> bool:
        return session is not None and not session.locked

    def has_permission(self, session, permission_key: str) -> bool:
        if not self._usable(session):
            return False
        return self.role_allows(session.user.role, permission_key)

    def has_any(self, session, keys: Iterable[str]) -> bool:
        return any(self.has_permission(session, key) for key in keys)

    def has_all(self, session, keys: Iterable[str]) -> bool:
        return all(self.has_permission(session, key) for key in keys)

    def effective_permissions(self, session) -> list[str]:
        """Catalogue keys the session holds, wildcard expanded. Unknown roles hold nothing."""
        if not self._usable(session):
            return []
        definition = self._roles.get(session.user.role)
        if definition is None:
            return []
        granted = definition.permissions
        if ALL_PERMISSIONS in granted:
            return get_all_permission_codes()
        return [code for code in get_all_permission_codes() if code in granted]

    def can_perform_bulk_operation(self, session, operation: str) -> bool:
        """Unknown operations are refused."""
        required = BULK_OPERATION_PERMISSIONS.get(operation)
        if not required:
            return False
        return self.has_all(session, required)

    def permission_matrix(self) -> dict:
        """Role x permission grid for the admin screen."""
        roles = sorted(self._roles.values(), key=lambda role: role.priority)
        return {
            "roles": [role.to_dict() for role in roles],
            "permissions": [
                {
                    "code": code,
                    "name": name,
                    "category": category,
                    "granted": {role.name: self.role_allows(role.name, code) for role in roles},
                }
                for code, name, _description, category in PERMISSION_DEFINITIONS
            ],
        }
