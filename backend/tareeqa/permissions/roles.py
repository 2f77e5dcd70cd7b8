# Overview: Static role table mapping role names to permission keys.

from dataclasses import dataclass


# Sentinel granting every permission, including keys not in the catalogue
ALL_PERMISSIONS = "*"


@dataclass(frozen=True)
class Role:
    name: str
    label: str
    description: str
    # Lower = more privileged; display sorting only
    priority: int
    permissions: frozenset

    @property
    def is_wildcard(self) -> bool:
        return ALL_PERMISSIONS in self.permissions

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "priority": self.priority,
            "permissions": sorted(self.permissions),
        }


DEFAULT_ROLE_PERMISSIONS = {
    "admin": [ALL_PERMISSIONS],
    "manager": [
        "pos.use", "pos.discount", "pos.refund", "pos.void",
        "products.view", "products.create", "products.edit", "products.delete",
        "products.import", "products.export",
        "inventory.view", "inventory.adjust", "inventory.transfer",
        "reports.view", "reports.advanced", "reports.export", "reports.financial",
        "hardware.view", "hardware.use", "hardware.manage", "hardware.test",
        "users.view", "users.create", "users.edit",
        "settings.view", "settings.edit", "settings.backup",
        "customers.view", "customers.create", "customers.edit", "customers.delete",
    ],
    "accountant": [
        "pos.use",
        "products.view",
        "inventory.view",
        "reports.view", "reports.advanced", "reports.export", "reports.financial",
        "hardware.view", "hardware.use",
        "settings.view",
        "customers.view", "customers.create", "customers.edit",
    ],
    "cashier": [
        "pos.use", "pos.discount",
        "products.view",
        "inventory.view",
        "reports.view",
        "hardware.view", "hardware.use",
        "customers.view", "customers.create",
    ],
    "viewer": [
        "products.view",
        "inventory.view",
        "reports.view",
        "hardware.view",
        "customers.view",
    ],
}


ROLES = {
    role.name: role
    for role in (
        Role("admin", "System Administrator", "Full access to every function", 1,
             frozenset(DEFAULT_ROLE_PERMISSIONS["admin"])),
        Role("manager", "Manager", "Broad management access without security administration", 2,
             frozenset(DEFAULT_ROLE_PERMISSIONS["manager"])),
        Role("accountant", "Accountant", "Financial access and reporting", 3,
             frozenset(DEFAULT_ROLE_PERMISSIONS["accountant"])),
        Role("cashier", "Cashier", "Sales and basic customer handling", 4,
             frozenset(DEFAULT_ROLE_PERMISSIONS["cashier"])),
        Role("viewer", "Viewer", "Read-only access", 5,
             frozenset(DEFAULT_ROLE_PERMISSIONS["viewer"])),
    )
}


# Bulk operations and the permissions each one requires (all of them)
BULK_OPERATION_PERMISSIONS = {
    "bulk_delete_products": ["products.delete"],
    "bulk_edit_products": ["products.edit"],
    "bulk_import_products": ["products.import"],
    "bulk_export_data": ["reports.export"],
    "bulk_user_management": ["users.edit", "users.delete"],
}
