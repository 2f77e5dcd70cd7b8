# Overview: All permission definitions organized by category.
# Each permission is defined as: (key, name, description, category)

from .categories import PermissionCategory


# -- POINT OF SALE --

POS_PERMISSIONS = [
    (
        "pos.use",
        "Use Point of Sale",
        "Open the point-of-sale screen and ring up sales",
        PermissionCategory.POS,
    ),
    (
        "pos.discount",
        "Apply Discounts",
        "Apply discounts to items in the cart",
        PermissionCategory.POS,
    ),
    (
        "pos.refund",
        "Process Refunds",
        "Process refunds for completed sales",
        PermissionCategory.POS,
    ),
    (
        "pos.void",
        "Void Transactions",
        "Void transactions",
        PermissionCategory.POS,
    ),
]


# -- PRODUCTS --

PRODUCT_PERMISSIONS = [
    (
        "products.view",
        "View Products",
        "View the product list",
        PermissionCategory.PRODUCTS,
    ),
    (
        "products.create",
        "Create Products",
        "Add new products",
        PermissionCategory.PRODUCTS,
    ),
    (
        "products.edit",
        "Edit Products",
        "Edit product details",
        PermissionCategory.PRODUCTS,
    ),
    (
        "products.delete",
        "Delete Products",
        "Delete products",
        PermissionCategory.PRODUCTS,
    ),
    (
        "products.import",
        "Import Products",
        "Import products from external files",
        PermissionCategory.PRODUCTS,
    ),
    (
        "products.export",
        "Export Products",
        "Export product data",
        PermissionCategory.PRODUCTS,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "inventory.view",
        "View Inventory",
        "View stock levels",
        PermissionCategory.INVENTORY,
    ),
    (
        "inventory.adjust",
        "Adjust Inventory",
        "Adjust stock quantities",
        PermissionCategory.INVENTORY,
    ),
    (
        "inventory.transfer",
        "Transfer Inventory",
        "Move stock between locations",
        PermissionCategory.INVENTORY,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "reports.view",
        "View Reports",
        "View basic reports",
        PermissionCategory.REPORTS,
    ),
    (
        "reports.advanced",
        "Advanced Reports",
        "View advanced reports and analytics",
        PermissionCategory.REPORTS,
    ),
    (
        "reports.export",
        "Export Reports",
        "Export reports",
        PermissionCategory.REPORTS,
    ),
    (
        "reports.financial",
        "Financial Reports",
        "View sensitive financial reports",
        PermissionCategory.REPORTS,
    ),
]


# -- HARDWARE --

HARDWARE_PERMISSIONS = [
    (
        "hardware.view",
        "View Hardware",
        "View device status",
        PermissionCategory.HARDWARE,
    ),
    (
        "hardware.use",
        "Use Hardware",
        "Use attached devices (printer, scanner)",
        PermissionCategory.HARDWARE,
    ),
    (
        "hardware.manage",
        "Manage Hardware",
        "Configure and manage devices",
        PermissionCategory.HARDWARE,
    ),
    (
        "hardware.test",
        "Test Hardware",
        "Run device self-tests",
        PermissionCategory.HARDWARE,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "users.view",
        "View Users",
        "View the user list",
        PermissionCategory.USERS,
    ),
    (
        "users.create",
        "Create Users",
        "Add new users",
        PermissionCategory.USERS,
    ),
    (
        "users.edit",
        "Edit Users",
        "Edit user details, activate/deactivate, clear lockouts, reset passwords",
        PermissionCategory.USERS,
    ),
    (
        "users.delete",
        "Delete Users",
        "Delete users",
        PermissionCategory.USERS,
    ),
    (
        "users.permissions",
        "Manage Permissions",
        "View and change role permissions",
        PermissionCategory.USERS,
    ),
]


# -- SETTINGS --

SETTINGS_PERMISSIONS = [
    (
        "settings.view",
        "View Settings",
        "View system settings and storage statistics",
        PermissionCategory.SETTINGS,
    ),
    (
        "settings.edit",
        "Edit Settings",
        "Change system settings",
        PermissionCategory.SETTINGS,
    ),
    (
        "settings.backup",
        "Backup & Restore",
        "Create and restore backups",
        PermissionCategory.SETTINGS,
    ),
    (
        "settings.security",
        "Security Settings",
        "Change security settings",
        PermissionCategory.SETTINGS,
    ),
]


# -- CUSTOMERS --

CUSTOMER_PERMISSIONS = [
    (
        "customers.view",
        "View Customers",
        "View the customer list",
        PermissionCategory.CUSTOMERS,
    ),
    (
        "customers.create",
        "Create Customers",
        "Add new customers",
        PermissionCategory.CUSTOMERS,
    ),
    (
        "customers.edit",
        "Edit Customers",
        "Edit customer details",
        PermissionCategory.CUSTOMERS,
    ),
    (
        "customers.delete",
        "Delete Customers",
        "Delete customers",
        PermissionCategory.CUSTOMERS,
    ),
]


# -- SECURITY --

SECURITY_PERMISSIONS = [
    (
        "security.logs",
        "View Security Log",
        "View the security audit log",
        PermissionCategory.SECURITY,
    ),
    (
        "security.manage",
        "Manage Security",
        "Run integrity checks and data migration",
        PermissionCategory.SECURITY,
    ),
]


# Combined list of all permissions (preserves catalogue ordering)
PERMISSION_DEFINITIONS = (
    POS_PERMISSIONS
    + PRODUCT_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + REPORT_PERMISSIONS
    + HARDWARE_PERMISSIONS
    + USER_PERMISSIONS
    + SETTINGS_PERMISSIONS
    + CUSTOMER_PERMISSIONS
    + SECURITY_PERMISSIONS
)
