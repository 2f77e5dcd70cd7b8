# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    POS = "pos"
    PRODUCTS = "products"
    INVENTORY = "inventory"
    REPORTS = "reports"
    HARDWARE = "hardware"
    USERS = "users"
    SETTINGS = "settings"
    CUSTOMERS = "customers"
    SECURITY = "security"

    # Display labels, in menu order
    LABELS = {
        POS: "Point of Sale",
        PRODUCTS: "Products",
        INVENTORY: "Inventory",
        REPORTS: "Reports",
        HARDWARE: "Hardware",
        USERS: "Users",
        SETTINGS: "Settings",
        CUSTOMERS: "Customers",
        SECURITY: "Security",
    }

    @classmethod
    def all(cls):
        return list(cls.LABELS.keys())
