from django.db import models

class TenantRole(models.TextChoices):
    OWNER      = "owner",      "Owner"
    ADMIN      = "admin",      "Admin"
    MANAGER    = "manager",    "Manager"
    CASHIER    = "cashier",    "Cashier"
    BARISTA    = "barista",    "Barista"
    ACCOUNTANT = "accountant", "Accountant"


# Roles allowed to correct ledgers and issue discount codes.
MANAGER_ROLES = {TenantRole.OWNER, TenantRole.ADMIN, TenantRole.MANAGER}
