"""
User roles enumeration.

Roles are issued by the platform's auth service and carried in the token.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        CUSTOMER: Pays their own invoices
        ADMIN .. ADMIN_MANAGER: Elevated staff, may act on any invoice
        STAFF_*, CONTENT_EDITOR: Staff without financial authority
    """
    CUSTOMER = "CUSTOMER"

    ADMIN = "ADMIN"
    CEO = "CEO"
    MANAGER = "MANAGER"
    HR = "HR"
    ACCOUNTANT = "ACCOUNTANT"
    AUDITOR = "AUDITOR"
    FINANCE_MANAGER = "FINANCE_MANAGER"
    OPERATIONS_MANAGER = "OPERATIONS_MANAGER"
    ADMIN_MANAGER = "ADMIN_MANAGER"

    STAFF_AUTO = "STAFF_AUTO"
    STAFF_PROPERTY = "STAFF_PROPERTY"
    STAFF_SOCIAL_MEDIA = "STAFF_SOCIAL_MEDIA"
    CONTENT_EDITOR = "CONTENT_EDITOR"


ELEVATED_ROLES = frozenset({
    UserRole.ADMIN,
    UserRole.CEO,
    UserRole.MANAGER,
    UserRole.HR,
    UserRole.ACCOUNTANT,
    UserRole.AUDITOR,
    UserRole.FINANCE_MANAGER,
    UserRole.OPERATIONS_MANAGER,
    UserRole.ADMIN_MANAGER,
})

STAFF_ROLES = ELEVATED_ROLES | {
    UserRole.STAFF_AUTO,
    UserRole.STAFF_PROPERTY,
    UserRole.STAFF_SOCIAL_MEDIA,
    UserRole.CONTENT_EDITOR,
}
