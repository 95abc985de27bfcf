"""
Role allow-lists.

WHY: Authorization is a pure set-membership test. Each operation names the
roles allowed to perform it; both the route decorator and the service layer
read from this single table so the two cannot drift apart.

ROLES:
- employee: requests products, returns them, asks for extensions
- monitor: approves/rejects, assigns directly, processes returns; may also
  request products for themselves like an employee
- admin: account management plus every monitor-equivalent approval
"""
from __future__ import annotations

ROLE_EMPLOYEE = "employee"
ROLE_MONITOR = "monitor"
ROLE_ADMIN = "admin"

ALL_ROLES = (ROLE_EMPLOYEE, ROLE_MONITOR, ROLE_ADMIN)

# Roles that carry an Employee record and can hold products
HOLDER_ROLES = frozenset({ROLE_EMPLOYEE, ROLE_MONITOR})
APPROVER_ROLES = frozenset({ROLE_MONITOR, ROLE_ADMIN})


# =============================================================================
# OPERATION ALLOW-LISTS
# =============================================================================

OPERATION_ROLES = {
    # Workflow
    "submit_request": HOLDER_ROLES,
    "cancel_request": frozenset(ALL_ROLES),
    "process_request": APPROVER_ROLES,
    "reactivate_request": APPROVER_ROLES,
    "assign_product": APPROVER_ROLES,
    "request_return": HOLDER_ROLES,
    "process_return": APPROVER_ROLES,
    "request_extension": HOLDER_ROLES,
    "process_extension": APPROVER_ROLES,

    # Catalog
    "manage_products": APPROVER_ROLES,
    "manage_attachments": APPROVER_ROLES,

    # Accounts
    "manage_accounts": frozenset({ROLE_ADMIN}),
    "process_registration": frozenset({ROLE_ADMIN}),
    "manage_monitors": frozenset({ROLE_ADMIN}),
    "send_reminders": frozenset({ROLE_ADMIN}),

    # Reports
    "view_reports": APPROVER_ROLES,
}


def roles_for(operation: str) -> frozenset:
    """Return the allow-list for an operation (KeyError on unknown codes)."""
    return OPERATION_ROLES[operation]


def is_allowed(role: str | None, operation: str) -> bool:
    return role in roles_for(operation)
