# Overview: Error taxonomy shared by the workflow, account, and catalog services.

"""
Workflow errors.

Every service-layer failure raises one of these. Routes translate them to
HTTP responses through ``status_code``; anything else is an unexpected 500.

Raising any of them inside ``run_in_transaction`` rolls the whole unit of
work back, so callers never observe a partial mutation.
"""


class WorkflowError(Exception):
    """Base class for expected, user-facing failures."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(WorkflowError):
    """Missing or malformed input, or an unknown reference."""
    status_code = 400


class NotFoundError(ValidationError):
    """A referenced row does not exist."""
    status_code = 404


class InvalidStateError(WorkflowError):
    """Transition attempted from the wrong state (e.g. a double return request)."""
    status_code = 409


class InsufficientStockError(WorkflowError):
    """Approval or assignment would drive product quantity below zero."""
    status_code = 409

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Available: {available}, requested: {requested}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "product_id": self.product_id,
            "requested": self.requested,
            "available": self.available,
        }


class OutstandingAssignmentsError(WorkflowError):
    """Deactivation blocked because the account still holds products."""
    status_code = 409

    def __init__(self, user_id: int, count: int):
        super().__init__(
            f"Cannot deactivate user {user_id} with {count} unreturned product(s)"
        )
        self.user_id = user_id
        self.count = count

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "user_id": self.user_id,
            "outstanding_count": self.count,
        }


class PermissionDeniedError(WorkflowError):
    """Wrong role, inactive actor, or an attempt to approve one's own request."""
    status_code = 403


class ConflictError(WorkflowError):
    """Uniqueness conflict (duplicate username, email, or serial number)."""
    status_code = 409
