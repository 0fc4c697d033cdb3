# Overview: Error taxonomy shared by services and routes.

"""
Inventory error taxonomy.

Services raise these; routes map them to HTTP responses with
``error_response``. Nothing here is fatal to the process: every failure
is scoped to the single request that raised it.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for all core errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class InvalidArgument(InventoryError, ValueError):
    """Malformed or missing input (400)."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        details = dict(details or {})
        if field is not None:
            details.setdefault("field", field)
        super().__init__(message, details)
        self.field = field


class NotFound(InventoryError):
    """Referenced entity does not exist or is inactive (404)."""

    status_code = 404

    def __init__(self, entity: str, entity_id, message: str | None = None):
        super().__init__(
            message or f"{entity.capitalize()} with ID {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class Conflict(InventoryError):
    """Duplicate unique field (409)."""

    status_code = 409

    def __init__(self, field: str, value, message: str | None = None):
        super().__init__(
            message or f"{field} {value!r} is already in use",
            {"field": field, "value": value},
        )
        self.field = field
        self.value = value


class InsufficientStock(InventoryError):
    """Requested quantity exceeds quantity on hand (409)."""

    status_code = 409

    def __init__(self, product_id: int, available: int, requested: int, sku: str | None = None):
        label = f'"{sku}"' if sku else f"ID {product_id}"
        super().__init__(
            f"Not enough stock for product {label}. Available: {available}",
            {
                "product_id": product_id,
                "sku": sku,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested
        self.sku = sku


class InvalidState(InventoryError):
    """Operation not permitted in the current lifecycle state (409)."""

    status_code = 409

    def __init__(self, message: str, state: str | None = None):
        super().__init__(message, {"state": state} if state is not None else None)
        self.state = state


class TransactionAborted(InventoryError):
    """The atomic scope failed to commit; retry the whole operation (503)."""

    status_code = 503

    def __init__(self, operation: str, reason: str, attempts: int | None = None):
        details = {"operation": operation, "reason": reason}
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(f"{operation} aborted: {reason}", details)
        self.operation = operation
        self.reason = reason
        self.attempts = attempts


def error_response(exc: InventoryError):
    """(body, status) tuple for Flask routes."""
    return exc.to_dict(), exc.status_code
