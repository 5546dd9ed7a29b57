"""
Typed errors raised by the inventory and request services.

Every error carries a machine-readable `code` so callers (CLI, web layer)
can present a specific message without parsing strings.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for all inventory/request errors."""

    code: str = "INVENTORY_ERROR"


class InvalidInput(InventoryError, ValueError):
    """Malformed arguments: empty name, non-positive quantity, blank reason."""

    code: str = "INVALID_INPUT"


class NotFound(InventoryError, LookupError):
    """Unknown component or request id."""

    code: str = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: int) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} id {entity_id} not found.")


class InvalidStateTransition(InventoryError):
    """Attempt to act on a request that is no longer pending."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, request_id: int, current_status: str, action: str) -> None:
        self.request_id = request_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} request id {request_id}: status is '{current_status}'."
        )


class InsufficientStock(InventoryError):
    """Withdrawal would drive a component's quantity below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, component_id: int, requested: int, available: int) -> None:
        self.component_id = component_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient quantity available for component id {component_id}: "
            f"requested {requested}, available {available}."
        )


class StorageError(InventoryError, RuntimeError):
    """Wraps sqlite3 failures so callers only deal with one error family."""

    code: str = "STORAGE_ERROR"
