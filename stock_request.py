"""
Stock request domain model.

A request asks for `quantity` units of one component and moves exactly once
from pending to a terminal state.
"""

from dataclasses import dataclass
from typing import Optional

from component import Component
from exceptions import InvalidInput, InvalidStateTransition

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

UNKNOWN_COMPONENT = "Unknown Component"


@dataclass
class StockRequest:
    """Represents a consumer's request to draw stock from the shared pool."""

    allowed_statuses = (PENDING, APPROVED, REJECTED)
    terminal_statuses = (APPROVED, REJECTED)

    id: Optional[int]
    requester_id: str
    component_id: int
    quantity: int
    reason: Optional[str] = None
    status: str = PENDING
    rejection_reason: Optional[str] = None
    reviewer_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.requester_id, str) or not self.requester_id.strip():
            raise InvalidInput("requester_id must be a non-empty string.")
        if not isinstance(self.quantity, int) or self.quantity <= 0:
            raise InvalidInput("Requested quantity must be an integer > 0.")
        if self.status not in self.allowed_statuses:
            raise InvalidInput(
                f"Invalid status '{self.status}'. Allowed: {', '.join(self.allowed_statuses)}"
            )

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    def ensure_pending(self, action: str) -> None:
        """Raises InvalidStateTransition unless the request can still be decided."""
        if not self.is_pending:
            raise InvalidStateTransition(int(self.id or 0), self.status, action)


@dataclass(frozen=True)
class ComponentRef:
    """
    Resolved reference from a request to its component.

    `component` is None when the component has been removed since the
    request was made; callers render that as "Unknown Component".
    """

    component_id: int
    component: Optional[Component] = None

    @property
    def found(self) -> bool:
        return self.component is not None

    @property
    def display_name(self) -> str:
        return self.component.display_name if self.component is not None else UNKNOWN_COMPONENT

    @property
    def category(self) -> Optional[str]:
        return self.component.category if self.component is not None else None


@dataclass(frozen=True)
class RequestView:
    """A request joined with its (possibly missing) component."""

    request: StockRequest
    component: ComponentRef
