"""
Service layer

InventoryStore owns component rows; RequestLedger owns request rows and
delegates every stock change back to InventoryStore. Both share one
connection so an approval's decrement and status change commit together.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

import config
import db
import matching
import repositories as repo
from component import Component
from events import (
    EventBus,
    new_request_event,
    request_approved_event,
    request_rejected_event,
)
from exceptions import (
    InsufficientStock,
    InvalidInput,
    InvalidStateTransition,
    NotFound,
    StorageError,
)
from stock_request import (
    APPROVED,
    REJECTED,
    ComponentRef,
    RequestView,
    StockRequest,
)

logger = logging.getLogger(__name__)

CREATED = "created"
MERGED = "merged"


@dataclass(frozen=True)
class IntakeResult:
    action: str  # CREATED or MERGED
    component: Component


@dataclass(frozen=True)
class InventorySummary:
    total_components: int
    total_units: int
    low_stock_components: int


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@contextmanager
def _unit_of_work(conn: sqlite3.Connection, action: str) -> Iterator[sqlite3.Connection]:
    # Roll back on any error to avoid partial writes; DB errors surface as StorageError.
    try:
        with db.transaction(conn):
            yield conn
    except sqlite3.Error as e:
        raise StorageError(f"Database error while {action}: {e}") from e


class InventoryStore:
    def __init__(self, conn: sqlite3.Connection, low_stock_threshold: Optional[int] = None) -> None:
        self._conn = conn
        self._low_stock_threshold = (
            config.LOW_STOCK_THRESHOLD if low_stock_threshold is None else low_stock_threshold
        )

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def intake(
        self,
        display_name: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        quantity: Optional[int] = None,
    ) -> IntakeResult:
        """
        Add received stock to the catalog.

        If a component with the same normalized name exists its quantity is
        increased (and description/category refreshed when given); otherwise
        a new component is created.
        """
        if not isinstance(display_name, str) or not display_name.strip():
            raise InvalidInput("Component name must be a non-empty string.")
        if not _is_positive_int(quantity):
            raise InvalidInput("Intake quantity must be an integer > 0.")

        display_name = display_name.strip()
        description = (description or "").strip()
        category = (category or "").strip()
        key = matching.normalize(display_name)
        if not key:
            raise InvalidInput(f"Component name '{display_name}' has no letters or digits to match on.")

        # Lookup and insert/update share one write transaction so two intakes
        # of the same new name cannot both create a row.
        with _unit_of_work(self._conn, "recording stock intake"):
            existing = repo.get_component_by_key(self._conn, key)
            if existing is not None:
                repo.add_component_stock(self._conn, existing.id, quantity, description, category)
                component_id = existing.id
                action = MERGED
            else:
                component_id = repo.create_component(
                    self._conn,
                    Component(
                        id=None,
                        display_name=display_name,
                        normalized_key=key,
                        description=description,
                        category=category or config.DEFAULT_CATEGORY,
                        quantity_available=quantity,
                    ),
                )
                action = CREATED
            component = repo.get_component(self._conn, component_id)

        logger.info(
            "Intake %s component id=%s '%s' (+%d, now %d)",
            action, component.id, component.display_name, quantity, component.quantity_available,
        )
        return IntakeResult(action=action, component=component)

    def set_quantity(self, component_id: int, new_quantity: int) -> Component:
        """Administrative override of the stock level; no merge logic."""
        if not isinstance(new_quantity, int) or isinstance(new_quantity, bool) or new_quantity < 0:
            raise InvalidInput("Quantity must be an integer >= 0.")

        with _unit_of_work(self._conn, "setting quantity"):
            if not repo.update_component_quantity(self._conn, component_id, new_quantity):
                raise NotFound("Component", component_id)
            component = repo.get_component(self._conn, component_id)

        logger.info("Set quantity of component id=%s to %d", component_id, new_quantity)
        return component

    def decrement_guarded(self, component_id: int, amount: int) -> Component:
        """
        Withdraw `amount` units, or raise InsufficientStock.

        The check and the subtraction are a single conditional UPDATE, so
        concurrent withdrawals can never take the quantity below zero.
        """
        if not _is_positive_int(amount):
            raise InvalidInput("Withdrawal amount must be an integer > 0.")

        # Inside a caller's transaction nothing is committed yet; that caller logs the outcome.
        joined = self._conn.in_transaction
        with _unit_of_work(self._conn, "withdrawing stock"):
            if not repo.decrement_component_quantity(self._conn, component_id, amount):
                current = repo.get_component(self._conn, component_id)
                if current is None:
                    raise NotFound("Component", component_id)
                raise InsufficientStock(component_id, amount, current.quantity_available)
            component = repo.get_component(self._conn, component_id)

        logger.log(
            logging.DEBUG if joined else logging.INFO,
            "Withdrew %d from component id=%s (now %d)", amount, component_id, component.quantity_available,
        )
        return component

    def remove(self, component_id: int) -> None:
        """Delete a component. Requests that reference it are left as they are."""
        with _unit_of_work(self._conn, "removing component"):
            if not repo.delete_component(self._conn, component_id):
                raise NotFound("Component", component_id)
        logger.info("Removed component id=%s", component_id)

    def get(self, component_id: int) -> Optional[Component]:
        return repo.get_component(self._conn, component_id)

    def list_components(self, category: Optional[str] = None) -> list[Component]:
        """All components by name, optionally only those in `category` (exact match)."""
        category = (category or "").strip() or None
        return repo.list_components(self._conn, category=category)

    def search(self, query: str, category: Optional[str] = None) -> list[Component]:
        return matching.search(query, self.list_components(category))

    def categories(self) -> list[str]:
        return repo.list_categories(self._conn)

    def list_low_stock(self, threshold: Optional[int] = None) -> list[Component]:
        limit = self._low_stock_threshold if threshold is None else threshold
        return repo.list_low_stock(self._conn, limit)

    def summary(self) -> InventorySummary:
        count, units = repo.component_totals(self._conn)
        return InventorySummary(
            total_components=count,
            total_units=units,
            low_stock_components=len(self.list_low_stock()),
        )

    list = list_components


class RequestLedger:
    def __init__(self, inventory: InventoryStore, event_bus: EventBus) -> None:
        # Shares the store's connection: approve() composes both in one transaction.
        self._inventory = inventory
        self._conn = inventory.connection
        self._events = event_bus

    def submit(
        self,
        requester_id: str,
        component_id: int,
        quantity: int,
        reason: Optional[str] = None,
    ) -> StockRequest:
        """
        Record a pending request.

        Stock is not checked here; availability is only enforced at approval.
        """
        if not isinstance(component_id, int) or isinstance(component_id, bool):
            raise InvalidInput("component_id must be an integer.")
        draft = StockRequest(
            id=None,
            requester_id=requester_id,
            component_id=component_id,
            quantity=quantity,
            reason=(reason or "").strip() or None,
        )

        with _unit_of_work(self._conn, "submitting request"):
            request_id = repo.create_request(self._conn, draft)
            request = repo.get_request(self._conn, request_id)

        logger.info(
            "Request id=%s submitted by %s: %d x component id=%s",
            request_id, requester_id, quantity, component_id,
        )
        # Publish after commit so handlers don't react to uncommitted state.
        self._events.publish(new_request_event(request_id))
        return request

    def approve(self, request_id: int, reviewer_id: str) -> StockRequest:
        """
        Approve a pending request and withdraw its stock.

        On InsufficientStock nothing changes and the request stays pending,
        so it can be approved later (e.g. after a restock).
        """
        self._require_reviewer(reviewer_id)

        with _unit_of_work(self._conn, "approving request"):
            request = self._require_request(request_id)
            request.ensure_pending("approve")

            component = self._inventory.get(request.component_id)
            logger.debug(
                "Approving request id=%s: %d requested, %s available",
                request_id, request.quantity,
                component.quantity_available if component is not None else "n/a",
            )

            try:
                self._inventory.decrement_guarded(request.component_id, request.quantity)
            except InsufficientStock as e:
                logger.warning("Approval of request id=%s refused: %s", request_id, e)
                raise

            if not repo.finalize_request(self._conn, request_id, APPROVED, reviewer_id):
                self._raise_lost_race(request_id, "approve")
            approved = repo.get_request(self._conn, request_id)

        logger.info(
            "Request id=%s approved by %s; withdrew %d from component id=%s",
            request_id, reviewer_id, approved.quantity, approved.component_id,
        )
        self._events.publish(request_approved_event(request_id))
        return approved

    def reject(self, request_id: int, reviewer_id: str, reason: str) -> StockRequest:
        """Reject a pending request with a mandatory reason. No inventory effect."""
        if not isinstance(reason, str) or not reason.strip():
            raise InvalidInput("A rejection reason is required.")
        self._require_reviewer(reviewer_id)
        reason = reason.strip()

        with _unit_of_work(self._conn, "rejecting request"):
            request = self._require_request(request_id)
            request.ensure_pending("reject")
            if not repo.finalize_request(self._conn, request_id, REJECTED, reviewer_id, reason):
                self._raise_lost_race(request_id, "reject")
            rejected = repo.get_request(self._conn, request_id)

        logger.info("Request id=%s rejected by %s: %s", request_id, reviewer_id, reason)
        self._events.publish(request_rejected_event(request_id, reason))
        return rejected

    def get(self, request_id: int) -> Optional[StockRequest]:
        return repo.get_request(self._conn, request_id)

    def list_for(self, requester_id: Optional[str] = None, status: Optional[str] = None) -> list[StockRequest]:
        """Requests of one requester (or everyone when None), newest first."""
        if status is not None and status not in StockRequest.allowed_statuses:
            raise InvalidInput(
                f"Invalid status '{status}'. Allowed: {', '.join(StockRequest.allowed_statuses)}"
            )
        return repo.list_requests(self._conn, requester_id=requester_id, status=status)

    def list_with_components(
        self, requester_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[RequestView]:
        requests = self.list_for(requester_id, status)
        components = repo.get_components_by_ids(self._conn, (r.component_id for r in requests))
        return [
            RequestView(request=r, component=ComponentRef(r.component_id, components.get(r.component_id)))
            for r in requests
        ]

    def describe(self, request_id: int) -> Optional[RequestView]:
        """One request joined with its component, or None when the request is unknown."""
        request = repo.get_request(self._conn, request_id)
        if request is None:
            return None
        component = self._inventory.get(request.component_id)
        return RequestView(request=request, component=ComponentRef(request.component_id, component))

    def status_counts(self) -> dict[str, int]:
        counts = dict.fromkeys(StockRequest.allowed_statuses, 0)
        counts.update(repo.count_requests_by_status(self._conn))
        return counts

    def _require_request(self, request_id: int) -> StockRequest:
        request = repo.get_request(self._conn, request_id)
        if request is None:
            raise NotFound("Request", request_id)
        return request

    @staticmethod
    def _require_reviewer(reviewer_id: str) -> None:
        if not isinstance(reviewer_id, str) or not reviewer_id.strip():
            raise InvalidInput("reviewer_id must be a non-empty string.")

    def _raise_lost_race(self, request_id: int, action: str) -> None:
        # Another reviewer decided the request between our read and our write.
        current = repo.get_request(self._conn, request_id)
        status = current.status if current is not None else "missing"
        logger.warning("Request id=%s already %s; %s aborted", request_id, status, action)
        raise InvalidStateTransition(request_id, status, action)
