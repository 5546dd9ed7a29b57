"""
The service layer publishes lifecycle events after a request state change
commits; notification gateways and the CLI subscribe to them.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, Optional

from stock_request import RequestView

logger = logging.getLogger(__name__)

NEW_REQUEST = "NEW_REQUEST"
REQUEST_APPROVED = "REQUEST_APPROVED"
REQUEST_REJECTED = "REQUEST_REJECTED"

LIFECYCLE_EVENTS = (NEW_REQUEST, REQUEST_APPROVED, REQUEST_REJECTED)


@dataclass(frozen=True)
class Event:
    """Base event type."""
    name: str
    payload: dict[str, Any]


def new_request_event(request_id: int) -> Event:
    return Event(name=NEW_REQUEST, payload={"type": NEW_REQUEST, "request_id": request_id})


def request_approved_event(request_id: int) -> Event:
    return Event(name=REQUEST_APPROVED, payload={"type": REQUEST_APPROVED, "request_id": request_id})


def request_rejected_event(request_id: int, rejection_reason: str) -> Event:
    return Event(
        name=REQUEST_REJECTED,
        payload={"type": REQUEST_REJECTED, "request_id": request_id, "rejection_reason": rejection_reason},
    )


class EventBus:
    """
    Simple synchronous pub/sub event bus.

    Delivery is best-effort: a failing handler is logged and skipped, and
    never propagates back into the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: DefaultDict[str, list[Callable[[Event], None]]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Callable[[Event], None]) -> None:
        # Registers a handler for a specific event name.
        if not isinstance(event_name, str) or not event_name.strip():
            raise ValueError("event_name must be a non-empty string.")
        self._subscribers[event_name].append(handler)

    def publish(self, event: Event) -> int:
        """Deliver to every subscriber; returns how many handlers failed."""
        failures = 0
        for handler in list(self._subscribers.get(event.name, [])):
            try:
                handler(event)
            except Exception:
                failures += 1
                logger.exception("Handler %r failed for event %s %s", handler, event.name, event.payload)
        return failures


class NotificationGateway:
    """
    Receives lifecycle events and is responsible for resolving recipients and
    delivering notice out of band. Subclasses implement `notify`.
    """

    def notify(self, event: Event) -> None:
        raise NotImplementedError

    def attach(self, bus: EventBus) -> None:
        for name in LIFECYCLE_EVENTS:
            bus.subscribe(name, self.notify)


class LoggingNotificationGateway(NotificationGateway):
    """
    Records notifications in the log instead of sending them.

    `resolver` maps a request id to its RequestView (e.g. RequestLedger.describe)
    so the log line names the component, quantity and requester. Without one,
    or when the request cannot be resolved, only the id is logged.
    """

    def __init__(
        self,
        log: Optional[logging.Logger] = None,
        resolver: Optional[Callable[[int], Optional[RequestView]]] = None,
    ) -> None:
        self._log = log or logging.getLogger(f"{__name__}.notifications")
        self._resolver = resolver
        self.sent: list[Event] = []

    def notify(self, event: Event) -> None:
        self.sent.append(event)
        request_id = event.payload.get("request_id")
        view = self._resolver(request_id) if self._resolver is not None and request_id is not None else None
        if view is None:
            self._log.info("Notification %s for request id=%s", event.name, request_id)
        else:
            self._log.info(
                "Notification %s for request id=%s: %d x %s requested by %s",
                event.name, request_id, view.request.quantity,
                view.component.display_name, view.request.requester_id,
            )
        if event.name == REQUEST_REJECTED:
            self._log.info("Rejection reason: %s", event.payload.get("rejection_reason") or "No reason provided")
