import unittest

from db import get_connection, init_db
from events import NEW_REQUEST, REQUEST_APPROVED, REQUEST_REJECTED, EventBus, LoggingNotificationGateway
from exceptions import InsufficientStock, InvalidInput, InvalidStateTransition, NotFound
from services import InventoryStore, RequestLedger
from stock_request import APPROVED, PENDING, REJECTED, UNKNOWN_COMPONENT


class RequestLedgerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = get_connection(":memory:")
        init_db(self.conn)
        self.bus = EventBus()
        self.events = []
        for name in (NEW_REQUEST, REQUEST_APPROVED, REQUEST_REJECTED):
            self.bus.subscribe(name, self.events.append)
        self.store = InventoryStore(self.conn)
        self.ledger = RequestLedger(self.store, self.bus)
        self.board = self.store.intake("Arduino Uno", category="Boards", quantity=10).component

    def tearDown(self) -> None:
        self.conn.close()

    def _names(self) -> list:
        return [e.name for e in self.events]

    def test_submit_creates_pending_request_and_notifies(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 3, "Line follower project")

        self.assertEqual(req.status, PENDING)
        self.assertEqual(req.quantity, 3)
        self.assertEqual(req.reason, "Line follower project")
        self.assertIsNone(req.reviewer_id)
        self.assertIsNone(req.rejection_reason)
        self.assertEqual(self._names(), [NEW_REQUEST])
        self.assertEqual(self.events[0].payload, {"type": NEW_REQUEST, "request_id": req.id})

    def test_submit_does_not_check_stock(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 500)
        self.assertEqual(req.status, PENDING)
        self.assertEqual(self.store.get(self.board.id).quantity_available, 10)

    def test_submit_rejects_non_positive_quantity(self) -> None:
        for quantity in (0, -1):
            with self.assertRaises(InvalidInput):
                self.ledger.submit("student-1", self.board.id, quantity)
        with self.assertRaises(InvalidInput):
            self.ledger.submit("  ", self.board.id, 1)
        self.assertEqual(self.ledger.list_for(), [])
        self.assertEqual(self.events, [])

    def test_approve_withdraws_stock(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 4)
        approved = self.ledger.approve(req.id, "staff-1")

        self.assertEqual(approved.status, APPROVED)
        self.assertEqual(approved.reviewer_id, "staff-1")
        self.assertIsNone(approved.rejection_reason)
        self.assertEqual(self.store.get(self.board.id).quantity_available, 6)
        self.assertEqual(self._names(), [NEW_REQUEST, REQUEST_APPROVED])
        self.assertEqual(self.events[-1].payload, {"type": REQUEST_APPROVED, "request_id": req.id})

    def test_insufficient_stock_leaves_request_pending(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 11)

        with self.assertRaises(InsufficientStock):
            self.ledger.approve(req.id, "staff-1")

        self.assertEqual(self.ledger.get(req.id).status, PENDING)
        self.assertIsNone(self.ledger.get(req.id).reviewer_id)
        self.assertEqual(self.store.get(self.board.id).quantity_available, 10)
        self.assertNotIn(REQUEST_APPROVED, self._names())

        # Same request can be approved after a restock, without resubmitting.
        self.store.intake("Arduino UNO", quantity=1)
        self.assertEqual(self.ledger.approve(req.id, "staff-1").status, APPROVED)
        self.assertEqual(self.store.get(self.board.id).quantity_available, 0)

    def test_terminal_requests_cannot_transition_again(self) -> None:
        approved = self.ledger.submit("student-1", self.board.id, 1)
        self.ledger.approve(approved.id, "staff-1")
        with self.assertRaises(InvalidStateTransition):
            self.ledger.approve(approved.id, "staff-2")
        with self.assertRaises(InvalidStateTransition):
            self.ledger.reject(approved.id, "staff-2", "Changed my mind")

        rejected = self.ledger.submit("student-2", self.board.id, 1)
        self.ledger.reject(rejected.id, "staff-1", "Not for coursework")
        with self.assertRaises(InvalidStateTransition):
            self.ledger.approve(rejected.id, "staff-1")

        self.assertEqual(self.ledger.get(approved.id).status, APPROVED)
        self.assertEqual(self.ledger.get(rejected.id).status, REJECTED)
        # One withdrawal only.
        self.assertEqual(self.store.get(self.board.id).quantity_available, 9)

    def test_reject_records_reason_without_touching_stock(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 2)
        rejected = self.ledger.reject(req.id, "staff-1", "  Out of scope  ")

        self.assertEqual(rejected.status, REJECTED)
        self.assertEqual(rejected.rejection_reason, "Out of scope")
        self.assertEqual(rejected.reviewer_id, "staff-1")
        self.assertEqual(self.store.get(self.board.id).quantity_available, 10)
        self.assertEqual(
            self.events[-1].payload,
            {"type": REQUEST_REJECTED, "request_id": req.id, "rejection_reason": "Out of scope"},
        )

    def test_reject_requires_reason(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 2)
        for reason in ("", "   ", None):
            with self.assertRaises(InvalidInput):
                self.ledger.reject(req.id, "staff-1", reason)
        self.assertEqual(self.ledger.get(req.id).status, PENDING)

    def test_unknown_request(self) -> None:
        with self.assertRaises(NotFound):
            self.ledger.approve(12345, "staff-1")
        with self.assertRaises(NotFound):
            self.ledger.reject(12345, "staff-1", "No such request")

    def test_handler_failure_does_not_undo_transition(self) -> None:
        def broken(_event):
            raise RuntimeError("mail server down")

        self.bus.subscribe(REQUEST_APPROVED, broken)
        req = self.ledger.submit("student-1", self.board.id, 2)

        with self.assertLogs("events", level="ERROR"):
            approved = self.ledger.approve(req.id, "staff-1")

        self.assertEqual(approved.status, APPROVED)
        self.assertEqual(self.ledger.get(req.id).status, APPROVED)
        self.assertEqual(self.store.get(self.board.id).quantity_available, 8)

    def test_list_for_orders_newest_first_and_filters(self) -> None:
        first = self.ledger.submit("student-1", self.board.id, 1)
        second = self.ledger.submit("student-2", self.board.id, 1)
        third = self.ledger.submit("student-1", self.board.id, 1)
        self.ledger.approve(third.id, "staff-1")

        self.assertEqual([r.id for r in self.ledger.list_for()], [third.id, second.id, first.id])
        self.assertEqual([r.id for r in self.ledger.list_for("student-1")], [third.id, first.id])
        self.assertEqual([r.id for r in self.ledger.list_for(status=PENDING)], [second.id, first.id])
        self.assertEqual([r.id for r in self.ledger.list_for("student-1", APPROVED)], [third.id])
        with self.assertRaises(InvalidInput):
            self.ledger.list_for(status="cancelled")

    def test_removed_component_resolves_to_unknown(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 1)
        self.store.remove(self.board.id)

        [view] = self.ledger.list_with_components()
        self.assertEqual(view.request.id, req.id)
        self.assertFalse(view.component.found)
        self.assertEqual(view.component.display_name, UNKNOWN_COMPONENT)
        self.assertIsNone(view.component.category)

        with self.assertRaises(NotFound):
            self.ledger.approve(req.id, "staff-1")
        self.assertEqual(self.ledger.get(req.id).status, PENDING)

    def test_list_with_components_resolves_existing(self) -> None:
        self.ledger.submit("student-1", self.board.id, 1)
        [view] = self.ledger.list_with_components("student-1")
        self.assertTrue(view.component.found)
        self.assertEqual(view.component.display_name, "Arduino Uno")
        self.assertEqual(view.component.category, "Boards")

    def test_status_counts(self) -> None:
        self.assertEqual(self.ledger.status_counts(), {PENDING: 0, APPROVED: 0, REJECTED: 0})
        a = self.ledger.submit("student-1", self.board.id, 1)
        b = self.ledger.submit("student-1", self.board.id, 1)
        self.ledger.submit("student-1", self.board.id, 1)
        self.ledger.approve(a.id, "staff-1")
        self.ledger.reject(b.id, "staff-1", "Duplicate")
        self.assertEqual(self.ledger.status_counts(), {PENDING: 1, APPROVED: 1, REJECTED: 1})

    def test_approval_logs_withdrawal_only_after_commit(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 2)
        with self.assertLogs("services", level="INFO") as logs:
            self.ledger.approve(req.id, "staff-1")

        self.assertFalse(any("Withdrew" in line for line in logs.output))
        self.assertTrue(any("approved by staff-1; withdrew 2" in line for line in logs.output))

    def test_describe_joins_component(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 3)
        view = self.ledger.describe(req.id)
        self.assertEqual(view.request.id, req.id)
        self.assertEqual(view.component.display_name, "Arduino Uno")

        self.store.remove(self.board.id)
        self.assertEqual(self.ledger.describe(req.id).component.display_name, UNKNOWN_COMPONENT)
        self.assertIsNone(self.ledger.describe(999))

    def test_notifications_name_component_and_requester(self) -> None:
        LoggingNotificationGateway(resolver=self.ledger.describe).attach(self.bus)
        with self.assertLogs("events.notifications", level="INFO") as logs:
            self.ledger.submit("student-1", self.board.id, 3)

        self.assertTrue(any("3 x Arduino Uno requested by student-1" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main(verbosity=2)
