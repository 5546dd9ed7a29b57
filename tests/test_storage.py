import os
import sqlite3
import tempfile
import unittest

from db import get_connection, init_db, transaction
from events import NEW_REQUEST, REQUEST_APPROVED, EventBus
from exceptions import StorageError
from services import InventoryStore, RequestLedger
from stock_request import PENDING


def _count_components(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM components").fetchone()[0]


class TransactionRollbackTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = get_connection(":memory:")
        init_db(self.conn)

    def tearDown(self) -> None:
        self.conn.close()

    def test_error_inside_block_rolls_back_everything(self) -> None:
        with self.assertRaises(sqlite3.IntegrityError):
            with transaction(self.conn):
                self.conn.execute(
                    "INSERT INTO components (display_name, normalized_key, quantity_available) "
                    "VALUES ('Buzzer', 'buzzer', 3)"
                )
                self.conn.execute("UPDATE components SET quantity_available = -1")

        self.assertFalse(self.conn.in_transaction)
        self.assertEqual(_count_components(self.conn), 0)

        store = InventoryStore(self.conn)
        store.intake("Buzzer", quantity=3)
        self.assertEqual(_count_components(self.conn), 1)

    def test_inner_block_joins_outer_transaction(self) -> None:
        with self.assertRaises(RuntimeError):
            with transaction(self.conn):
                with transaction(self.conn):
                    self.conn.execute(
                        "INSERT INTO components (display_name, normalized_key) VALUES ('LED', 'led')"
                    )
                # Still inside the outer transaction: nothing committed yet.
                self.assertTrue(self.conn.in_transaction)
                raise RuntimeError("abort")

        self.assertEqual(_count_components(self.conn), 0)

    def test_database_errors_surface_as_storage_error(self) -> None:
        bare = get_connection(":memory:")
        try:
            with self.assertRaises(StorageError):
                InventoryStore(bare).intake("Buzzer", quantity=1)
            self.assertFalse(bare.in_transaction)
        finally:
            bare.close()


class FailedCommitTests(unittest.TestCase):
    """A reader holding a shared lock makes the writer's COMMIT fail with SQLITE_BUSY."""

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, "inventory.db")
        self.conn = get_connection(self.db_path, timeout=0.1)
        init_db(self.conn)
        self.bus = EventBus()
        self.events = []
        for name in (NEW_REQUEST, REQUEST_APPROVED):
            self.bus.subscribe(name, self.events.append)
        self.store = InventoryStore(self.conn)
        self.ledger = RequestLedger(self.store, self.bus)
        self.board = self.store.intake("Arduino Uno", quantity=10).component
        self.reader = get_connection(self.db_path, timeout=0.1)

    def tearDown(self) -> None:
        self.reader.close()
        self.conn.close()
        self.tmp.cleanup()

    def _hold_read_lock(self) -> None:
        self.reader.execute("BEGIN")
        self.reader.execute("SELECT COUNT(*) FROM components").fetchone()

    def test_failed_commit_rolls_back_and_connection_recovers(self) -> None:
        self._hold_read_lock()
        with self.assertRaises(StorageError):
            self.store.set_quantity(self.board.id, 3)

        self.assertFalse(self.conn.in_transaction)
        self.assertEqual(self.store.get(self.board.id).quantity_available, 10)

        self.reader.rollback()
        self.assertEqual(self.store.set_quantity(self.board.id, 7).quantity_available, 7)

        other = get_connection(self.db_path)
        try:
            row = other.execute(
                "SELECT quantity_available FROM components WHERE id = ?", (self.board.id,)
            ).fetchone()
            self.assertEqual(row[0], 7)
        finally:
            other.close()

    def test_failed_commit_of_approval_publishes_nothing(self) -> None:
        req = self.ledger.submit("student-1", self.board.id, 4)
        self.events.clear()

        self._hold_read_lock()
        with self.assertRaises(StorageError):
            self.ledger.approve(req.id, "staff-1")
        self.reader.rollback()

        self.assertEqual(self.events, [])
        self.assertEqual(self.ledger.get(req.id).status, PENDING)
        self.assertEqual(self.store.get(self.board.id).quantity_available, 10)


if __name__ == "__main__":
    unittest.main(verbosity=2)
