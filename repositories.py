"""
Repository layer

Keeps SQL isolated from the CLI/service logic to improve maintainability.
Functions here never commit; the service layer owns transaction boundaries.
"""

import sqlite3
from typing import Iterable, Optional

from component import Component
from stock_request import PENDING, StockRequest

_COMPONENT_COLUMNS = (
    "id, display_name, normalized_key, description, category, quantity_available, created_at, updated_at"
)
_REQUEST_COLUMNS = (
    "id, requester_id, component_id, quantity, reason, status, rejection_reason, reviewer_id, "
    "created_at, updated_at"
)


def _to_component(row: sqlite3.Row) -> Component:
    return Component(
        id=int(row["id"]),
        display_name=str(row["display_name"]),
        normalized_key=str(row["normalized_key"]),
        description=str(row["description"]),
        category=str(row["category"]),
        quantity_available=int(row["quantity_available"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _to_request(row: sqlite3.Row) -> StockRequest:
    return StockRequest(
        id=int(row["id"]),
        requester_id=str(row["requester_id"]),
        component_id=int(row["component_id"]),
        quantity=int(row["quantity"]),
        reason=row["reason"],
        status=str(row["status"]),
        rejection_reason=row["rejection_reason"],
        reviewer_id=row["reviewer_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


def create_component(conn: sqlite3.Connection, component: Component) -> int:
    # Parameterised query prevents SQL injection and avoids manual quoting/escaping.
    cur = conn.execute(
        """
        INSERT INTO components (display_name, normalized_key, description, category, quantity_available)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            component.display_name,
            component.normalized_key,
            component.description,
            component.category,
            component.quantity_available,
        ),
    )
    # SQLite should always provide a rowid for INSERTs into rowid tables.
    if cur.lastrowid is None:
        raise RuntimeError("Failed to create component: no rowid returned.")
    return int(cur.lastrowid)


def get_component(conn: sqlite3.Connection, component_id: int) -> Optional[Component]:
    row = conn.execute(
        f"SELECT {_COMPONENT_COLUMNS} FROM components WHERE id = ?",
        (component_id,),
    ).fetchone()
    return None if row is None else _to_component(row)


def get_component_by_key(conn: sqlite3.Connection, normalized_key: str) -> Optional[Component]:
    # Oldest row wins if legacy data ever holds duplicates for a key.
    row = conn.execute(
        f"SELECT {_COMPONENT_COLUMNS} FROM components WHERE normalized_key = ? ORDER BY id ASC LIMIT 1",
        (normalized_key,),
    ).fetchone()
    return None if row is None else _to_component(row)


def get_components_by_ids(conn: sqlite3.Connection, component_ids: Iterable[int]) -> dict[int, Component]:
    ids = sorted(set(component_ids))
    if not ids:
        return {}
    placeholders = ", ".join("?" for _ in ids)
    rows = conn.execute(
        f"SELECT {_COMPONENT_COLUMNS} FROM components WHERE id IN ({placeholders})",
        ids,
    ).fetchall()
    return {int(r["id"]): _to_component(r) for r in rows}


def list_components(conn: sqlite3.Connection, category: Optional[str] = None) -> list[Component]:
    # Consistent, human-friendly order: name A-Z ignoring case, then id.
    where = "WHERE category = ?" if category is not None else ""
    params = [category] if category is not None else []
    rows = conn.execute(
        f"SELECT {_COMPONENT_COLUMNS} FROM components {where} ORDER BY display_name COLLATE NOCASE ASC, id ASC",
        params,
    ).fetchall()
    return [_to_component(r) for r in rows]


def add_component_stock(
    conn: sqlite3.Connection,
    component_id: int,
    quantity: int,
    description: str,
    category: str,
) -> None:
    # Blank description/category keep the stored values.
    conn.execute(
        """
        UPDATE components
        SET quantity_available = quantity_available + ?,
            description = CASE WHEN ? <> '' THEN ? ELSE description END,
            category = CASE WHEN ? <> '' THEN ? ELSE category END,
            updated_at = datetime('now')
        WHERE id = ?
        """,
        (quantity, description, description, category, category, component_id),
    )


def update_component_quantity(conn: sqlite3.Connection, component_id: int, new_quantity: int) -> bool:
    cur = conn.execute(
        "UPDATE components SET quantity_available = ?, updated_at = datetime('now') WHERE id = ?",
        (new_quantity, component_id),
    )
    return cur.rowcount == 1


def decrement_component_quantity(conn: sqlite3.Connection, component_id: int, amount: int) -> bool:
    """
    Compare-and-subtract in one statement.

    Returns False when the row is missing or holds fewer than `amount` units;
    the caller tells those apart.
    """
    cur = conn.execute(
        """
        UPDATE components
        SET quantity_available = quantity_available - ?, updated_at = datetime('now')
        WHERE id = ? AND quantity_available >= ?
        """,
        (amount, component_id, amount),
    )
    return cur.rowcount == 1


def delete_component(conn: sqlite3.Connection, component_id: int) -> bool:
    cur = conn.execute("DELETE FROM components WHERE id = ?", (component_id,))
    return cur.rowcount == 1


def list_categories(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute("SELECT DISTINCT category FROM components ORDER BY category ASC").fetchall()
    return [str(r["category"]) for r in rows]


def list_low_stock(conn: sqlite3.Connection, threshold: int) -> list[Component]:
    # Most depleted first, then name A-Z.
    rows = conn.execute(
        f"""
        SELECT {_COMPONENT_COLUMNS}
        FROM components
        WHERE quantity_available <= ?
        ORDER BY quantity_available ASC, display_name COLLATE NOCASE ASC, id ASC
        """,
        (threshold,),
    ).fetchall()
    return [_to_component(r) for r in rows]


def component_totals(conn: sqlite3.Connection) -> tuple[int, int]:
    """(number of components, total units in stock)"""
    row = conn.execute(
        "SELECT COUNT(*) AS n, COALESCE(SUM(quantity_available), 0) AS units FROM components"
    ).fetchone()
    return int(row["n"]), int(row["units"])


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def create_request(conn: sqlite3.Connection, request: StockRequest) -> int:
    cur = conn.execute(
        """
        INSERT INTO requests (requester_id, component_id, quantity, reason, status)
        VALUES (?, ?, ?, ?, ?)
        """,
        (request.requester_id, request.component_id, request.quantity, request.reason, PENDING),
    )
    if cur.lastrowid is None:
        raise RuntimeError("Failed to create request: no rowid returned.")
    return int(cur.lastrowid)


def get_request(conn: sqlite3.Connection, request_id: int) -> Optional[StockRequest]:
    row = conn.execute(
        f"SELECT {_REQUEST_COLUMNS} FROM requests WHERE id = ?",
        (request_id,),
    ).fetchone()
    return None if row is None else _to_request(row)


def list_requests(
    conn: sqlite3.Connection,
    requester_id: Optional[str] = None,
    status: Optional[str] = None,
) -> list[StockRequest]:
    # Newest first; id breaks ties within the same second.
    clauses = []
    params: list = []
    if requester_id is not None:
        clauses.append("requester_id = ?")
        params.append(requester_id)
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(
        f"SELECT {_REQUEST_COLUMNS} FROM requests {where} ORDER BY created_at DESC, id DESC",
        params,
    ).fetchall()
    return [_to_request(r) for r in rows]


def finalize_request(
    conn: sqlite3.Connection,
    request_id: int,
    new_status: str,
    reviewer_id: str,
    rejection_reason: Optional[str] = None,
) -> bool:
    """
    Moves a request out of pending, only if it is still pending.

    Returns False when another reviewer already decided it.
    """
    cur = conn.execute(
        """
        UPDATE requests
        SET status = ?, reviewer_id = ?, rejection_reason = ?, updated_at = datetime('now')
        WHERE id = ? AND status = ?
        """,
        (new_status, reviewer_id, rejection_reason, request_id, PENDING),
    )
    return cur.rowcount == 1


def count_requests_by_status(conn: sqlite3.Connection) -> dict[str, int]:
    rows = conn.execute("SELECT status, COUNT(*) AS n FROM requests GROUP BY status").fetchall()
    return {str(r["status"]): int(r["n"]) for r in rows}
