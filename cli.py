"""
Command-line interface (CLI) for the lab inventory.

A menu loop over InventoryStore/RequestLedger. Lifecycle events are shown
to the operator via EventBus subscriptions and logged by the notification
gateway.
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional

import config
from component import Component
from db import get_connection, init_db
from events import LIFECYCLE_EVENTS, Event, EventBus, LoggingNotificationGateway
from exceptions import InsufficientStock, InventoryError
from logging_config import configure_logging
from services import InventoryStore, RequestLedger
from stock_request import RequestView
from user import User

logger = logging.getLogger(__name__)


def _prompt_non_empty(prompt: str) -> str:
    # Keep prompting until user provides a non-empty string.
    while True:
        value = input(prompt).strip()
        if value:
            return value
        print("Input cannot be empty. Please try again.")


def _prompt_int(prompt: str, *, min_value: Optional[int] = None, default: Optional[int] = None) -> int:
    # Keep prompting until user provides a valid integer (with optional min constraint).
    while True:
        raw = input(prompt).strip()
        if raw == "" and default is not None:
            return default
        try:
            value = int(raw)
        except ValueError:
            print("Please enter a valid whole number (integer).")
            continue

        if min_value is not None and value < min_value:
            print(f"Please enter a value >= {min_value}.")
            continue

        return value


def _prompt_category(inventory: InventoryStore) -> Optional[str]:
    # Blank input means all categories.
    categories = inventory.categories()
    if categories:
        print(f"Categories: {', '.join(categories)}")
    return input("Category filter (blank for all): ").strip() or None


def _print_component(c: Component) -> None:
    low_flag = "YES" if c.is_low_stock() else "NO"
    print(
        f"- id={c.id} | name={c.display_name} | category={c.category} | "
        f"qty={c.quantity_available} | low={low_flag}"
    )


def _print_request(view: RequestView) -> None:
    r = view.request
    line = (
        f"- id={r.id} | {r.created_at} | requester={r.requester_id} | "
        f"component={view.component.display_name} | qty={r.quantity} | status={r.status}"
    )
    if r.rejection_reason:
        line += f" | reason={r.rejection_reason}"
    print(line)


def _handle_lifecycle_event(event: Event) -> None:
    # UI prints alerts, but service layer stays UI-agnostic.
    print(f"\n[NOTICE] {event.name}: request id={event.payload.get('request_id', '<unknown>')}\n")


def _menu(user: User) -> list[str]:
    options = [
        "List components",
        "Search components",
        "Request a component",
        "My requests",
    ]
    if user.can_review:
        options += [
            "Stock intake (add / merge)",
            "Set component quantity",
            "Remove component",
            "All requests (optionally by status)",
            "Approve request",
            "Reject request",
            "Inventory summary",
        ]
    return options + ["Exit"]


def run(db_path: Optional[str] = None) -> None:
    print("Lab Component Inventory")
    print("-----------------------")

    user_id = _prompt_non_empty("Enter your user id: ")
    user_name = _prompt_non_empty("Enter your name: ")
    role = input("Role (student/staff/admin) [student]: ").strip() or "student"
    try:
        user = User(id=user_id, name=user_name, role=role)
    except InventoryError as e:
        print(f"Error: {e}")
        return

    bus = EventBus()
    for name in LIFECYCLE_EVENTS:
        bus.subscribe(name, _handle_lifecycle_event)

    conn = get_connection(db_path)
    # Ensure schema exists before the user can interact.
    init_db(conn)
    inventory = InventoryStore(conn)
    ledger = RequestLedger(inventory, bus)
    LoggingNotificationGateway(resolver=ledger.describe).attach(bus)

    try:
        while True:
            options = _menu(user)
            print("\nMenu:")
            for i, label in enumerate(options, start=1):
                print(f" {i}) {label}")

            choice = _prompt_int("Choose an option: ", min_value=1)
            if choice > len(options):
                print("Invalid choice. Please try again.")
                continue
            action = options[choice - 1]

            try:
                if action == "Exit":
                    print("Goodbye.")
                    return

                elif action == "List components":
                    components = inventory.list_components(_prompt_category(inventory))
                    if not components:
                        print("No components found.")
                    for c in components:
                        _print_component(c)

                elif action == "Search components":
                    query = input("Search: ")
                    found = inventory.search(query, _prompt_category(inventory))
                    if not found:
                        print("No matching components.")
                    for c in found:
                        _print_component(c)

                elif action == "Request a component":
                    component_id = _prompt_int("Component id: ", min_value=1)
                    quantity = _prompt_int("Quantity: ", min_value=1)
                    reason = input("Reason (optional): ").strip()
                    request = ledger.submit(user.id, component_id, quantity, reason)
                    print(f"Request id={request.id} submitted.")

                elif action == "My requests":
                    views = ledger.list_with_components(requester_id=user.id)
                    if not views:
                        print("No requests found.")
                    for v in views:
                        _print_request(v)

                elif action == "Stock intake (add / merge)":
                    name = _prompt_non_empty("Component name: ")
                    description = input("Description (optional): ").strip()
                    category = input(f"Category [{config.DEFAULT_CATEGORY}]: ").strip()
                    quantity = _prompt_int("Quantity received (> 0): ", min_value=1)
                    result = inventory.intake(name, description, category, quantity)
                    verb = "Merged into" if result.action == "merged" else "Created"
                    print(f"{verb} component id={result.component.id} (qty={result.component.quantity_available}).")

                elif action == "Set component quantity":
                    component_id = _prompt_int("Component id: ", min_value=1)
                    quantity = _prompt_int("New quantity (>= 0): ", min_value=0)
                    inventory.set_quantity(component_id, quantity)
                    print("Quantity updated.")

                elif action == "Remove component":
                    component_id = _prompt_int("Component id: ", min_value=1)
                    inventory.remove(component_id)
                    print("Component removed.")

                elif action == "All requests (optionally by status)":
                    status = input("Status (pending/approved/rejected, blank for all): ").strip() or None
                    views = ledger.list_with_components(status=status)
                    if not views:
                        print("No requests found.")
                    for v in views:
                        _print_request(v)

                elif action == "Approve request":
                    request_id = _prompt_int("Request id: ", min_value=1)
                    ledger.approve(request_id, user.id)
                    print("Request approved.")

                elif action == "Reject request":
                    request_id = _prompt_int("Request id: ", min_value=1)
                    reason = input("Rejection reason: ")
                    ledger.reject(request_id, user.id, reason)
                    print("Request rejected.")

                elif action == "Inventory summary":
                    summary = inventory.summary()
                    counts = ledger.status_counts()
                    print(
                        f"Components: {summary.total_components} | Items in stock: {summary.total_units} | "
                        f"Low stock: {summary.low_stock_components}"
                    )
                    print(
                        f"Requests: pending={counts['pending']} | approved={counts['approved']} | "
                        f"rejected={counts['rejected']}"
                    )
                    for c in inventory.list_low_stock():
                        _print_component(c)

            except InsufficientStock as e:
                print(f"Cannot approve: insufficient quantity available ({e.available} left).")
            except InventoryError as e:
                print(f"Error: {e}")

    except KeyboardInterrupt:
        print("\nExiting...")
    finally:
        conn.close()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Lab component inventory and request workflow.")
    parser.add_argument("--db", default=None, help=f"SQLite database path (default: {config.DB_PATH})")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    for issue in config.validate_config():
        logger.warning("Configuration issue: %s", issue)
    run(args.db)


if __name__ == "__main__":
    main()
