"""
Component domain model.

This file defines the core data + validation rules for a catalog entry.
"""

from dataclasses import dataclass
from typing import Optional

import config
from exceptions import InvalidInput
from matching import normalize


@dataclass
class Component:
    """
    Represents a stocked lab component (e.g. "Arduino Uno").

    Fields are kept simple so they map cleanly to SQLite columns.
    `normalized_key` is derived from `display_name` when not supplied.
    """

    id: Optional[int]
    display_name: str
    description: str = ""
    category: str = config.DEFAULT_CATEGORY
    quantity_available: int = 0
    normalized_key: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self) -> None:
        # Protects service/repository layers from bad data.
        if not isinstance(self.display_name, str) or not self.display_name.strip():
            raise InvalidInput("Component name must be a non-empty string.")
        if not self.normalized_key:
            self.normalized_key = normalize(self.display_name)
        if not self.normalized_key:
            raise InvalidInput(
                f"Component name '{self.display_name}' has no letters or digits to match on."
            )
        if not isinstance(self.quantity_available, int) or self.quantity_available < 0:
            raise InvalidInput("Quantity must be an integer >= 0.")
        self.category = (self.category or "").strip() or config.DEFAULT_CATEGORY
        self.description = self.description or ""

    def is_low_stock(self, threshold: int = config.LOW_STOCK_THRESHOLD) -> bool:
        """True when quantity is at/below the low-stock threshold."""
        return self.quantity_available <= threshold
