from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from apiexplorer.classifier.response_classifier import union_keys
from apiexplorer.naming.resolver import display_name

UP = "up"
DOWN = "down"


@dataclass
class Column:
    key: str              # raw JSON property name, unique within a result set
    friendly_name: str    # display label, user-editable
    visible: bool = True
    order: int = 0


class ColumnModel:
    """
    User-adjustable view over the fields of one result set.

    A fresh model is derived for every successful non-discovery query; it is
    never merged with the previous one. Rename and visibility changes leave
    order untouched. Reordering swaps adjacent columns one step at a time.
    """

    def __init__(self, columns: Optional[List[Column]] = None) -> None:
        self._columns: List[Column] = list(columns or [])

    @classmethod
    def derive_from_rows(
        cls, rows: List[Any], friendly_names: Optional[Dict[str, str]] = None
    ) -> "ColumnModel":
        names = friendly_names or {}
        return cls([
            Column(key=key, friendly_name=display_name(names, key), visible=True, order=index)
            for index, key in enumerate(union_keys(rows))
        ])

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def columns(self) -> List[Column]:
        """Columns sorted by order; ties keep insertion sequence."""
        return sorted(self._columns, key=lambda c: c.order)

    def visible_columns(self) -> List[Column]:
        return [c for c in self.columns if c.visible]

    def get(self, key: str) -> Column:
        for col in self._columns:
            if col.key == key:
                return col
        raise ValueError(f"Column not found: {key}")

    def __len__(self) -> int:
        return len(self._columns)

    def to_list(self) -> List[Dict[str, Any]]:
        return [
            {"key": c.key, "friendly_name": c.friendly_name, "visible": c.visible, "order": c.order}
            for c in self.columns
        ]

    def snapshot(self) -> List[Column]:
        return [replace(c) for c in self.columns]

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def toggle_visibility(self, key: str) -> Column:
        col = self.get(key)
        col.visible = not col.visible
        return col

    def rename(self, key: str, new_name: str) -> Column:
        col = self.get(key)
        col.friendly_name = new_name
        return col

    def reorder(self, key: str, direction: str) -> None:
        """
        Swap the column with its neighbour in `direction` ("up" or "down").
        No-op at the boundaries.
        """
        if direction not in (UP, DOWN):
            raise ValueError(f"Invalid direction: {direction!r}")

        ordered = self.columns
        index = next((i for i, c in enumerate(ordered) if c.key == key), None)
        if index is None:
            raise ValueError(f"Column not found: {key}")

        swap_index = index - 1 if direction == UP else index + 1
        if swap_index < 0 or swap_index >= len(ordered):
            return

        ordered[index], ordered[swap_index] = ordered[swap_index], ordered[index]
        # Renumber so order stays dense after ties.
        for position, col in enumerate(ordered):
            col.order = position
