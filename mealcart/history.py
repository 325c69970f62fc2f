"""
Undo/redo history for meal plans.

A bounded list of serialized MealPlan snapshots plus a cursor. Pushing after
an undo discards the redo branch; once the list is full the oldest snapshot
is evicted.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from mealcart.data.models import HistoryEntry, MealPlan

logger = logging.getLogger(__name__)


class MealPlanHistory:
    """Snapshot stack over meal-plan state."""

    def __init__(self, max_size: int = 50):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: List[HistoryEntry] = []
        self._index = -1
        self._counter = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def current_index(self) -> int:
        return self._index

    def push_state(self, plan: MealPlan, action: str) -> HistoryEntry:
        """Record a new state after the current one, dropping anything redoable."""
        del self._entries[self._index + 1:]

        self._counter += 1
        entry = HistoryEntry(
            id=f"history-{self._counter}",
            state=plan.to_dict(),
            timestamp=datetime.now(),
            action=action,
        )
        self._entries.append(entry)

        overflow = len(self._entries) - self.max_size
        if overflow > 0:
            del self._entries[:overflow]
        self._index = len(self._entries) - 1
        logger.debug(f"[HISTORY] pushed '{action}' ({len(self._entries)}/{self.max_size})")
        return entry

    def undo(self) -> Optional[MealPlan]:
        if not self.can_undo():
            return None
        self._index -= 1
        logger.debug(f"[HISTORY] undo -> '{self._entries[self._index].action}'")
        return MealPlan.from_dict(self._entries[self._index].state)

    def redo(self) -> Optional[MealPlan]:
        if not self.can_redo():
            return None
        self._index += 1
        logger.debug(f"[HISTORY] redo -> '{self._entries[self._index].action}'")
        return MealPlan.from_dict(self._entries[self._index].state)

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return 0 <= self._index < len(self._entries) - 1

    def initialize_history(self, plan: MealPlan) -> None:
        """Seed with the starting state. Does nothing if history already exists."""
        if self._entries:
            return
        self.push_state(plan, "Initial state")

    def get_current_state(self) -> Optional[MealPlan]:
        if self._index < 0:
            return None
        return MealPlan.from_dict(self._entries[self._index].state)

    def clear_history(self) -> None:
        self._entries.clear()
        self._index = -1

    def get_history_summary(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": entry.id,
                "action": entry.action,
                "timestamp": entry.timestamp,
                "is_current": position == self._index,
            }
            for position, entry in enumerate(self._entries)
        ]
