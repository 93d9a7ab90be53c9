"""
In-memory implementation of the snapshot repository for testing.

Stores deep copies in a dictionary, so callers can keep mutating their
own state objects without touching what was saved.
"""

from __future__ import annotations

from saga.models.state import GameState


class InMemorySnapshotRepository:
    """In-memory implementation of SnapshotRepository."""

    def __init__(self) -> None:
        self._snapshots: dict[int, GameState] = {}

    def save(self, state: GameState) -> None:
        """Store a snapshot under its turn number, replacing any existing one."""
        self._snapshots[state.turn_count] = state.model_copy(deep=True)

    def load(self, turn: int) -> GameState | None:
        """Get the snapshot taken after ``turn``."""
        snapshot = self._snapshots.get(turn)
        return snapshot.model_copy(deep=True) if snapshot is not None else None

    def latest(self) -> GameState | None:
        """Get the most recent snapshot."""
        if not self._snapshots:
            return None
        return self.load(max(self._snapshots))

    def turns(self) -> list[int]:
        """All stored turn numbers in ascending order."""
        return sorted(self._snapshots)

    def rollback_to(self, turn: int) -> GameState:
        """Drop every snapshot after ``turn`` and return the one for ``turn``."""
        if turn not in self._snapshots:
            raise KeyError(f"No snapshot for turn {turn}")
        for later in [t for t in self._snapshots if t > turn]:
            del self._snapshots[later]
        return self._snapshots[turn].model_copy(deep=True)
