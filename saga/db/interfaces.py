"""
Persistence interface definitions for Saga.

Uses Protocol classes to define the contract for snapshot storage.
Implementations can use real storage or in-memory mocks for testing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from saga.models.state import GameState


class SnapshotRepository(Protocol):
    """
    Interface for game state snapshot storage.

    Snapshots are keyed by the turn they were taken after. Rolling back
    restores the last successful turn and forgets everything after it.
    """

    def save(self, state: GameState) -> None:
        """Store a snapshot under its turn number, replacing any existing one."""
        ...

    def load(self, turn: int) -> GameState | None:
        """Get the snapshot taken after ``turn``."""
        ...

    def latest(self) -> GameState | None:
        """Get the most recent snapshot."""
        ...

    def turns(self) -> list[int]:
        """All stored turn numbers in ascending order."""
        ...

    def rollback_to(self, turn: int) -> GameState:
        """Drop every snapshot after ``turn`` and return the one for ``turn``."""
        ...
