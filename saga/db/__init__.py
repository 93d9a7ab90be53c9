"""
Persistence layer for Saga.

Game state is persisted as whole snapshots, one per completed turn.

Implementations:
- InMemorySnapshotRepository: For testing and rollback within a session
"""

from __future__ import annotations

from saga.db.interfaces import SnapshotRepository
from saga.db.memory import InMemorySnapshotRepository

__all__ = [
    # Protocol interfaces
    "SnapshotRepository",
    # In-memory implementations
    "InMemorySnapshotRepository",
]
