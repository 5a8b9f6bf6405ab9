"""
classification/positions.py
---------------------------
Task position allocation within a board+status column.

Positions are ``max(position) + 1`` (0 for an empty column).  Reading the
max and inserting the task are two steps, so concurrent creations in the
same column can collide.  ``MaxPlusOneAllocator`` accepts that race;
``SerializedPositionAllocator`` closes it by holding a per-column lock for
the rest of the caller's transaction.
"""

import logging
import threading
import zlib
from collections import defaultdict
from typing import Dict, Protocol, Tuple

from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from classification.models import Task

log = logging.getLogger("classification.positions")


class PositionAllocator(Protocol):
    def next_position(self, session: Session, board_id: int, status: str) -> int: ...

    def release(self, board_id: int, status: str) -> None: ...


def _current_max(session: Session, board_id: int, status: str):
    return session.scalar(
        select(func.max(Task.position)).where(Task.board_id == board_id, Task.status == status)
    )


class MaxPlusOneAllocator:
    """Plain read-then-write; concurrent requests may compute the same position."""

    def next_position(self, session: Session, board_id: int, status: str) -> int:
        current = _current_max(session, board_id, status)
        return 0 if current is None else current + 1

    def release(self, board_id: int, status: str) -> None:
        return None


class SerializedPositionAllocator:
    """Serialize allocation per board+status.

    Holds a process-local lock from ``next_position`` until ``release``
    (called by the materializer after commit/rollback).  On PostgreSQL a
    transaction-scoped advisory lock additionally serializes other
    processes; it is released automatically when the transaction ends.
    """

    def __init__(self) -> None:
        self._locks: Dict[Tuple[int, str], threading.Lock] = defaultdict(threading.Lock)
        self._guard = threading.Lock()

    def _lock_for(self, board_id: int, status: str) -> threading.Lock:
        with self._guard:
            return self._locks[(board_id, status)]

    def next_position(self, session: Session, board_id: int, status: str) -> int:
        self._lock_for(board_id, status).acquire()
        if session.get_bind().dialect.name == "postgresql":
            key = zlib.crc32(f"tasks:{board_id}:{status}".encode("utf-8"))
            session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})
        current = _current_max(session, board_id, status)
        return 0 if current is None else current + 1

    def release(self, board_id: int, status: str) -> None:
        lock = self._lock_for(board_id, status)
        if lock.locked():
            lock.release()


def build_position_allocator(name: str) -> PositionAllocator:
    if name == "max_plus_one":
        log.info("position_allocator_unserialized")
        return MaxPlusOneAllocator()
    return SerializedPositionAllocator()
