"""
app/services/task_queue.py

Per-owner priority queues and the owner lock registry that keeps at most one
import worker active per owner.
"""

from __future__ import annotations

import heapq
import threading
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

from db.models.import_task import TASK_TYPE_PRIORITY, ImportTask

_UNKNOWN_TYPE_PRIORITY = 999


@dataclass(frozen=True, order=True)
class QueuedTask:
    """
    Detached reference to a runnable task, ordered by type priority then age.
    """

    priority: int
    created_at: datetime | None = field(compare=False)
    sequence: int
    task_id: uuid.UUID = field(compare=False)
    owner_id: uuid.UUID = field(compare=False)
    task_type: str = field(compare=False)


class OwnerTaskQueue:
    """
    One priority queue per owner: merchant before locations before catalog,
    regardless of the order the store returned tasks in.
    """

    def __init__(self) -> None:
        self._queues: dict[uuid.UUID, list[QueuedTask]] = {}
        self._sequence = 0

    @classmethod
    def from_tasks(cls, tasks: Iterable[ImportTask]) -> OwnerTaskQueue:
        queue = cls()
        # Age breaks ties inside one priority; sequence keeps the heap total.
        for task in sorted(tasks, key=lambda t: (t.created_at is None, t.created_at or datetime.min)):
            queue.push(task)
        return queue

    def push(self, task: ImportTask) -> None:
        entry = QueuedTask(
            priority=TASK_TYPE_PRIORITY.get(task.task_type, _UNKNOWN_TYPE_PRIORITY),
            created_at=task.created_at,
            sequence=self._sequence,
            task_id=task.id,
            owner_id=task.owner_id,
            task_type=task.task_type,
        )
        self._sequence += 1
        heapq.heappush(self._queues.setdefault(task.owner_id, []), entry)

    def owners(self) -> list[uuid.UUID]:
        return list(self._queues)

    def pop(self, owner_id: uuid.UUID) -> QueuedTask | None:
        queue = self._queues.get(owner_id)
        if not queue:
            return None
        return heapq.heappop(queue)

    def drain(self, owner_id: uuid.UUID) -> Iterator[QueuedTask]:
        while (entry := self.pop(owner_id)) is not None:
            yield entry

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._queues.values())


class OwnerLockRegistry:
    """
    Process-wide mutual exclusion per owner key.

    A lock is kept only while some caller holds or waits on it, so the
    registry does not grow with every owner ever imported.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[uuid.UUID, threading.Lock] = {}
        self._users: dict[uuid.UUID, int] = {}

    def _checkout(self, owner_id: uuid.UUID) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[owner_id] = lock
            self._users[owner_id] = self._users.get(owner_id, 0) + 1
            return lock

    def _checkin(self, owner_id: uuid.UUID) -> None:
        with self._guard:
            remaining = self._users[owner_id] - 1
            if remaining:
                self._users[owner_id] = remaining
            else:
                del self._users[owner_id]
                del self._locks[owner_id]

    @contextmanager
    def hold(self, owner_id: uuid.UUID, *, blocking: bool = True) -> Iterator[bool]:
        """
        Acquire the owner's lock for the duration of the block.

        Yields False without waiting when ``blocking`` is False and another
        worker already holds the lock.
        """

        lock = self._checkout(owner_id)
        try:
            acquired = lock.acquire(blocking=blocking)
            try:
                yield acquired
            finally:
                if acquired:
                    lock.release()
        finally:
            self._checkin(owner_id)

    def is_held(self, owner_id: uuid.UUID) -> bool:
        with self._guard:
            lock = self._locks.get(owner_id)
            return lock is not None and lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
