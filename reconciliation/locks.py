"""
Per-job locking.

State-mutating orchestrator operations on the same job id are serialized by
a re-entrant lock owned by that id. Different job ids never share a lock, and
reads take no lock at all.

A lock only exists while some thread holds or waits on it, so the registry
stays empty between operations no matter how many jobs come and go.

Locks only cover threads in this process; there is no cross-process
coordination.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class _Entry:
    __slots__ = ('lock', 'users')

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class JobLockRegistry:
    """Hands out one RLock per job id.

    Re-entrant so an operation holding a job's lock can call another locked
    operation on the same job (auto-extension inside a cycle).

    Usage:
        locks = JobLockRegistry()
        with locks.hold(job_id):
            ...  # read-modify-write the job
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def _checkout(self, job_id: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(job_id)
            if entry is None:
                entry = _Entry()
                self._entries[job_id] = entry
            entry.users += 1
            return entry

    def _checkin(self, job_id: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[job_id]

    @contextmanager
    def hold(self, job_id: str) -> Iterator[None]:
        entry = self._checkout(job_id)
        try:
            with entry.lock:
                yield
        finally:
            self._checkin(job_id, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


__all__ = ['JobLockRegistry']
