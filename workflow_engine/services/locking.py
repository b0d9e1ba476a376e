"""
Per-workflow serialization for lifecycle mutations and syncs.

Three layers, outermost first:
    1. an in-process ``threading.RLock`` per workflow id (this module)
    2. ``SELECT ... FOR UPDATE`` on the workflow row (no-op on SQLite)
    3. ``Workflow.version`` as SQLAlchemy ``version_id_col``: a writer that
       lost the race gets ``StaleDataError`` at flush
"""

import threading
from contextlib import contextmanager

_registry_lock = threading.Lock()
_locks: dict[str, threading.RLock] = {}


def workflow_lock(workflow_id: str) -> threading.RLock:
    with _registry_lock:
        lock = _locks.get(workflow_id)
        if lock is None:
            lock = _locks[workflow_id] = threading.RLock()
        return lock


@contextmanager
def locked(workflow_id: str):
    lock = workflow_lock(workflow_id)
    with lock:
        yield


def release(workflow_id: str) -> None:
    """Forget the lock of a deleted workflow."""
    with _registry_lock:
        _locks.pop(workflow_id, None)
