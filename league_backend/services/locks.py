"""
Per-(championship, team) serialization for roster-capacity decisions.

Approving an enrollment and completing a transfer both read the enabled count and
then write a new enabled row. Two such decisions for the same roster must not
interleave, or both can observe a free slot and push the roster over its cap.

Lock order: roster_lock(...) first, then db.transaction(). When a decision touches
two rosters, roster_locks(...) acquires them in sorted key order.

These locks are process-local (threading). Across processes sharing the database,
the BEGIN IMMEDIATE write transaction is what serializes the count and the write.
"""
from __future__ import annotations

import logging
from contextlib import ExitStack, contextmanager
from threading import Lock, RLock
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

RosterKey = tuple[str, str]  # (championship_id, team_id)

_REGISTRY_LOCK = Lock()
_ROSTER_LOCKS: dict[RosterKey, RLock] = {}


def _lock_for(key: RosterKey) -> RLock:
    with _REGISTRY_LOCK:
        lock = _ROSTER_LOCKS.get(key)
        if lock is None:
            lock = RLock()
            _ROSTER_LOCKS[key] = lock
        return lock


@contextmanager
def roster_lock(championship_id: str, team_id: str) -> Iterator[None]:
    """Hold the mutual-exclusion scope for one (championship, team) roster."""
    key = (championship_id, team_id)
    lock = _lock_for(key)
    lock.acquire()
    logger.debug("roster lock acquired championship=%s team=%s", championship_id, team_id)
    try:
        yield
    finally:
        lock.release()


@contextmanager
def roster_locks(keys: Iterable[RosterKey]) -> Iterator[None]:
    """Hold several roster scopes at once, acquired in a fixed order."""
    with ExitStack() as stack:
        for championship_id, team_id in sorted(set(keys)):
            stack.enter_context(roster_lock(championship_id, team_id))
        yield
