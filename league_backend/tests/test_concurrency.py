"""
Concurrent capacity decisions: approvals racing for the last roster slots must
never push a team over its cap. Each worker uses its own connection.
"""
from __future__ import annotations

import threading

from league_backend.models import EnrollmentStatus
from league_backend.persistence.db import get_connection
from league_backend.services import WorkflowCoordinator
from league_backend.services.errors import CapacityExceeded
from league_backend.services.locks import roster_lock, roster_locks


def _race(db_path, calls):
    """Run each call(coordinator, conn) in its own thread at once; return (results, errors)."""
    barrier = threading.Barrier(len(calls))
    results, errors = [], []
    guard = threading.Lock()

    def worker(call):
        coordinator = WorkflowCoordinator()
        conn = get_connection(db_path)
        try:
            barrier.wait()
            result = call(coordinator, conn)
            with guard:
                results.append(result)
        except Exception as exc:  # collected for assertions
            with guard:
                errors.append(exc)
        finally:
            conn.close()

    threads = [threading.Thread(target=worker, args=(c,)) for c in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results, errors


def test_concurrent_enrollment_approvals_respect_cap(db_path, db_conn, coordinator, world, set_cap):
    set_cap(2)
    pending = [
        coordinator.submit_enrollment(db_conn, world.manager_a, p.id, world.championship.id, world.team_a.id)
        for p in world.players
    ]

    calls = [
        (lambda c, conn, eid=e.id: c.approve_enrollment(conn, world.director, eid))
        for e in pending
    ]
    results, errors = _race(db_path, calls)

    assert len(results) == 2
    assert len(errors) == 2
    assert all(isinstance(e, CapacityExceeded) for e in errors)
    assert coordinator.roster_summary(db_conn, world.championship.id, world.team_a.id).enabled_count == 2
    statuses = sorted(coordinator.get_enrollment(db_conn, e.id).status for e in pending)
    assert statuses == [EnrollmentStatus.ENABLED, EnrollmentStatus.ENABLED,
                        EnrollmentStatus.PENDING, EnrollmentStatus.PENDING]


def test_concurrent_transfer_completions_respect_destination_cap(
    db_path, db_conn, coordinator, world, set_cap, enable
):
    # three players at A, each with an origin-approved transfer to B; B has one free slot
    for p in world.players[:3]:
        enable(p.id, world.team_a.id)
    enable(world.players[3].id, world.team_b.id)
    set_cap(2)
    transfers = []
    for p in world.players[:3]:
        t = coordinator.request_transfer(
            db_conn, world.manager_b, p.id, world.championship.id, world.team_a.id, world.team_b.id
        )
        coordinator.approve_transfer_origin(db_conn, world.manager_a, t.id)
        transfers.append(t)

    calls = [
        (lambda c, conn, tid=t.id: c.approve_transfer_director(conn, world.director, tid))
        for t in transfers
    ]
    results, errors = _race(db_path, calls)

    assert len(results) == 1
    assert len(errors) == 2
    assert all(isinstance(e, CapacityExceeded) for e in errors)
    assert coordinator.roster_summary(db_conn, world.championship.id, world.team_b.id).enabled_count == 2
    assert coordinator.roster_summary(db_conn, world.championship.id, world.team_a.id).enabled_count == 2


def test_roster_lock_is_reentrant():
    with roster_lock("CH1", "TA"):
        with roster_lock("CH1", "TA"):
            pass


def test_roster_locks_deduplicates_keys():
    with roster_locks([("CH1", "TB"), ("CH1", "TA"), ("CH1", "TB")]):
        pass
