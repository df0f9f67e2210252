"""
Tests for enrollments through the workflow coordinator: submission rules,
decisions, roster cap, versions and request keys.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from league_backend.models import ChampionshipStatus, EnrollmentStatus
from league_backend.persistence.repositories import (
    ChampionshipRepository,
    EnrollmentRepository,
    IdempotencyRepository,
)
from league_backend.services.errors import (
    AuthorizationError,
    CapacityExceeded,
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)


# ---------- Submit ----------


def test_submit_creates_pending_with_registration_category(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    assert e.status == EnrollmentStatus.PENDING
    assert e.active
    assert e.category_id == world.category.id
    # defaults from the player record
    assert e.jersey_number == 9
    assert e.position == "delantera"
    assert e.version == 1


def test_submit_overrides_player_defaults(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(
        db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id,
        jersey_number=10, position="arquera",
    )
    assert e.jersey_number == 10
    assert e.position == "arquera"


def test_submit_rejects_negative_jersey_number(db_conn, coordinator, world):
    with pytest.raises(ValidationError):
        coordinator.submit_enrollment(
            db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id, jersey_number=-1
        )


def test_submit_requires_open_championship(db_conn, coordinator, world):
    ChampionshipRepository().update_status(db_conn, world.championship.id, ChampionshipStatus.IN_PROGRESS.value)
    with pytest.raises(ValidationError):
        coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)


def test_submit_requires_confirmed_registration(db_conn, coordinator, world):
    with pytest.raises(ValidationError):
        coordinator.submit_enrollment(db_conn, world.director, "P1", world.championship.id, world.team_c.id)
    assert coordinator.enrollment_history(db_conn, "P1") == []


def test_submit_rejects_other_category(db_conn, coordinator, world):
    with pytest.raises(ValidationError):
        coordinator.submit_enrollment(
            db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id,
            category_id=world.other_category.id,
        )


def test_submit_rejects_team_of_other_league(db_conn, coordinator, world):
    with pytest.raises(ValidationError):
        coordinator.submit_enrollment(db_conn, world.master, "P1", world.championship.id, world.foreign.id)


def test_submit_unknown_player(db_conn, coordinator, world):
    with pytest.raises(NotFoundError):
        coordinator.submit_enrollment(db_conn, world.manager_a, "nobody", world.championship.id, world.team_a.id)


def test_submit_unknown_championship(db_conn, coordinator, world):
    with pytest.raises(NotFoundError):
        coordinator.submit_enrollment(db_conn, world.manager_a, "P1", "nope", world.team_a.id)


def test_second_open_enrollment_refused(db_conn, coordinator, world):
    coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    with pytest.raises(ValidationError):
        coordinator.submit_enrollment(db_conn, world.manager_b, "P1", world.championship.id, world.team_b.id)


def test_manager_cannot_submit_for_other_team(db_conn, coordinator, world):
    with pytest.raises(AuthorizationError):
        coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_b.id)


def test_foreign_director_cannot_submit(db_conn, coordinator, world):
    with pytest.raises(AuthorizationError):
        coordinator.submit_enrollment(
            db_conn, world.foreign_director, "P1", world.championship.id, world.team_a.id
        )


# ---------- Decide ----------


def test_director_approves(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    approved = coordinator.approve_enrollment(db_conn, world.director, e.id, notes="ok")
    assert approved.status == EnrollmentStatus.ENABLED
    assert approved.decided_by == world.director.user_id
    assert approved.decided_at is not None
    assert approved.version == 2
    assert coordinator.roster_summary(db_conn, world.championship.id, world.team_a.id).enabled_count == 1


def test_manager_cannot_approve(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    with pytest.raises(AuthorizationError):
        coordinator.approve_enrollment(db_conn, world.manager_a, e.id)
    assert coordinator.get_enrollment(db_conn, e.id).status == EnrollmentStatus.PENDING


def test_foreign_director_cannot_approve(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    with pytest.raises(AuthorizationError):
        coordinator.approve_enrollment(db_conn, world.foreign_director, e.id)


def test_decisions_are_terminal(db_conn, coordinator, world, enable):
    e = enable("P1", world.team_a.id)
    with pytest.raises(InvalidStateTransition):
        coordinator.approve_enrollment(db_conn, world.director, e.id)
    with pytest.raises(InvalidStateTransition):
        coordinator.reject_enrollment(db_conn, world.director, e.id, notes="changed my mind")


def test_reject_requires_notes(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    for notes in (None, "", "   "):
        with pytest.raises(ValidationError):
            coordinator.reject_enrollment(db_conn, world.director, e.id, notes=notes)
    assert coordinator.get_enrollment(db_conn, e.id).status == EnrollmentStatus.PENDING


def test_reject_then_resubmit_keeps_history(db_conn, coordinator, world):
    first = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    rejected = coordinator.reject_enrollment(db_conn, world.director, first.id, notes="missing medical form")
    assert rejected.status == EnrollmentStatus.REJECTED
    assert rejected.notes == "missing medical form"

    second = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    assert second.id != first.id
    assert second.status == EnrollmentStatus.PENDING
    history = coordinator.enrollment_history(db_conn, "P1")
    assert [h.id for h in history] == [first.id, second.id]
    assert history[0].status == EnrollmentStatus.REJECTED


# ---------- Roster cap ----------


def test_cap_one_second_approval_fails(db_conn, coordinator, world, set_cap):
    set_cap(1)
    e1 = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    e2 = coordinator.submit_enrollment(db_conn, world.manager_a, "P2", world.championship.id, world.team_a.id)
    coordinator.approve_enrollment(db_conn, world.director, e1.id)
    with pytest.raises(CapacityExceeded):
        coordinator.approve_enrollment(db_conn, world.director, e2.id)
    assert coordinator.get_enrollment(db_conn, e2.id).status == EnrollmentStatus.PENDING
    summary = coordinator.roster_summary(db_conn, world.championship.id, world.team_a.id)
    assert summary.enabled_count == 1
    assert summary.cap == 1
    assert summary.remaining == 0


def test_cap_is_per_team(db_conn, coordinator, world, set_cap, enable):
    set_cap(1)
    enable("P1", world.team_a.id)
    enable("P2", world.team_b.id)
    assert coordinator.roster_summary(db_conn, world.championship.id, world.team_b.id).enabled_count == 1


def test_default_cap_applies_without_override(db_conn, coordinator, world):
    from league_backend import config

    summary = coordinator.roster_summary(db_conn, world.championship.id, world.team_a.id)
    assert summary.cap == config.DEFAULT_MAX_ENABLED_PLAYERS


def test_pending_and_rejected_do_not_count(db_conn, coordinator, world, set_cap):
    set_cap(1)
    e1 = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    coordinator.reject_enrollment(db_conn, world.director, e1.id, notes="no")
    coordinator.submit_enrollment(db_conn, world.manager_a, "P2", world.championship.id, world.team_a.id)
    assert coordinator.roster_summary(db_conn, world.championship.id, world.team_a.id).enabled_count == 0


# ---------- Edit / withdraw ----------


def test_update_pending_enrollment(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    updated = coordinator.update_enrollment(db_conn, world.manager_a, e.id, jersey_number=11)
    assert updated.jersey_number == 11
    assert updated.version == e.version + 1


def test_update_enabled_enrollment_refused(db_conn, coordinator, world, enable):
    e = enable("P1", world.team_a.id)
    with pytest.raises(InvalidStateTransition):
        coordinator.update_enrollment(db_conn, world.master, e.id, position="libero")


def test_withdraw_frees_player_for_new_submission(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    withdrawn = coordinator.withdraw_enrollment(db_conn, world.manager_a, e.id)
    assert not withdrawn.active
    with pytest.raises(InvalidStateTransition):
        coordinator.approve_enrollment(db_conn, world.director, e.id)
    again = coordinator.submit_enrollment(db_conn, world.manager_b, "P1", world.championship.id, world.team_b.id)
    assert again.team_id == world.team_b.id


# ---------- Versions and request keys ----------


def test_stale_expected_version_conflicts(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    coordinator.update_enrollment(db_conn, world.manager_a, e.id, notes="dorsal pendiente")
    with pytest.raises(ConflictError):
        coordinator.approve_enrollment(db_conn, world.director, e.id, expected_version=e.version)
    assert coordinator.get_enrollment(db_conn, e.id).status == EnrollmentStatus.PENDING
    approved = coordinator.approve_enrollment(db_conn, world.director, e.id, expected_version=e.version + 1)
    assert approved.status == EnrollmentStatus.ENABLED


def test_stale_repository_write_is_refused(db_conn, world, coordinator):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    repo = EnrollmentRepository()
    assert repo.update(db_conn, e.id, e.version, notes="first")
    assert not repo.update(db_conn, e.id, e.version, notes="second")
    assert repo.get(db_conn, e.id).notes == "first"


def test_submit_replay_with_request_key(db_conn, coordinator, world):
    first = coordinator.submit_enrollment(
        db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id, request_key="req-1"
    )
    replay = coordinator.submit_enrollment(
        db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id, request_key="req-1"
    )
    assert replay.id == first.id
    assert len(coordinator.enrollment_history(db_conn, "P1")) == 1


def test_approve_replay_with_request_key(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    first = coordinator.approve_enrollment(db_conn, world.director, e.id, request_key="approve-1")
    replay = coordinator.approve_enrollment(db_conn, world.director, e.id, request_key="approve-1")
    assert replay.id == first.id
    assert replay.status == EnrollmentStatus.ENABLED
    assert replay.version == first.version


def test_request_key_reused_for_other_operation(db_conn, coordinator, world):
    e = coordinator.submit_enrollment(
        db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id, request_key="k"
    )
    with pytest.raises(ValidationError):
        coordinator.approve_enrollment(db_conn, world.director, e.id, request_key="k")


def test_failed_call_does_not_record_request_key(db_conn, coordinator, world):
    with pytest.raises(ValidationError):
        coordinator.submit_enrollment(
            db_conn, world.director, "P1", world.championship.id, world.team_c.id, request_key="k2"
        )
    e = coordinator.submit_enrollment(
        db_conn, world.director, "P1", world.championship.id, world.team_a.id, request_key="k2"
    )
    assert e.team_id == world.team_a.id


def test_request_key_reused_for_other_enrollment(db_conn, coordinator, world):
    e1 = coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    e2 = coordinator.submit_enrollment(db_conn, world.manager_a, "P2", world.championship.id, world.team_a.id)
    coordinator.approve_enrollment(db_conn, world.director, e1.id, request_key="approve-k")
    with pytest.raises(ValidationError):
        coordinator.approve_enrollment(db_conn, world.director, e2.id, request_key="approve-k")
    assert coordinator.get_enrollment(db_conn, e2.id).status == EnrollmentStatus.PENDING


def test_request_key_reused_for_other_player_submission(db_conn, coordinator, world):
    coordinator.submit_enrollment(
        db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id, request_key="sub-k"
    )
    with pytest.raises(ValidationError):
        coordinator.submit_enrollment(
            db_conn, world.manager_a, "P2", world.championship.id, world.team_a.id, request_key="sub-k"
        )
    assert coordinator.enrollment_history(db_conn, "P2") == []


def test_prune_forgets_old_request_keys(db_conn, coordinator, world):
    repo = IdempotencyRepository()
    old = datetime.now(timezone.utc) - timedelta(days=45)
    repo.record(db_conn, "old-k", "submit_enrollment", "P9/CH1/TA", "enrollment", "E-gone", created_at=old)
    fresh = coordinator.submit_enrollment(
        db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id, request_key="fresh-k"
    )

    assert coordinator.prune_request_keys(db_conn, retention_days=30) == 1
    assert repo.get(db_conn, "old-k") is None
    replay = coordinator.submit_enrollment(
        db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id, request_key="fresh-k"
    )
    assert replay.id == fresh.id


# ---------- Queries ----------


def test_pending_enrollments_scoped_by_role(db_conn, coordinator, world):
    coordinator.submit_enrollment(db_conn, world.manager_a, "P1", world.championship.id, world.team_a.id)
    coordinator.submit_enrollment(db_conn, world.manager_b, "P2", world.championship.id, world.team_b.id)
    assert len(coordinator.pending_enrollments(db_conn, world.master)) == 2
    assert len(coordinator.pending_enrollments(db_conn, world.director)) == 2
    assert coordinator.pending_enrollments(db_conn, world.foreign_director) == []
    mine = coordinator.pending_enrollments(db_conn, world.manager_a)
    assert [e.player_id for e in mine] == ["P1"]


def test_list_enrollments_by_team(db_conn, coordinator, world, enable):
    enable("P1", world.team_a.id)
    enable("P2", world.team_b.id)
    only_a = coordinator.list_enrollments(db_conn, world.championship.id, world.team_a.id)
    assert [e.player_id for e in only_a] == ["P1"]
    assert len(coordinator.list_enrollments(db_conn, world.championship.id)) == 2
