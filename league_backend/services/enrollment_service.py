"""
Enrollment state machine: pending -> enabled | rejected.

Submissions come from team managers or league directors; only a league director
decides them. A rejected enrollment stays in the player's history and does not
block a new submission for the same championship.
All methods run inside the caller's transaction; authorization is the caller's job.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

from league_backend.models import ChampionshipStatus, Enrollment, EnrollmentStatus
from league_backend.persistence.repositories import (
    ChampionshipRepository,
    EnrollmentRepository,
    PlayerRepository,
    TeamRegistrationRepository,
    TeamRepository,
)

from .errors import ConflictError, InvalidStateTransition, NotFoundError, ValidationError
from .roster_ledger import RosterLedger

logger = logging.getLogger(__name__)


# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[str, set[str]] = {
    EnrollmentStatus.PENDING: {EnrollmentStatus.ENABLED, EnrollmentStatus.REJECTED},
    EnrollmentStatus.ENABLED: set(),
    EnrollmentStatus.REJECTED: set(),
}


def _require_notes(notes: str | None, what: str) -> str:
    if notes is None or not notes.strip():
        raise ValidationError(f"Notes are required to {what}")
    return notes.strip()


def _validate_jersey_number(jersey_number: int | None) -> None:
    if jersey_number is not None and jersey_number < 0:
        raise ValidationError(f"Jersey number must be zero or positive (got {jersey_number})")


class EnrollmentService:
    """
    Domain logic for enrollments: submission rules, status transitions, capacity on approval.
    Persistence is delegated to repositories.
    """

    def __init__(self, ledger: RosterLedger | None = None) -> None:
        self._ledger = ledger or RosterLedger()
        self._enrollment_repo = EnrollmentRepository()
        self._championship_repo = ChampionshipRepository()
        self._registration_repo = TeamRegistrationRepository()
        self._team_repo = TeamRepository()
        self._player_repo = PlayerRepository()

    def get(self, conn: sqlite3.Connection, enrollment_id: str) -> Enrollment:
        enrollment = self._enrollment_repo.get(conn, enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"Enrollment not found: {enrollment_id}")
        return enrollment

    def assert_transition(self, enrollment: Enrollment, new_status: str) -> None:
        """Raise if enrollment cannot move to new_status (withdrawn or terminal)."""
        if not enrollment.active:
            raise InvalidStateTransition(f"Enrollment {enrollment.id} is inactive")
        allowed = _VALID_TRANSITIONS.get(enrollment.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Invalid transition: {enrollment.status} -> {new_status}. "
                f"Allowed from {enrollment.status}: {sorted(str(s.value) for s in allowed)}"
            )

    def _write(self, conn: sqlite3.Connection, enrollment: Enrollment, **fields) -> Enrollment:
        if not self._enrollment_repo.update(conn, enrollment.id, enrollment.version, **fields):
            logger.warning("stale enrollment write id=%s version=%d", enrollment.id, enrollment.version)
            raise ConflictError(f"Enrollment {enrollment.id} was modified concurrently; re-read and retry")
        return self.get(conn, enrollment.id)

    # ---------- Submit ----------

    def submit(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        championship_id: str,
        team_id: str,
        category_id: str | None = None,
        jersey_number: int | None = None,
        position: str | None = None,
        notes: str | None = None,
    ) -> Enrollment:
        """
        Create a pending enrollment.
        Championship must be open for registration and the team must hold a confirmed
        registration; the enrollment's category is that registration's category.
        """
        player = self._player_repo.get(conn, player_id)
        if player is None:
            raise NotFoundError(f"Player not found: {player_id}")
        championship = self._championship_repo.get(conn, championship_id)
        if championship is None:
            raise NotFoundError(f"Championship not found: {championship_id}")
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        if team.league_id != championship.league_id:
            raise ValidationError(f"Team {team_id} does not belong to the league of championship {championship_id}")
        if championship.status != ChampionshipStatus.REGISTRATION_OPEN:
            raise ValidationError(
                f"Championship {championship_id} is not accepting enrollments (status: {championship.status})"
            )
        registration = self._registration_repo.get_confirmed(conn, championship_id, team_id)
        if registration is None:
            raise ValidationError(
                f"Team {team_id} has no confirmed registration in championship {championship_id}"
            )
        if category_id is not None and category_id != registration.category_id:
            raise ValidationError(
                f"Category is fixed by the team's registration ({registration.category_id}); got {category_id}"
            )
        _validate_jersey_number(jersey_number)
        existing = self._enrollment_repo.get_open_for_player(conn, player_id, championship_id)
        if existing is not None:
            raise ValidationError(
                f"Player {player_id} already has a {existing.status} enrollment in championship "
                f"{championship_id} (team {existing.team_id})"
            )
        enrollment = self._enrollment_repo.create(
            conn,
            player_id=player_id,
            championship_id=championship_id,
            team_id=team_id,
            category_id=registration.category_id,
            status=EnrollmentStatus.PENDING.value,
            jersey_number=jersey_number if jersey_number is not None else player.jersey_number,
            position=position if position is not None else player.position,
            notes=notes,
        )
        logger.info(
            "enrollment submitted id=%s player=%s championship=%s team=%s",
            enrollment.id, player_id, championship_id, team_id,
        )
        return enrollment

    # ---------- Decide ----------

    def approve(
        self, conn: sqlite3.Connection, enrollment_id: str, approver_id: str, notes: str | None = None
    ) -> Enrollment:
        """
        pending -> enabled. Capacity is checked here, so the caller must hold the
        roster lock and the write transaction for (championship, team).
        """
        enrollment = self.get(conn, enrollment_id)
        self.assert_transition(enrollment, EnrollmentStatus.ENABLED)
        self._ledger.assert_capacity(conn, enrollment.championship_id, enrollment.team_id)
        updated = self._write(
            conn,
            enrollment,
            status=EnrollmentStatus.ENABLED.value,
            decided_at=datetime.now(timezone.utc),
            decided_by=approver_id,
            notes=notes if notes is not None else enrollment.notes,
        )
        logger.info(
            "enrollment approved id=%s championship=%s team=%s by=%s",
            enrollment.id, enrollment.championship_id, enrollment.team_id, approver_id,
        )
        return updated

    def reject(
        self, conn: sqlite3.Connection, enrollment_id: str, approver_id: str, notes: str | None
    ) -> Enrollment:
        """pending -> rejected. Notes (the reason) are mandatory."""
        reason = _require_notes(notes, "reject an enrollment")
        enrollment = self.get(conn, enrollment_id)
        self.assert_transition(enrollment, EnrollmentStatus.REJECTED)
        updated = self._write(
            conn,
            enrollment,
            status=EnrollmentStatus.REJECTED.value,
            decided_at=datetime.now(timezone.utc),
            decided_by=approver_id,
            notes=reason,
        )
        logger.info("enrollment rejected id=%s by=%s", enrollment.id, approver_id)
        return updated

    # ---------- Edit / withdraw (pending only) ----------

    def update_details(
        self,
        conn: sqlite3.Connection,
        enrollment_id: str,
        jersey_number: int | None = None,
        position: str | None = None,
        notes: str | None = None,
    ) -> Enrollment:
        """Change jersey number, position or notes while the enrollment is still pending."""
        enrollment = self.get(conn, enrollment_id)
        if not enrollment.active or enrollment.status != EnrollmentStatus.PENDING:
            raise InvalidStateTransition(
                f"Only pending enrollments can be edited (enrollment {enrollment.id} is {enrollment.status})"
            )
        _validate_jersey_number(jersey_number)
        fields = {}
        if jersey_number is not None:
            fields["jersey_number"] = jersey_number
        if position is not None:
            fields["position"] = position
        if notes is not None:
            fields["notes"] = notes
        if not fields:
            return enrollment
        return self._write(conn, enrollment, **fields)

    def withdraw(self, conn: sqlite3.Connection, enrollment_id: str) -> Enrollment:
        """Deactivate a pending enrollment. The row is kept for history."""
        enrollment = self.get(conn, enrollment_id)
        if not enrollment.active or enrollment.status != EnrollmentStatus.PENDING:
            raise InvalidStateTransition(
                f"Only pending enrollments can be withdrawn (enrollment {enrollment.id} is {enrollment.status})"
            )
        updated = self._write(conn, enrollment, active=False)
        logger.info("enrollment withdrawn id=%s", enrollment.id)
        return updated
