"""
Transfer state machine.

A transfer carries two approval tracks, origin team and league director, each
pending -> approved | rejected and terminal once decided. The overall state is
derived (models.derive_transfer_state): rejected if either track rejected,
approved when both approved, otherwise pending.

Director approval is only valid after the origin team approved. It is the step
that moves the player: the origin enrollment goes inactive and the destination
team gets an enabled enrollment, subject to the destination roster cap.
All methods run inside the caller's transaction; authorization is the caller's job.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

from league_backend.models import (
    ChampionshipStatus,
    EnrollmentStatus,
    TrackStatus,
    Transfer,
    TransferState,
)
from league_backend.persistence.repositories import (
    ChampionshipRepository,
    EnrollmentRepository,
    PlayerRepository,
    TeamRegistrationRepository,
    TeamRepository,
    TransferRepository,
)

from .errors import (
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
    OutOfOrderApproval,
    ValidationError,
)
from .roster_ledger import RosterLedger

logger = logging.getLogger(__name__)

ORIGIN = "origin"
DIRECTOR = "director"

_CLOSED_CHAMPIONSHIP = {ChampionshipStatus.FINISHED, ChampionshipStatus.CANCELLED}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _track_status(transfer: Transfer, track: str) -> str:
    return transfer.origin_status if track == ORIGIN else transfer.director_status


class TransferService:
    """
    Domain logic for transfers: request rules, per-track transitions, the roster move.
    Persistence is delegated to repositories.
    """

    def __init__(self, ledger: RosterLedger | None = None) -> None:
        self._ledger = ledger or RosterLedger()
        self._transfer_repo = TransferRepository()
        self._enrollment_repo = EnrollmentRepository()
        self._championship_repo = ChampionshipRepository()
        self._registration_repo = TeamRegistrationRepository()
        self._team_repo = TeamRepository()
        self._player_repo = PlayerRepository()

    def get(self, conn: sqlite3.Connection, transfer_id: str) -> Transfer:
        transfer = self._transfer_repo.get(conn, transfer_id)
        if transfer is None:
            raise NotFoundError(f"Transfer not found: {transfer_id}")
        return transfer

    def assert_track_pending(self, transfer: Transfer, track: str) -> None:
        """Raise unless the transfer is still open and the given track is undecided."""
        if transfer.cancelled:
            raise InvalidStateTransition(f"Transfer {transfer.id} was cancelled")
        status = _track_status(transfer, track)
        if status != TrackStatus.PENDING:
            raise InvalidStateTransition(
                f"Transfer {transfer.id}: {track} track already {status}"
            )
        if transfer.state != TransferState.PENDING:
            raise InvalidStateTransition(f"Transfer {transfer.id} is already {transfer.state.value}")

    def _write(self, conn: sqlite3.Connection, transfer: Transfer, **fields) -> Transfer:
        if not self._transfer_repo.update(conn, transfer.id, transfer.version, **fields):
            logger.warning("stale transfer write id=%s version=%d", transfer.id, transfer.version)
            raise ConflictError(f"Transfer {transfer.id} was modified concurrently; re-read and retry")
        return self.get(conn, transfer.id)

    # ---------- Request ----------

    def request(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        championship_id: str,
        origin_team_id: str,
        destination_team_id: str,
        requested_by: str,
        notes: str | None = None,
    ) -> Transfer:
        """
        Open a transfer of an enabled player from origin to destination.
        Nothing is written when any check fails.
        """
        if origin_team_id == destination_team_id:
            raise ValidationError("Origin and destination team must differ")
        if self._player_repo.get(conn, player_id) is None:
            raise NotFoundError(f"Player not found: {player_id}")
        championship = self._championship_repo.get(conn, championship_id)
        if championship is None:
            raise NotFoundError(f"Championship not found: {championship_id}")
        if championship.status in _CLOSED_CHAMPIONSHIP:
            raise ValidationError(
                f"Championship {championship_id} is {championship.status}; transfers are closed"
            )
        destination = self._team_repo.get(conn, destination_team_id)
        if destination is None:
            raise NotFoundError(f"Team not found: {destination_team_id}")
        if destination.league_id != championship.league_id:
            raise ValidationError(
                f"Team {destination_team_id} does not belong to the league of championship {championship_id}"
            )
        current = self._enrollment_repo.get_enabled_for_player(conn, player_id, championship_id)
        if current is None:
            raise ValidationError(f"Player {player_id} is not enabled in championship {championship_id}")
        if current.team_id != origin_team_id:
            raise ValidationError(
                f"Player {player_id} is enabled for team {current.team_id}, not {origin_team_id}"
            )
        if self._transfer_repo.get_open_for_player(conn, player_id, championship_id) is not None:
            raise ValidationError(
                f"Player {player_id} already has a pending transfer in championship {championship_id}"
            )
        if self._registration_repo.get_confirmed(conn, championship_id, destination_team_id) is None:
            raise ValidationError(
                f"Team {destination_team_id} has no confirmed registration in championship {championship_id}"
            )
        transfer = self._transfer_repo.create(
            conn,
            player_id=player_id,
            championship_id=championship_id,
            origin_team_id=origin_team_id,
            destination_team_id=destination_team_id,
            requested_by=requested_by,
            notes=notes,
        )
        logger.info(
            "transfer requested id=%s player=%s %s -> %s by=%s",
            transfer.id, player_id, origin_team_id, destination_team_id, requested_by,
        )
        return transfer

    # ---------- Origin track ----------

    def approve_origin(
        self, conn: sqlite3.Connection, transfer_id: str, approver_id: str, notes: str | None = None
    ) -> Transfer:
        """Origin team consents. The player does not move yet."""
        transfer = self.get(conn, transfer_id)
        self.assert_track_pending(transfer, ORIGIN)
        updated = self._write(
            conn,
            transfer,
            origin_status=TrackStatus.APPROVED.value,
            origin_decided_by=approver_id,
            origin_decided_at=_now(),
            origin_notes=notes,
        )
        logger.info("transfer origin approved id=%s by=%s", transfer.id, approver_id)
        return updated

    def reject_origin(
        self, conn: sqlite3.Connection, transfer_id: str, approver_id: str, notes: str | None
    ) -> Transfer:
        """Origin team refuses. Notes are mandatory. The transfer becomes terminally rejected."""
        if notes is None or not notes.strip():
            raise ValidationError("Notes are required when the origin team rejects a transfer")
        transfer = self.get(conn, transfer_id)
        self.assert_track_pending(transfer, ORIGIN)
        updated = self._write(
            conn,
            transfer,
            origin_status=TrackStatus.REJECTED.value,
            origin_decided_by=approver_id,
            origin_decided_at=_now(),
            origin_notes=notes.strip(),
        )
        logger.info("transfer origin rejected id=%s by=%s", transfer.id, approver_id)
        return updated

    # ---------- Director track ----------

    def reject_director(
        self, conn: sqlite3.Connection, transfer_id: str, approver_id: str, notes: str | None = None
    ) -> Transfer:
        """League director refuses. Allowed whether or not the origin team has decided."""
        transfer = self.get(conn, transfer_id)
        self.assert_track_pending(transfer, DIRECTOR)
        updated = self._write(
            conn,
            transfer,
            director_status=TrackStatus.REJECTED.value,
            director_decided_by=approver_id,
            director_decided_at=_now(),
            director_notes=notes.strip() if notes else None,
        )
        logger.info("transfer director rejected id=%s by=%s", transfer.id, approver_id)
        return updated

    def assert_director_may_approve(self, transfer: Transfer) -> None:
        """Ordering first: the origin track must be approved, whatever the director track holds."""
        if transfer.origin_status != TrackStatus.APPROVED:
            raise OutOfOrderApproval(
                f"Transfer {transfer.id}: director approval requires origin approval "
                f"(origin track is {transfer.origin_status})"
            )
        self.assert_track_pending(transfer, DIRECTOR)

    def approve_director(
        self, conn: sqlite3.Connection, transfer_id: str, approver_id: str, notes: str | None = None
    ) -> Transfer:
        """
        Second and final approval. Moves the player: origin enrollment inactive,
        new enabled enrollment at the destination.
        The caller must hold the destination roster lock and the write transaction.
        CapacityExceeded leaves everything, including the director track, unchanged.
        """
        transfer = self.get(conn, transfer_id)
        self.assert_director_may_approve(transfer)

        origin_enrollment = self._enrollment_repo.get_enabled_for_player(
            conn, transfer.player_id, transfer.championship_id
        )
        if origin_enrollment is None or origin_enrollment.team_id != transfer.origin_team_id:
            raise ValidationError(
                f"Player {transfer.player_id} is no longer enabled for origin team {transfer.origin_team_id}"
            )
        registration = self._registration_repo.get_confirmed(
            conn, transfer.championship_id, transfer.destination_team_id
        )
        if registration is None:
            raise ValidationError(
                f"Team {transfer.destination_team_id} has no confirmed registration "
                f"in championship {transfer.championship_id}"
            )
        self._ledger.assert_capacity(conn, transfer.championship_id, transfer.destination_team_id)

        now = _now()
        if not self._enrollment_repo.update(conn, origin_enrollment.id, origin_enrollment.version, active=False):
            raise ConflictError(f"Enrollment {origin_enrollment.id} was modified concurrently; re-read and retry")

        # Always a new row: earlier enrollments at the destination keep their own decision record
        destination_enrollment_id = self._enrollment_repo.create(
            conn,
            player_id=transfer.player_id,
            championship_id=transfer.championship_id,
            team_id=transfer.destination_team_id,
            category_id=registration.category_id,
            status=EnrollmentStatus.ENABLED.value,
            jersey_number=origin_enrollment.jersey_number,
            position=origin_enrollment.position,
            notes=f"Transfer {transfer.id}",
            decided_by=approver_id,
            decided_at=now,
        ).id

        updated = self._write(
            conn,
            transfer,
            director_status=TrackStatus.APPROVED.value,
            director_decided_by=approver_id,
            director_decided_at=now,
            director_notes=notes,
        )
        logger.info(
            "transfer completed id=%s player=%s %s -> %s enrollment=%s by=%s",
            transfer.id, transfer.player_id, transfer.origin_team_id,
            transfer.destination_team_id, destination_enrollment_id, approver_id,
        )
        return updated

    # ---------- Cancel ----------

    def cancel(self, conn: sqlite3.Connection, transfer_id: str, requester_id: str) -> Transfer:
        """Withdraw the request. Only while both tracks are still pending."""
        transfer = self.get(conn, transfer_id)
        if transfer.cancelled:
            raise InvalidStateTransition(f"Transfer {transfer.id} is already cancelled")
        if transfer.origin_status != TrackStatus.PENDING or transfer.director_status != TrackStatus.PENDING:
            raise InvalidStateTransition(
                f"Transfer {transfer.id} can no longer be cancelled "
                f"(origin {transfer.origin_status}, director {transfer.director_status})"
            )
        updated = self._write(conn, transfer, cancelled=True, cancelled_at=_now())
        logger.info("transfer cancelled id=%s by=%s", transfer.id, requester_id)
        return updated
