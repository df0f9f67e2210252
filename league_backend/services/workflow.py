"""
Workflow coordinator: the entry point for every enrollment and transfer operation.

Each mutating call resolves the entity, authorizes the actor against its league/team,
takes the roster lock when the call can consume roster capacity, and runs the state
machine inside one write transaction. Any error rolls the whole call back.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, TypeVar

from league_backend import config
from league_backend.models import Actor, Championship, Enrollment, Role, RosterSummary, Transfer
from league_backend.persistence.db import transaction
from league_backend.persistence.repositories import (
    ChampionshipRepository,
    EnrollmentRepository,
    IdempotencyRepository,
    TransferRepository,
)

from .authorization import (
    Capability,
    authorize,
    authorize_cancel,
    authorize_second_approval,
    capabilities_for,
)
from .enrollment_service import EnrollmentService
from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .locks import RosterKey, roster_locks
from .roster_ledger import RosterLedger
from .transfer_service import TransferService

logger = logging.getLogger(__name__)

T = TypeVar("T", Enrollment, Transfer)

ENROLLMENT = "enrollment"
TRANSFER = "transfer"


def _check_version(entity: Enrollment | Transfer, expected_version: int | None) -> None:
    if expected_version is not None and entity.version != expected_version:
        raise ConflictError(
            f"{type(entity).__name__} {entity.id} is at version {entity.version}, "
            f"caller expected {expected_version}; re-read and retry"
        )


class WorkflowCoordinator:
    """
    Façade over the roster ledger and the two state machines.
    Authorization and serialization live here; transition rules live in the services.
    """

    def __init__(self) -> None:
        self.ledger = RosterLedger()
        self.enrollments = EnrollmentService(self.ledger)
        self.transfers = TransferService(self.ledger)
        self._championship_repo = ChampionshipRepository()
        self._enrollment_repo = EnrollmentRepository()
        self._transfer_repo = TransferRepository()
        self._idempotency_repo = IdempotencyRepository()

    # ---------- Plumbing ----------

    def _championship(self, conn: sqlite3.Connection, championship_id: str) -> Championship:
        championship = self._championship_repo.get(conn, championship_id)
        if championship is None:
            raise NotFoundError(f"Championship not found: {championship_id}")
        return championship

    def _load(self, conn: sqlite3.Connection, kind: str, entity_id: str) -> Enrollment | Transfer:
        if kind == ENROLLMENT:
            return self.enrollments.get(conn, entity_id)
        return self.transfers.get(conn, entity_id)

    def _run(
        self,
        conn: sqlite3.Connection,
        operation: str,
        kind: str,
        request_key: str | None,
        target: str,
        apply: Callable[[], T],
        lock_keys: Iterable[RosterKey] = (),
    ) -> T:
        """
        Run apply() under the given roster locks and one write transaction.
        A request_key already used for this operation on this target returns the entity it
        produced; the same key on another operation or target is a ValidationError.
        """
        with roster_locks(lock_keys):
            with transaction(conn):
                if request_key:
                    prior = self._idempotency_repo.get(conn, request_key)
                    if prior is not None:
                        if prior["operation"] != operation:
                            raise ValidationError(
                                f"Request key {request_key!r} was already used for {prior['operation']}"
                            )
                        if prior["target"] != target:
                            raise ValidationError(
                                f"Request key {request_key!r} was already used for {operation} "
                                f"on {prior['target']}, not {target}"
                            )
                        logger.info("replayed request key=%s operation=%s", request_key, operation)
                        return self._load(conn, prior["entity_kind"], prior["entity_id"])
                result = apply()
                if request_key:
                    self._idempotency_repo.record(conn, request_key, operation, target, kind, result.id)
                return result

    def prune_request_keys(self, conn: sqlite3.Connection, retention_days: int | None = None) -> int:
        """Forget request keys older than the retention window. Returns the number removed."""
        days = config.IDEMPOTENCY_KEY_RETENTION_DAYS if retention_days is None else retention_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        with transaction(conn):
            removed = self._idempotency_repo.delete_older_than(conn, cutoff)
        logger.info("pruned %d request keys older than %d days", removed, days)
        return removed

    # ---------- Enrollments ----------

    def submit_enrollment(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        player_id: str,
        championship_id: str,
        team_id: str,
        category_id: str | None = None,
        jersey_number: int | None = None,
        position: str | None = None,
        notes: str | None = None,
        request_key: str | None = None,
    ) -> Enrollment:
        championship = self._championship(conn, championship_id)
        authorize(actor, Capability.SUBMIT_ENROLLMENT, championship.league_id, team_id)
        return self._run(
            conn, "submit_enrollment", ENROLLMENT, request_key, f"{player_id}/{championship_id}/{team_id}",
            lambda: self.enrollments.submit(
                conn, player_id, championship_id, team_id,
                category_id=category_id, jersey_number=jersey_number, position=position, notes=notes,
            ),
        )

    def approve_enrollment(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        enrollment_id: str,
        notes: str | None = None,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Enrollment:
        """Capacity-sensitive: serialized per (championship, team)."""
        enrollment = self.enrollments.get(conn, enrollment_id)
        championship = self._championship(conn, enrollment.championship_id)
        authorize(actor, Capability.DECIDE_ENROLLMENT, championship.league_id)

        def apply() -> Enrollment:
            _check_version(self.enrollments.get(conn, enrollment_id), expected_version)
            return self.enrollments.approve(conn, enrollment_id, actor.user_id, notes)

        return self._run(
            conn, "approve_enrollment", ENROLLMENT, request_key, enrollment_id, apply,
            lock_keys=[(enrollment.championship_id, enrollment.team_id)],
        )

    def reject_enrollment(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        enrollment_id: str,
        notes: str | None,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Enrollment:
        enrollment = self.enrollments.get(conn, enrollment_id)
        championship = self._championship(conn, enrollment.championship_id)
        authorize(actor, Capability.DECIDE_ENROLLMENT, championship.league_id)

        def apply() -> Enrollment:
            _check_version(self.enrollments.get(conn, enrollment_id), expected_version)
            return self.enrollments.reject(conn, enrollment_id, actor.user_id, notes)

        return self._run(conn, "reject_enrollment", ENROLLMENT, request_key, enrollment_id, apply)

    def update_enrollment(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        enrollment_id: str,
        jersey_number: int | None = None,
        position: str | None = None,
        notes: str | None = None,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Enrollment:
        """Edit a pending enrollment. Same authority as submitting it."""
        enrollment = self.enrollments.get(conn, enrollment_id)
        championship = self._championship(conn, enrollment.championship_id)
        authorize(actor, Capability.SUBMIT_ENROLLMENT, championship.league_id, enrollment.team_id)

        def apply() -> Enrollment:
            _check_version(self.enrollments.get(conn, enrollment_id), expected_version)
            return self.enrollments.update_details(
                conn, enrollment_id, jersey_number=jersey_number, position=position, notes=notes
            )

        return self._run(conn, "update_enrollment", ENROLLMENT, request_key, enrollment_id, apply)

    def withdraw_enrollment(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        enrollment_id: str,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Enrollment:
        enrollment = self.enrollments.get(conn, enrollment_id)
        championship = self._championship(conn, enrollment.championship_id)
        authorize(actor, Capability.SUBMIT_ENROLLMENT, championship.league_id, enrollment.team_id)

        def apply() -> Enrollment:
            _check_version(self.enrollments.get(conn, enrollment_id), expected_version)
            return self.enrollments.withdraw(conn, enrollment_id)

        return self._run(conn, "withdraw_enrollment", ENROLLMENT, request_key, enrollment_id, apply)

    # ---------- Transfers ----------

    def request_transfer(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        player_id: str,
        championship_id: str,
        origin_team_id: str,
        destination_team_id: str,
        notes: str | None = None,
        request_key: str | None = None,
    ) -> Transfer:
        """The destination side asks for the player."""
        championship = self._championship(conn, championship_id)
        authorize(actor, Capability.REQUEST_TRANSFER, championship.league_id, destination_team_id)
        return self._run(
            conn, "request_transfer", TRANSFER, request_key,
            f"{player_id}/{championship_id}/{origin_team_id}/{destination_team_id}",
            lambda: self.transfers.request(
                conn, player_id, championship_id, origin_team_id, destination_team_id,
                requested_by=actor.user_id, notes=notes,
            ),
        )

    def _authorize_transfer(
        self, conn: sqlite3.Connection, actor: Actor, transfer: Transfer, capability: Capability
    ) -> None:
        championship = self._championship(conn, transfer.championship_id)
        team_id = transfer.origin_team_id if capability == Capability.DECIDE_TRANSFER_ORIGIN else None
        authorize(actor, capability, championship.league_id, team_id)

    def approve_transfer_origin(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        transfer_id: str,
        notes: str | None = None,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Transfer:
        transfer = self.transfers.get(conn, transfer_id)
        self._authorize_transfer(conn, actor, transfer, Capability.DECIDE_TRANSFER_ORIGIN)

        def apply() -> Transfer:
            _check_version(self.transfers.get(conn, transfer_id), expected_version)
            return self.transfers.approve_origin(conn, transfer_id, actor.user_id, notes)

        return self._run(conn, "approve_transfer_origin", TRANSFER, request_key, transfer_id, apply)

    def reject_transfer_origin(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        transfer_id: str,
        notes: str | None,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Transfer:
        transfer = self.transfers.get(conn, transfer_id)
        self._authorize_transfer(conn, actor, transfer, Capability.DECIDE_TRANSFER_ORIGIN)

        def apply() -> Transfer:
            _check_version(self.transfers.get(conn, transfer_id), expected_version)
            return self.transfers.reject_origin(conn, transfer_id, actor.user_id, notes)

        return self._run(conn, "reject_transfer_origin", TRANSFER, request_key, transfer_id, apply)

    def approve_transfer_director(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        transfer_id: str,
        notes: str | None = None,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Transfer:
        """Capacity-sensitive on the destination roster: serialized per (championship, destination)."""
        transfer = self.transfers.get(conn, transfer_id)
        self._authorize_transfer(conn, actor, transfer, Capability.DECIDE_TRANSFER_DIRECTOR)

        def apply() -> Transfer:
            current = self.transfers.get(conn, transfer_id)
            _check_version(current, expected_version)
            self.transfers.assert_director_may_approve(current)
            authorize_second_approval(actor, current)
            return self.transfers.approve_director(conn, transfer_id, actor.user_id, notes)

        return self._run(
            conn, "approve_transfer_director", TRANSFER, request_key, transfer_id, apply,
            lock_keys=[(transfer.championship_id, transfer.destination_team_id)],
        )

    def reject_transfer_director(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        transfer_id: str,
        notes: str | None = None,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Transfer:
        transfer = self.transfers.get(conn, transfer_id)
        self._authorize_transfer(conn, actor, transfer, Capability.DECIDE_TRANSFER_DIRECTOR)

        def apply() -> Transfer:
            _check_version(self.transfers.get(conn, transfer_id), expected_version)
            return self.transfers.reject_director(conn, transfer_id, actor.user_id, notes)

        return self._run(conn, "reject_transfer_director", TRANSFER, request_key, transfer_id, apply)

    def cancel_transfer(
        self,
        conn: sqlite3.Connection,
        actor: Actor,
        transfer_id: str,
        expected_version: int | None = None,
        request_key: str | None = None,
    ) -> Transfer:
        transfer = self.transfers.get(conn, transfer_id)
        authorize_cancel(actor, transfer)

        def apply() -> Transfer:
            _check_version(self.transfers.get(conn, transfer_id), expected_version)
            return self.transfers.cancel(conn, transfer_id, actor.user_id)

        return self._run(conn, "cancel_transfer", TRANSFER, request_key, transfer_id, apply)

    # ---------- Queries ----------

    def get_enrollment(self, conn: sqlite3.Connection, enrollment_id: str) -> Enrollment:
        return self.enrollments.get(conn, enrollment_id)

    def get_transfer(self, conn: sqlite3.Connection, transfer_id: str) -> Transfer:
        return self.transfers.get(conn, transfer_id)

    def enrollment_history(self, conn: sqlite3.Connection, player_id: str) -> list[Enrollment]:
        """Every enrollment of the player, rejected and inactive ones included, oldest first."""
        return self._enrollment_repo.list_by_player(conn, player_id)

    def list_enrollments(
        self, conn: sqlite3.Connection, championship_id: str, team_id: str | None = None
    ) -> list[Enrollment]:
        return self._enrollment_repo.list_by_championship(conn, championship_id, team_id)

    def pending_enrollments(self, conn: sqlite3.Connection, actor: Actor) -> list[Enrollment]:
        """Pending enrollments the actor can see: all (master), own league (director), own team (manager)."""
        if actor.role == Role.MASTER:
            return self._enrollment_repo.list_pending(conn)
        if actor.role == Role.LEAGUE_DIRECTOR:
            if actor.league_id is None:
                return []
            return self._enrollment_repo.list_pending(conn, actor.league_id)
        return [e for e in self._enrollment_repo.list_pending(conn) if e.team_id == actor.team_id]

    def transfer_history(self, conn: sqlite3.Connection, player_id: str) -> list[Transfer]:
        return self._transfer_repo.list_by_player(conn, player_id)

    def list_transfers(self, conn: sqlite3.Connection, championship_id: str) -> list[Transfer]:
        return self._transfer_repo.list_by_championship(conn, championship_id)

    def pending_origin_transfers(self, conn: sqlite3.Connection, actor: Actor) -> list[Transfer]:
        """Open transfers waiting for the actor's team (as origin) to decide."""
        if Capability.DECIDE_TRANSFER_ORIGIN not in capabilities_for(actor):
            raise AuthorizationError(f"Role '{actor.role}' does not decide transfers for an origin team")
        if actor.role == Role.MASTER:
            return self._transfer_repo.list_pending_origin(conn)
        if actor.team_id is None:
            return []
        return self._transfer_repo.list_pending_origin(conn, actor.team_id)

    def pending_director_transfers(self, conn: sqlite3.Connection, actor: Actor) -> list[Transfer]:
        """Origin-approved transfers waiting for the league director."""
        if Capability.DECIDE_TRANSFER_DIRECTOR not in capabilities_for(actor):
            raise AuthorizationError(f"Role '{actor.role}' does not give director approval")
        if actor.role == Role.MASTER:
            return self._transfer_repo.list_pending_director(conn)
        if actor.league_id is None:
            return []
        return self._transfer_repo.list_pending_director(conn, actor.league_id)

    def transfer_candidates(self, conn: sqlite3.Connection, championship_id: str) -> list[Enrollment]:
        """Enabled enrollments whose player is free to be requested by another team."""
        self._championship(conn, championship_id)
        return self._enrollment_repo.list_transfer_candidates(conn, championship_id)

    def roster_summary(self, conn: sqlite3.Connection, championship_id: str, team_id: str) -> RosterSummary:
        return self.ledger.summary(conn, championship_id, team_id)
