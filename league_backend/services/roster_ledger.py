"""
Roster Ledger: enabled-player count per (championship, team) against the championship cap.

Nothing is stored. Every read recomputes the count from enrollments, so an approval
is reflected by the next read. Callers that decide on capacity must hold the roster
lock and an open write transaction around the check and the write it guards.
"""
from __future__ import annotations

import logging
import sqlite3

from league_backend import config
from league_backend.models import RosterSummary
from league_backend.persistence.repositories import ChampionshipRepository, EnrollmentRepository

from .errors import CapacityExceeded, NotFoundError

logger = logging.getLogger(__name__)


class RosterLedger:

    def __init__(self) -> None:
        self._championship_repo = ChampionshipRepository()
        self._enrollment_repo = EnrollmentRepository()

    def count_enabled(self, conn: sqlite3.Connection, championship_id: str, team_id: str) -> int:
        """Active enrollments with status enabled."""
        return self._enrollment_repo.count_enabled(conn, championship_id, team_id)

    def cap_for(self, conn: sqlite3.Connection, championship_id: str) -> int:
        championship = self._championship_repo.get(conn, championship_id)
        if championship is None:
            raise NotFoundError(f"Championship not found: {championship_id}")
        if championship.max_enabled_players is not None and championship.max_enabled_players > 0:
            return championship.max_enabled_players
        return config.DEFAULT_MAX_ENABLED_PLAYERS

    def has_capacity(self, conn: sqlite3.Connection, championship_id: str, team_id: str) -> bool:
        return self.count_enabled(conn, championship_id, team_id) < self.cap_for(conn, championship_id)

    def assert_capacity(self, conn: sqlite3.Connection, championship_id: str, team_id: str) -> None:
        """Raise CapacityExceeded if the team's roster is full."""
        count = self.count_enabled(conn, championship_id, team_id)
        cap = self.cap_for(conn, championship_id)
        if count >= cap:
            logger.warning(
                "roster full championship=%s team=%s enabled=%d cap=%d", championship_id, team_id, count, cap
            )
            raise CapacityExceeded(
                f"Team {team_id} already has {count} enabled players in championship {championship_id} (cap {cap})"
            )

    def summary(self, conn: sqlite3.Connection, championship_id: str, team_id: str) -> RosterSummary:
        return RosterSummary(
            championship_id=championship_id,
            team_id=team_id,
            enabled_count=self.count_enabled(conn, championship_id, team_id),
            cap=self.cap_for(conn, championship_id),
        )
