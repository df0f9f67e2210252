"""
Repository interfaces for league eligibility data.
No business logic, only read/write operations.
Repositories never commit; callers group writes with db.transaction().
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from league_backend.models import (
    Category,
    Championship,
    Enrollment,
    League,
    Player,
    Team,
    TeamRegistration,
    Transfer,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _parse_optional_datetime(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def _update_versioned(
    conn: sqlite3.Connection,
    table: str,
    row_id: str,
    expected_version: int,
    fields: dict[str, Any],
) -> bool:
    """
    UPDATE ... SET fields, version = version + 1 WHERE id = ? AND version = ?.
    Returns False when the row changed since it was read (no rows affected).
    """
    assignments = ", ".join(f"{col} = ?" for col in fields)
    args = tuple(_to_db(v) for v in fields.values()) + (row_id, expected_version)
    cur = conn.execute(
        f"UPDATE {table} SET {assignments}, version = version + 1 WHERE id = ? AND version = ?",
        args,
    )
    return cur.rowcount == 1


# ---------- LeagueRepository ----------


class LeagueRepository:
    """Leagues are owned by the admin console; created here for seeding and tests."""

    def create(self, conn: sqlite3.Connection, name: str, id: str | None = None) -> League:
        lid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO leagues (id, name, created_at) VALUES (?, ?, ?)",
            (lid, name, now.isoformat()),
        )
        return League(id=lid, name=name, created_at=now)

    def get(self, conn: sqlite3.Connection, league_id: str) -> League | None:
        row = conn.execute("SELECT id, name, created_at FROM leagues WHERE id = ?", (league_id,)).fetchone()
        if row is None:
            return None
        return League(id=row["id"], name=row["name"], created_at=_parse_datetime(row["created_at"]))


# ---------- TeamRepository ----------


class TeamRepository:

    def create(self, conn: sqlite3.Connection, league_id: str, name: str, id: str | None = None) -> Team:
        tid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO teams (id, league_id, name, created_at) VALUES (?, ?, ?, ?)",
            (tid, league_id, name, now.isoformat()),
        )
        return Team(id=tid, league_id=league_id, name=name, created_at=now)

    def get(self, conn: sqlite3.Connection, team_id: str) -> Team | None:
        row = conn.execute(
            "SELECT id, league_id, name, created_at FROM teams WHERE id = ?", (team_id,)
        ).fetchone()
        if row is None:
            return None
        return Team(
            id=row["id"], league_id=row["league_id"], name=row["name"],
            created_at=_parse_datetime(row["created_at"]),
        )


# ---------- PlayerRepository ----------


class PlayerRepository:

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        jersey_number: int | None = None,
        position: str | None = None,
        id: str | None = None,
    ) -> Player:
        pid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO players (id, name, jersey_number, position, created_at) VALUES (?, ?, ?, ?, ?)",
            (pid, name, jersey_number, position, now.isoformat()),
        )
        return Player(id=pid, name=name, created_at=now, jersey_number=jersey_number, position=position)

    def get(self, conn: sqlite3.Connection, player_id: str) -> Player | None:
        row = conn.execute(
            "SELECT id, name, jersey_number, position, created_at FROM players WHERE id = ?",
            (player_id,),
        ).fetchone()
        if row is None:
            return None
        return Player(
            id=row["id"],
            name=row["name"],
            created_at=_parse_datetime(row["created_at"]),
            jersey_number=row["jersey_number"],
            position=row["position"],
        )


# ---------- CategoryRepository ----------


class CategoryRepository:

    def create(self, conn: sqlite3.Connection, name: str, id: str | None = None) -> Category:
        cid = id or str(uuid.uuid4())
        conn.execute("INSERT INTO categories (id, name) VALUES (?, ?)", (cid, name))
        return Category(id=cid, name=name)

    def get(self, conn: sqlite3.Connection, category_id: str) -> Category | None:
        row = conn.execute("SELECT id, name FROM categories WHERE id = ?", (category_id,)).fetchone()
        if row is None:
            return None
        return Category(id=row["id"], name=row["name"])


# ---------- ChampionshipRepository ----------

_CHAMPIONSHIP_COLS = "id, league_id, name, status, max_enabled_players, category_cap, created_at"


def _row_to_championship(row: sqlite3.Row) -> Championship:
    return Championship(
        id=row["id"],
        league_id=row["league_id"],
        name=row["name"],
        status=row["status"],
        created_at=_parse_datetime(row["created_at"]),
        max_enabled_players=row["max_enabled_players"],
        category_cap=row["category_cap"],
    )


class ChampionshipRepository:
    """Championship lookup: status and roster cap."""

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        name: str,
        status: str = "inscripcion_abierta",
        max_enabled_players: int | None = None,
        category_cap: int | None = None,
        id: str | None = None,
    ) -> Championship:
        cid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            f"INSERT INTO championships ({_CHAMPIONSHIP_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (cid, league_id, name, status, max_enabled_players, category_cap, now.isoformat()),
        )
        return Championship(
            id=cid, league_id=league_id, name=name, status=status, created_at=now,
            max_enabled_players=max_enabled_players, category_cap=category_cap,
        )

    def get(self, conn: sqlite3.Connection, championship_id: str) -> Championship | None:
        row = conn.execute(
            f"SELECT {_CHAMPIONSHIP_COLS} FROM championships WHERE id = ?", (championship_id,)
        ).fetchone()
        return _row_to_championship(row) if row is not None else None

    def update_status(self, conn: sqlite3.Connection, championship_id: str, status: str) -> None:
        conn.execute("UPDATE championships SET status = ? WHERE id = ?", (status, championship_id))

    def update_max_enabled_players(
        self, conn: sqlite3.Connection, championship_id: str, max_enabled_players: int | None
    ) -> None:
        conn.execute(
            "UPDATE championships SET max_enabled_players = ? WHERE id = ?",
            (max_enabled_players, championship_id),
        )


# ---------- TeamRegistrationRepository ----------


class TeamRegistrationRepository:
    """Team inscriptions per championship. Source of an enrollment's category."""

    def create(
        self,
        conn: sqlite3.Connection,
        championship_id: str,
        team_id: str,
        category_id: str,
        status: str = "pendiente",
        id: str | None = None,
    ) -> TeamRegistration:
        rid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO team_registrations (id, championship_id, team_id, category_id, status, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (rid, championship_id, team_id, category_id, status, now.isoformat()),
        )
        return TeamRegistration(
            id=rid, championship_id=championship_id, team_id=team_id,
            category_id=category_id, status=status, created_at=now,
        )

    def get_confirmed(
        self, conn: sqlite3.Connection, championship_id: str, team_id: str
    ) -> TeamRegistration | None:
        """The team's confirmed registration in the championship, if any (latest wins)."""
        row = conn.execute(
            "SELECT id, championship_id, team_id, category_id, status, created_at FROM team_registrations "
            "WHERE championship_id = ? AND team_id = ? AND status = 'confirmada' "
            "ORDER BY created_at DESC LIMIT 1",
            (championship_id, team_id),
        ).fetchone()
        if row is None:
            return None
        return TeamRegistration(
            id=row["id"],
            championship_id=row["championship_id"],
            team_id=row["team_id"],
            category_id=row["category_id"],
            status=row["status"],
            created_at=_parse_datetime(row["created_at"]),
        )

    def update_status(self, conn: sqlite3.Connection, registration_id: str, status: str) -> None:
        conn.execute("UPDATE team_registrations SET status = ? WHERE id = ?", (status, registration_id))


# ---------- EnrollmentRepository ----------

_ENROLLMENT_COLS = (
    "e.id, e.player_id, e.championship_id, e.team_id, e.category_id, e.status, e.jersey_number, "
    "e.position, e.notes, e.active, e.created_at, e.decided_at, e.decided_by, e.version"
)


def _row_to_enrollment(row: sqlite3.Row) -> Enrollment:
    return Enrollment(
        id=row["id"],
        player_id=row["player_id"],
        championship_id=row["championship_id"],
        team_id=row["team_id"],
        category_id=row["category_id"],
        status=row["status"],
        active=bool(row["active"]),
        created_at=_parse_datetime(row["created_at"]),
        jersey_number=row["jersey_number"],
        position=row["position"],
        notes=row["notes"],
        decided_at=_parse_optional_datetime(row["decided_at"]),
        decided_by=row["decided_by"],
        version=row["version"],
    )


class EnrollmentRepository:
    """Enrollment rows. Status writes are version-checked."""

    def create(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        championship_id: str,
        team_id: str,
        category_id: str,
        status: str = "pending",
        jersey_number: int | None = None,
        position: str | None = None,
        notes: str | None = None,
        decided_by: str | None = None,
        decided_at: datetime | None = None,
        id: str | None = None,
    ) -> Enrollment:
        eid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO enrollments (id, player_id, championship_id, team_id, category_id, status, "
            "jersey_number, position, notes, active, created_at, decided_at, decided_by, version) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, 1)",
            (
                eid, player_id, championship_id, team_id, category_id, status,
                jersey_number, position, notes, now.isoformat(),
                _to_db(decided_at), decided_by,
            ),
        )
        return Enrollment(
            id=eid, player_id=player_id, championship_id=championship_id, team_id=team_id,
            category_id=category_id, status=status, active=True, created_at=now,
            jersey_number=jersey_number, position=position, notes=notes,
            decided_at=decided_at, decided_by=decided_by, version=1,
        )

    def get(self, conn: sqlite3.Connection, enrollment_id: str) -> Enrollment | None:
        row = conn.execute(
            f"SELECT {_ENROLLMENT_COLS} FROM enrollments e WHERE e.id = ?", (enrollment_id,)
        ).fetchone()
        return _row_to_enrollment(row) if row is not None else None

    def update(
        self, conn: sqlite3.Connection, enrollment_id: str, expected_version: int, **fields: Any
    ) -> bool:
        return _update_versioned(conn, "enrollments", enrollment_id, expected_version, fields)

    def count_enabled(self, conn: sqlite3.Connection, championship_id: str, team_id: str) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM enrollments "
            "WHERE championship_id = ? AND team_id = ? AND status = 'enabled' AND active = 1",
            (championship_id, team_id),
        ).fetchone()
        return int(row["n"])

    def get_open_for_player(
        self, conn: sqlite3.Connection, player_id: str, championship_id: str
    ) -> Enrollment | None:
        """Active pending or enabled enrollment of the player in the championship."""
        row = conn.execute(
            f"SELECT {_ENROLLMENT_COLS} FROM enrollments e "
            "WHERE e.player_id = ? AND e.championship_id = ? AND e.active = 1 "
            "AND e.status IN ('pending', 'enabled') ORDER BY e.created_at DESC LIMIT 1",
            (player_id, championship_id),
        ).fetchone()
        return _row_to_enrollment(row) if row is not None else None

    def get_enabled_for_player(
        self, conn: sqlite3.Connection, player_id: str, championship_id: str
    ) -> Enrollment | None:
        """The player's current enabled, active enrollment in the championship."""
        row = conn.execute(
            f"SELECT {_ENROLLMENT_COLS} FROM enrollments e "
            "WHERE e.player_id = ? AND e.championship_id = ? AND e.active = 1 AND e.status = 'enabled' "
            "ORDER BY e.created_at DESC LIMIT 1",
            (player_id, championship_id),
        ).fetchone()
        return _row_to_enrollment(row) if row is not None else None

    def list_by_player(self, conn: sqlite3.Connection, player_id: str) -> list[Enrollment]:
        rows = conn.execute(
            f"SELECT {_ENROLLMENT_COLS} FROM enrollments e WHERE e.player_id = ? ORDER BY e.created_at",
            (player_id,),
        ).fetchall()
        return [_row_to_enrollment(r) for r in rows]

    def list_by_championship(
        self, conn: sqlite3.Connection, championship_id: str, team_id: str | None = None
    ) -> list[Enrollment]:
        sql = f"SELECT {_ENROLLMENT_COLS} FROM enrollments e WHERE e.championship_id = ?"
        args: tuple = (championship_id,)
        if team_id is not None:
            sql += " AND e.team_id = ?"
            args = args + (team_id,)
        rows = conn.execute(sql + " ORDER BY e.created_at", args).fetchall()
        return [_row_to_enrollment(r) for r in rows]

    def list_pending(self, conn: sqlite3.Connection, league_id: str | None = None) -> list[Enrollment]:
        """Active pending enrollments, optionally limited to one league's championships."""
        sql = (
            f"SELECT {_ENROLLMENT_COLS} FROM enrollments e "
            "JOIN championships c ON c.id = e.championship_id "
            "WHERE e.status = 'pending' AND e.active = 1"
        )
        args: tuple = ()
        if league_id is not None:
            sql += " AND c.league_id = ?"
            args = (league_id,)
        rows = conn.execute(sql + " ORDER BY e.created_at", args).fetchall()
        return [_row_to_enrollment(r) for r in rows]

    def list_transfer_candidates(self, conn: sqlite3.Connection, championship_id: str) -> list[Enrollment]:
        """Enabled, active enrollments whose player has no open transfer in the championship."""
        rows = conn.execute(
            f"SELECT {_ENROLLMENT_COLS} FROM enrollments e "
            "WHERE e.championship_id = ? AND e.status = 'enabled' AND e.active = 1 "
            "AND NOT EXISTS ("
            "  SELECT 1 FROM transfers t WHERE t.player_id = e.player_id "
            f"  AND t.championship_id = e.championship_id AND {_OPEN_TRANSFER_SQL}"
            ") ORDER BY e.team_id, e.created_at",
            (championship_id,),
        ).fetchall()
        return [_row_to_enrollment(r) for r in rows]


# ---------- TransferRepository ----------

_TRANSFER_COLS = (
    "t.id, t.player_id, t.championship_id, t.origin_team_id, t.destination_team_id, t.origin_status, "
    "t.director_status, t.requested_by, t.requested_at, t.notes, t.origin_decided_by, "
    "t.origin_decided_at, t.origin_notes, t.director_decided_by, t.director_decided_at, "
    "t.director_notes, t.cancelled, t.cancelled_at, t.version"
)

# Overall state pending: not cancelled, neither track rejected, not both approved
_OPEN_TRANSFER_SQL = (
    "t.cancelled = 0 AND t.origin_status != 'rejected' AND t.director_status != 'rejected' "
    "AND NOT (t.origin_status = 'approved' AND t.director_status = 'approved')"
)


def _row_to_transfer(row: sqlite3.Row) -> Transfer:
    return Transfer(
        id=row["id"],
        player_id=row["player_id"],
        championship_id=row["championship_id"],
        origin_team_id=row["origin_team_id"],
        destination_team_id=row["destination_team_id"],
        origin_status=row["origin_status"],
        director_status=row["director_status"],
        requested_by=row["requested_by"],
        requested_at=_parse_datetime(row["requested_at"]),
        notes=row["notes"],
        origin_decided_by=row["origin_decided_by"],
        origin_decided_at=_parse_optional_datetime(row["origin_decided_at"]),
        origin_notes=row["origin_notes"],
        director_decided_by=row["director_decided_by"],
        director_decided_at=_parse_optional_datetime(row["director_decided_at"]),
        director_notes=row["director_notes"],
        cancelled=bool(row["cancelled"]),
        cancelled_at=_parse_optional_datetime(row["cancelled_at"]),
        version=row["version"],
    )


class TransferRepository:
    """Transfer rows. Track writes are version-checked."""

    def create(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        championship_id: str,
        origin_team_id: str,
        destination_team_id: str,
        requested_by: str,
        notes: str | None = None,
        id: str | None = None,
    ) -> Transfer:
        tid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO transfers (id, player_id, championship_id, origin_team_id, destination_team_id, "
            "origin_status, director_status, requested_by, requested_at, notes, cancelled, version) "
            "VALUES (?, ?, ?, ?, ?, 'pending', 'pending', ?, ?, ?, 0, 1)",
            (tid, player_id, championship_id, origin_team_id, destination_team_id,
             requested_by, now.isoformat(), notes),
        )
        return Transfer(
            id=tid, player_id=player_id, championship_id=championship_id,
            origin_team_id=origin_team_id, destination_team_id=destination_team_id,
            origin_status="pending", director_status="pending",
            requested_by=requested_by, requested_at=now, notes=notes,
        )

    def get(self, conn: sqlite3.Connection, transfer_id: str) -> Transfer | None:
        row = conn.execute(
            f"SELECT {_TRANSFER_COLS} FROM transfers t WHERE t.id = ?", (transfer_id,)
        ).fetchone()
        return _row_to_transfer(row) if row is not None else None

    def update(
        self, conn: sqlite3.Connection, transfer_id: str, expected_version: int, **fields: Any
    ) -> bool:
        return _update_versioned(conn, "transfers", transfer_id, expected_version, fields)

    def get_open_for_player(
        self, conn: sqlite3.Connection, player_id: str, championship_id: str
    ) -> Transfer | None:
        row = conn.execute(
            f"SELECT {_TRANSFER_COLS} FROM transfers t "
            f"WHERE t.player_id = ? AND t.championship_id = ? AND {_OPEN_TRANSFER_SQL} "
            "ORDER BY t.requested_at DESC LIMIT 1",
            (player_id, championship_id),
        ).fetchone()
        return _row_to_transfer(row) if row is not None else None

    def list_by_player(self, conn: sqlite3.Connection, player_id: str) -> list[Transfer]:
        rows = conn.execute(
            f"SELECT {_TRANSFER_COLS} FROM transfers t WHERE t.player_id = ? ORDER BY t.requested_at",
            (player_id,),
        ).fetchall()
        return [_row_to_transfer(r) for r in rows]

    def list_by_championship(self, conn: sqlite3.Connection, championship_id: str) -> list[Transfer]:
        rows = conn.execute(
            f"SELECT {_TRANSFER_COLS} FROM transfers t WHERE t.championship_id = ? ORDER BY t.requested_at",
            (championship_id,),
        ).fetchall()
        return [_row_to_transfer(r) for r in rows]

    def list_pending_origin(self, conn: sqlite3.Connection, team_id: str | None = None) -> list[Transfer]:
        """Open transfers still waiting for the origin team's decision."""
        sql = f"SELECT {_TRANSFER_COLS} FROM transfers t WHERE {_OPEN_TRANSFER_SQL} AND t.origin_status = 'pending'"
        args: tuple = ()
        if team_id is not None:
            sql += " AND t.origin_team_id = ?"
            args = (team_id,)
        rows = conn.execute(sql + " ORDER BY t.requested_at", args).fetchall()
        return [_row_to_transfer(r) for r in rows]

    def list_pending_director(self, conn: sqlite3.Connection, league_id: str | None = None) -> list[Transfer]:
        """Open transfers the origin team approved, waiting for the league director."""
        sql = (
            f"SELECT {_TRANSFER_COLS} FROM transfers t "
            "JOIN championships c ON c.id = t.championship_id "
            f"WHERE {_OPEN_TRANSFER_SQL} AND t.origin_status = 'approved' AND t.director_status = 'pending'"
        )
        args: tuple = ()
        if league_id is not None:
            sql += " AND c.league_id = ?"
            args = (league_id,)
        rows = conn.execute(sql + " ORDER BY t.requested_at", args).fetchall()
        return [_row_to_transfer(r) for r in rows]


# ---------- IdempotencyRepository ----------


class IdempotencyRepository:
    """Applied request keys. A key maps to the operation, its target and the entity it produced."""

    def get(self, conn: sqlite3.Connection, request_key: str) -> dict[str, str] | None:
        row = conn.execute(
            "SELECT request_key, operation, target, entity_kind, entity_id FROM idempotency_keys "
            "WHERE request_key = ?",
            (request_key,),
        ).fetchone()
        return dict(row) if row is not None else None

    def record(
        self,
        conn: sqlite3.Connection,
        request_key: str,
        operation: str,
        target: str,
        entity_kind: str,
        entity_id: str,
        created_at: datetime | None = None,
    ) -> None:
        conn.execute(
            "INSERT INTO idempotency_keys (request_key, operation, target, entity_kind, entity_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (request_key, operation, target, entity_kind, entity_id, (created_at or _now()).isoformat()),
        )

    def delete_older_than(self, conn: sqlite3.Connection, cutoff: datetime) -> int:
        """Drop keys recorded before cutoff. Returns the number removed."""
        cur = conn.execute("DELETE FROM idempotency_keys WHERE created_at < ?", (cutoff.isoformat(),))
        return cur.rowcount
