"""
SQLite schema for leagues, championships, enrollments and transfers.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def leagues_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS leagues (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    """


def teams_schema() -> str:
    """Every team belongs to exactly one league."""
    return """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE INDEX IF NOT EXISTS ix_teams_league ON teams(league_id);
    """


def players_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        jersey_number INTEGER,
        position TEXT,
        created_at TEXT NOT NULL
    );
    """


def categories_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS categories (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL
    );
    """


def championships_schema() -> str:
    """status: inscripcion_abierta | en_curso | finalizado | cancelado. max_enabled_players NULL = default cap."""
    return """
    CREATE TABLE IF NOT EXISTS championships (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        name TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'inscripcion_abierta',
        max_enabled_players INTEGER,
        category_cap INTEGER,
        created_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE INDEX IF NOT EXISTS ix_championships_league ON championships(league_id);
    """


def team_registrations_schema() -> str:
    """Team inscription in a championship. status: pendiente | confirmada | rechazada."""
    return """
    CREATE TABLE IF NOT EXISTS team_registrations (
        id TEXT PRIMARY KEY,
        championship_id TEXT NOT NULL,
        team_id TEXT NOT NULL,
        category_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pendiente',
        created_at TEXT NOT NULL,
        FOREIGN KEY (championship_id) REFERENCES championships(id),
        FOREIGN KEY (team_id) REFERENCES teams(id),
        FOREIGN KEY (category_id) REFERENCES categories(id)
    );
    CREATE INDEX IF NOT EXISTS ix_team_registrations_championship ON team_registrations(championship_id, team_id);
    """


def enrollments_schema() -> str:
    """
    Player enrollments (habilitaciones). status: pending | enabled | rejected.
    Rows are never deleted; active = 0 marks transferred-away or withdrawn enrollments.
    """
    return """
    CREATE TABLE IF NOT EXISTS enrollments (
        id TEXT PRIMARY KEY,
        player_id TEXT NOT NULL,
        championship_id TEXT NOT NULL,
        team_id TEXT NOT NULL,
        category_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        jersey_number INTEGER,
        position TEXT,
        notes TEXT,
        active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        decided_at TEXT,
        decided_by TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        FOREIGN KEY (player_id) REFERENCES players(id),
        FOREIGN KEY (championship_id) REFERENCES championships(id),
        FOREIGN KEY (team_id) REFERENCES teams(id),
        FOREIGN KEY (category_id) REFERENCES categories(id)
    );
    CREATE INDEX IF NOT EXISTS ix_enrollments_roster ON enrollments(championship_id, team_id, status, active);
    CREATE INDEX IF NOT EXISTS ix_enrollments_player ON enrollments(player_id, championship_id);
    """


def transfers_schema() -> str:
    """Two approval tracks (origin, director): pending | approved | rejected. cancelled = 1 is terminal."""
    return """
    CREATE TABLE IF NOT EXISTS transfers (
        id TEXT PRIMARY KEY,
        player_id TEXT NOT NULL,
        championship_id TEXT NOT NULL,
        origin_team_id TEXT NOT NULL,
        destination_team_id TEXT NOT NULL,
        origin_status TEXT NOT NULL DEFAULT 'pending',
        director_status TEXT NOT NULL DEFAULT 'pending',
        requested_by TEXT NOT NULL,
        requested_at TEXT NOT NULL,
        notes TEXT,
        origin_decided_by TEXT,
        origin_decided_at TEXT,
        origin_notes TEXT,
        director_decided_by TEXT,
        director_decided_at TEXT,
        director_notes TEXT,
        cancelled INTEGER NOT NULL DEFAULT 0,
        cancelled_at TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        FOREIGN KEY (player_id) REFERENCES players(id),
        FOREIGN KEY (championship_id) REFERENCES championships(id),
        FOREIGN KEY (origin_team_id) REFERENCES teams(id),
        FOREIGN KEY (destination_team_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_transfers_player ON transfers(player_id, championship_id);
    CREATE INDEX IF NOT EXISTS ix_transfers_championship ON transfers(championship_id);
    """


def idempotency_keys_schema() -> str:
    """
    Request keys already applied: key -> (operation, target, entity).
    target is what the call was aimed at: the entity id, or a natural key for creations.
    """
    return """
    CREATE TABLE IF NOT EXISTS idempotency_keys (
        request_key TEXT PRIMARY KEY,
        operation TEXT NOT NULL,
        target TEXT NOT NULL,
        entity_kind TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_idempotency_keys_created ON idempotency_keys(created_at);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Referenced tables first."""
    return "\n".join([
        leagues_schema(),
        teams_schema(),
        players_schema(),
        categories_schema(),
        championships_schema(),
        team_registrations_schema(),
        enrollments_schema(),
        transfers_schema(),
        idempotency_keys_schema(),
    ])
