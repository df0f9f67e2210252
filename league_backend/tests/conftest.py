"""
Shared fixtures: a temporary database seeded with one league, two registered teams,
an open championship and a few players, plus the actors that work on it.
"""
from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from league_backend.models import Actor, Role
from league_backend.persistence.db import get_connection, init_db, set_db_path
from league_backend.persistence.repositories import (
    CategoryRepository,
    ChampionshipRepository,
    LeagueRepository,
    PlayerRepository,
    TeamRegistrationRepository,
    TeamRepository,
)
from league_backend.services import WorkflowCoordinator


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "league_test.db"
    set_db_path(path)
    init_db(db_path=path)
    return path


@pytest.fixture
def db_conn(db_path):
    """Connection to the temporary DB. Autocommit, so seed writes are visible to other connections."""
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def coordinator():
    return WorkflowCoordinator()


def seed_world(conn, max_enabled_players: int | None = None) -> SimpleNamespace:
    """League 'L1' with teams A and B (confirmed in category C1), open championship, 4 players."""
    league = LeagueRepository().create(conn, "Liga Norte", id="L1")
    other_league = LeagueRepository().create(conn, "Liga Sur", id="L2")
    category = CategoryRepository().create(conn, "Primera", id="C1")
    other_category = CategoryRepository().create(conn, "Reserva", id="C2")
    teams = TeamRepository()
    team_a = teams.create(conn, league.id, "Atletico", id="TA")
    team_b = teams.create(conn, league.id, "Boca", id="TB")
    team_c = teams.create(conn, league.id, "Central", id="TC")
    foreign = teams.create(conn, other_league.id, "Forasteros", id="TF")
    championship = ChampionshipRepository().create(
        conn, league.id, "Apertura", max_enabled_players=max_enabled_players, id="CH1"
    )
    registrations = TeamRegistrationRepository()
    registrations.create(conn, championship.id, team_a.id, category.id, status="confirmada")
    registrations.create(conn, championship.id, team_b.id, category.id, status="confirmada")
    registrations.create(conn, championship.id, team_c.id, category.id, status="pendiente")
    players = PlayerRepository()
    p1 = players.create(conn, "Ana", jersey_number=9, position="delantera", id="P1")
    p2 = players.create(conn, "Bruno", jersey_number=5, id="P2")
    p3 = players.create(conn, "Carla", id="P3")
    p4 = players.create(conn, "Diego", id="P4")
    return SimpleNamespace(
        league=league,
        other_league=other_league,
        category=category,
        other_category=other_category,
        team_a=team_a,
        team_b=team_b,
        team_c=team_c,
        foreign=foreign,
        championship=championship,
        players=[p1, p2, p3, p4],
        master=Actor(user_id="u-master", role=Role.MASTER.value),
        director=Actor(user_id="u-dir", role=Role.LEAGUE_DIRECTOR.value, league_id=league.id),
        director_2=Actor(user_id="u-dir-2", role=Role.LEAGUE_DIRECTOR.value, league_id=league.id),
        foreign_director=Actor(user_id="u-dir-sur", role=Role.LEAGUE_DIRECTOR.value, league_id=other_league.id),
        manager_a=Actor(user_id="u-mgr-a", role=Role.TEAM_MANAGER.value, team_id=team_a.id),
        manager_b=Actor(user_id="u-mgr-b", role=Role.TEAM_MANAGER.value, team_id=team_b.id),
    )


@pytest.fixture
def world(db_conn):
    return seed_world(db_conn)


@pytest.fixture
def enable(coordinator, db_conn, world):
    """Submit as master and approve as the league director; returns the enabled enrollment."""

    def _enable(player_id: str, team_id: str):
        enrollment = coordinator.submit_enrollment(db_conn, world.master, player_id, world.championship.id, team_id)
        return coordinator.approve_enrollment(db_conn, world.director, enrollment.id)

    return _enable


@pytest.fixture
def set_cap(db_conn, world):
    """Override the championship roster cap."""

    def _set_cap(cap: int | None) -> None:
        ChampionshipRepository().update_max_enabled_players(db_conn, world.championship.id, cap)

    return _set_cap
