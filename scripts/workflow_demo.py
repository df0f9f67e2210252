#!/usr/bin/env python3
"""
Workflow demo: Enroll players → Hit the roster cap → Transfer a player → Inspect rosters.
Run from project root: python3 scripts/workflow_demo.py
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from league_backend import config
from league_backend.models import Actor, Role
from league_backend.persistence import (
    CategoryRepository,
    ChampionshipRepository,
    LeagueRepository,
    PlayerRepository,
    TeamRegistrationRepository,
    TeamRepository,
    get_connection,
    init_db,
)
from league_backend.persistence.db import set_db_path
from league_backend.services import CapacityExceeded, OutOfOrderApproval, WorkflowCoordinator


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")

    # Fresh demo DB, distinct from league.db
    db_path = PROJECT_ROOT / "data" / "workflow_demo.db"
    if db_path.exists():
        db_path.unlink()
    set_db_path(db_path)
    init_db(db_path=db_path)

    conn = get_connection()
    try:
        # 1. League, two teams registered in one category, championship capped at 2
        league = LeagueRepository().create(conn, "Liga Barrial")
        category = CategoryRepository().create(conn, "Senior")
        team_a = TeamRepository().create(conn, league.id, "Los Halcones")
        team_b = TeamRepository().create(conn, league.id, "Deportivo Sur")
        championship = ChampionshipRepository().create(conn, league.id, "Clausura", max_enabled_players=2)
        for team in (team_a, team_b):
            TeamRegistrationRepository().create(conn, championship.id, team.id, category.id, status="confirmada")
        players = [PlayerRepository().create(conn, name, jersey_number=n) for n, name in enumerate(
            ["Rosa", "Tomas", "Ulises"], start=7)]
        print(f"Championship {championship.name} (cap {championship.max_enabled_players})")

        director = Actor(user_id="director-1", role=Role.LEAGUE_DIRECTOR.value, league_id=league.id)
        manager_a = Actor(user_id="manager-a", role=Role.TEAM_MANAGER.value, team_id=team_a.id)
        manager_b = Actor(user_id="manager-b", role=Role.TEAM_MANAGER.value, team_id=team_b.id)
        wf = WorkflowCoordinator()

        # 2. Enroll all three at team A; the third approval hits the cap
        for player in players:
            e = wf.submit_enrollment(conn, manager_a, player.id, championship.id, team_a.id)
            try:
                e = wf.approve_enrollment(conn, director, e.id)
                print(f"Enabled {player.name} for {team_a.name}")
            except CapacityExceeded as exc:
                print(f"Not enabled {player.name}: {exc}")

        # 3. Team B asks for the first player
        t = wf.request_transfer(conn, manager_b, players[0].id, championship.id, team_a.id, team_b.id)
        print(f"Transfer requested: {t.id} ({t.state.value})")
        try:
            wf.approve_transfer_director(conn, director, t.id)
        except OutOfOrderApproval as exc:
            print(f"  Director too early: {exc}")
        t = wf.approve_transfer_origin(conn, manager_a, t.id, notes="agreed")
        t = wf.approve_transfer_director(conn, director, t.id)
        print(f"  Transfer {t.state.value}: origin={t.origin_status}, director={t.director_status}")

        # 4. Rosters after the move
        for team in (team_a, team_b):
            s = wf.roster_summary(conn, championship.id, team.id)
            print(f"{team.name}: {s.enabled_count}/{s.cap} enabled")
        for e in wf.enrollment_history(conn, players[0].id):
            print(f"  {players[0].name} @ {e.team_id[:8]}: {e.status} active={e.active}")

        print("\nWorkflow demo complete.")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
