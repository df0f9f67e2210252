"""
Persistence layer for eligibility data.
No business logic: connections, schema and read/write interfaces.
"""
from .db import get_connection, init_db, set_db_path, transaction
from .repositories import (
    LeagueRepository,
    TeamRepository,
    PlayerRepository,
    CategoryRepository,
    ChampionshipRepository,
    TeamRegistrationRepository,
    EnrollmentRepository,
    TransferRepository,
    IdempotencyRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "set_db_path",
    "transaction",
    "LeagueRepository",
    "TeamRepository",
    "PlayerRepository",
    "CategoryRepository",
    "ChampionshipRepository",
    "TeamRegistrationRepository",
    "EnrollmentRepository",
    "TransferRepository",
    "IdempotencyRepository",
]
