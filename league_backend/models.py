"""
Data models for the eligibility backend.
Domain objects only; no persistence or API logic.

A player is enabled (habilitado) for one team in one championship through an
Enrollment. Moving an enabled player to another team goes through a Transfer,
which needs consent from the origin team and from the league director.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- Roles (identity collaborator) ----------
class Role(str, Enum):
    MASTER = "master"                     # Platform superuser
    LEAGUE_DIRECTOR = "directivo_liga"    # Decides enrollments, second transfer approval
    TEAM_MANAGER = "dirigente_equipo"     # Submits enrollments, requests/consents transfers


# ---------- Championship status ----------
class ChampionshipStatus(str, Enum):
    """Championship lifecycle. Enrollments are only accepted while registration is open."""
    REGISTRATION_OPEN = "inscripcion_abierta"
    IN_PROGRESS = "en_curso"
    FINISHED = "finalizado"
    CANCELLED = "cancelado"


# ---------- Team registration status ----------
class RegistrationStatus(str, Enum):
    PENDING = "pendiente"
    CONFIRMED = "confirmada"
    REJECTED = "rechazada"


# ---------- Enrollment status (state machine) ----------
class EnrollmentStatus(str, Enum):
    """pending → enabled | rejected. Both outcomes are terminal for one enrollment."""
    PENDING = "pending"
    ENABLED = "enabled"
    REJECTED = "rejected"


# ---------- Transfer approval tracks ----------
class TrackStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TransferState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


def derive_transfer_state(origin_status: str, director_status: str) -> TransferState:
    """
    Overall transfer state from the two approval tracks.
    Rejected if either track is rejected; approved only when both are approved.
    """
    origin = TrackStatus(origin_status)
    director = TrackStatus(director_status)
    if TrackStatus.REJECTED in (origin, director):
        return TransferState.REJECTED
    if origin == TrackStatus.APPROVED and director == TrackStatus.APPROVED:
        return TransferState.APPROVED
    return TransferState.PENDING


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ---------- Actor ----------
@dataclass(frozen=True)
class Actor:
    """
    The caller of a workflow operation, as supplied by the identity collaborator.
    league_id is set for league directors, team_id for team managers.
    """
    user_id: str
    role: str  # Role value
    league_id: str | None = None
    team_id: str | None = None


# ---------- League / Team / Player ----------
@dataclass
class League:
    id: str
    name: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "created_at": self.created_at.isoformat()}


@dataclass
class Team:
    id: str
    league_id: str
    name: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "league_id": self.league_id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Player:
    """
    A registered player. jersey_number and position are the player's defaults;
    an enrollment may override them for one championship.
    """
    id: str
    name: str
    created_at: datetime
    jersey_number: int | None = None
    position: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
        }
        if self.jersey_number is not None:
            d["jersey_number"] = self.jersey_number
        if self.position is not None:
            d["position"] = self.position
        return d


@dataclass
class Category:
    id: str
    name: str


# ---------- Championship ----------
@dataclass
class Championship:
    """
    A competition within a league.
    max_enabled_players overrides the default roster cap when set.
    """
    id: str
    league_id: str
    name: str
    status: str  # ChampionshipStatus value
    created_at: datetime
    max_enabled_players: int | None = None
    category_cap: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "league_id": self.league_id,
            "name": self.name,
            "status": self.status,
            "max_enabled_players": self.max_enabled_players,
            "category_cap": self.category_cap,
            "created_at": self.created_at.isoformat(),
        }


# ---------- TeamRegistration (inscripción) ----------
@dataclass
class TeamRegistration:
    """A team's registration in a championship. Only a confirmed one fixes the team's category."""
    id: str
    championship_id: str
    team_id: str
    category_id: str
    status: str  # RegistrationStatus value
    created_at: datetime


# ---------- Enrollment (habilitación) ----------
@dataclass
class Enrollment:
    """
    A player's eligibility for one team in one championship.
    category_id always mirrors the team's confirmed registration.
    active is cleared when the player is transferred away or withdraws.
    """
    id: str
    player_id: str
    championship_id: str
    team_id: str
    category_id: str
    status: str  # EnrollmentStatus value
    active: bool
    created_at: datetime
    jersey_number: int | None = None
    position: str | None = None
    notes: str | None = None
    decided_at: datetime | None = None
    decided_by: str | None = None
    version: int = 1

    @property
    def is_open(self) -> bool:
        return self.active and self.status in (EnrollmentStatus.PENDING, EnrollmentStatus.ENABLED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "championship_id": self.championship_id,
            "team_id": self.team_id,
            "category_id": self.category_id,
            "status": self.status,
            "active": self.active,
            "jersey_number": self.jersey_number,
            "position": self.position,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
            "decided_at": _iso(self.decided_at),
            "decided_by": self.decided_by,
            "version": self.version,
        }


# ---------- Transfer ----------
@dataclass
class Transfer:
    """
    Movement of an enabled player from origin_team_id to destination_team_id.
    Two independent tracks: origin team consent, then league director approval.
    """
    id: str
    player_id: str
    championship_id: str
    origin_team_id: str
    destination_team_id: str
    origin_status: str  # TrackStatus value
    director_status: str  # TrackStatus value
    requested_by: str
    requested_at: datetime
    notes: str | None = None
    origin_decided_by: str | None = None
    origin_decided_at: datetime | None = None
    origin_notes: str | None = None
    director_decided_by: str | None = None
    director_decided_at: datetime | None = None
    director_notes: str | None = None
    cancelled: bool = False
    cancelled_at: datetime | None = None
    version: int = 1

    @property
    def state(self) -> TransferState:
        if self.cancelled:
            return TransferState.CANCELLED
        return derive_transfer_state(self.origin_status, self.director_status)

    @property
    def is_open(self) -> bool:
        return self.state == TransferState.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "championship_id": self.championship_id,
            "origin_team_id": self.origin_team_id,
            "destination_team_id": self.destination_team_id,
            "origin_status": self.origin_status,
            "director_status": self.director_status,
            "state": self.state.value,
            "requested_by": self.requested_by,
            "requested_at": self.requested_at.isoformat(),
            "notes": self.notes,
            "origin_decided_by": self.origin_decided_by,
            "origin_decided_at": _iso(self.origin_decided_at),
            "origin_notes": self.origin_notes,
            "director_decided_by": self.director_decided_by,
            "director_decided_at": _iso(self.director_decided_at),
            "director_notes": self.director_notes,
            "cancelled": self.cancelled,
            "cancelled_at": _iso(self.cancelled_at),
            "version": self.version,
        }


# ---------- Roster summary (read model) ----------
@dataclass(frozen=True)
class RosterSummary:
    """Enabled-player count against the championship cap for one team."""
    championship_id: str
    team_id: str
    enabled_count: int
    cap: int

    @property
    def remaining(self) -> int:
        return max(self.cap - self.enabled_count, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "championship_id": self.championship_id,
            "team_id": self.team_id,
            "enabled_count": self.enabled_count,
            "cap": self.cap,
            "remaining": self.remaining,
        }
