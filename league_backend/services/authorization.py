"""
Role capabilities and scope checks.

Each role maps to a capability set; an operation asks for one capability plus the
league/team it touches. Master holds every capability in any scope, league directors
act within their league, team managers within their team.
"""
from __future__ import annotations

from enum import Enum

from league_backend.models import Actor, Role, Transfer

from .errors import AuthorizationError


class Capability(str, Enum):
    SUBMIT_ENROLLMENT = "submit_enrollment"
    DECIDE_ENROLLMENT = "decide_enrollment"
    REQUEST_TRANSFER = "request_transfer"
    DECIDE_TRANSFER_ORIGIN = "decide_transfer_origin"
    DECIDE_TRANSFER_DIRECTOR = "decide_transfer_director"
    CANCEL_TRANSFER = "cancel_transfer"


ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    Role.MASTER: frozenset(Capability),
    Role.LEAGUE_DIRECTOR: frozenset({
        Capability.SUBMIT_ENROLLMENT,
        Capability.DECIDE_ENROLLMENT,
        Capability.REQUEST_TRANSFER,
        Capability.DECIDE_TRANSFER_DIRECTOR,
        Capability.CANCEL_TRANSFER,
    }),
    Role.TEAM_MANAGER: frozenset({
        Capability.SUBMIT_ENROLLMENT,
        Capability.REQUEST_TRANSFER,
        Capability.DECIDE_TRANSFER_ORIGIN,
        Capability.CANCEL_TRANSFER,
    }),
}


def capabilities_for(actor: Actor) -> frozenset[Capability]:
    return ROLE_CAPABILITIES.get(actor.role, frozenset())


def in_scope(actor: Actor, league_id: str | None, team_id: str | None) -> bool:
    """Master: everywhere. League director: own league. Team manager: own team."""
    if actor.role == Role.MASTER:
        return True
    if actor.role == Role.LEAGUE_DIRECTOR:
        return actor.league_id is not None and actor.league_id == league_id
    if actor.role == Role.TEAM_MANAGER:
        return actor.team_id is not None and actor.team_id == team_id
    return False


def can(actor: Actor, capability: Capability, league_id: str | None, team_id: str | None = None) -> bool:
    return capability in capabilities_for(actor) and in_scope(actor, league_id, team_id)


def authorize(
    actor: Actor, capability: Capability, league_id: str | None, team_id: str | None = None
) -> None:
    """Raise AuthorizationError unless actor holds capability within (league_id, team_id)."""
    if capability not in capabilities_for(actor):
        raise AuthorizationError(f"Role '{actor.role}' cannot {capability.value.replace('_', ' ')}")
    if not in_scope(actor, league_id, team_id):
        raise AuthorizationError(
            f"User {actor.user_id} ({actor.role}) is outside the scope of league={league_id} team={team_id}"
        )


def authorize_cancel(actor: Actor, transfer: Transfer) -> None:
    """Only the requesting side cancels: the user who requested, or the destination team's manager."""
    if Capability.CANCEL_TRANSFER not in capabilities_for(actor):
        raise AuthorizationError(f"Role '{actor.role}' cannot cancel transfers")
    if actor.user_id == transfer.requested_by:
        return
    if actor.role == Role.TEAM_MANAGER and actor.team_id == transfer.destination_team_id:
        return
    raise AuthorizationError("Only the requesting (destination) team can cancel a transfer")


def authorize_second_approval(actor: Actor, transfer: Transfer) -> None:
    """The director approval must come from a different user than the origin approval."""
    if transfer.origin_decided_by is not None and transfer.origin_decided_by == actor.user_id:
        raise AuthorizationError("Origin and director approvals must come from different users")
