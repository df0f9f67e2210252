"""
Tests for derived transfer state and model helpers.
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from league_backend.models import (
    RosterSummary,
    TrackStatus,
    Transfer,
    TransferState,
    derive_transfer_state,
)

P, A, R = TrackStatus.PENDING.value, TrackStatus.APPROVED.value, TrackStatus.REJECTED.value


@pytest.mark.parametrize(
    "origin,director,expected",
    [
        (P, P, TransferState.PENDING),
        (A, P, TransferState.PENDING),
        (P, A, TransferState.PENDING),
        (A, A, TransferState.APPROVED),
        (R, P, TransferState.REJECTED),
        (P, R, TransferState.REJECTED),
        (R, A, TransferState.REJECTED),
        (A, R, TransferState.REJECTED),
        (R, R, TransferState.REJECTED),
    ],
)
def test_derive_transfer_state(origin, director, expected):
    assert derive_transfer_state(origin, director) == expected


def test_derive_transfer_state_rejects_unknown_status():
    with pytest.raises(ValueError):
        derive_transfer_state("maybe", P)


def _transfer(**overrides) -> Transfer:
    fields = dict(
        id="T1",
        player_id="P1",
        championship_id="CH1",
        origin_team_id="TA",
        destination_team_id="TB",
        origin_status=P,
        director_status=P,
        requested_by="u-1",
        requested_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Transfer(**fields)


def test_cancelled_transfer_state_overrides_tracks():
    t = _transfer(cancelled=True)
    assert t.state == TransferState.CANCELLED
    assert not t.is_open
    assert t.to_dict()["state"] == "cancelled"


def test_transfer_to_dict_carries_derived_state():
    t = _transfer(origin_status=A, director_status=A)
    d = t.to_dict()
    assert d["state"] == "approved"
    assert d["origin_status"] == "approved"
    assert d["requested_at"].startswith("2024-03-01")
    assert d["cancelled_at"] is None


def test_roster_summary_remaining_never_negative():
    assert RosterSummary("CH1", "TA", enabled_count=3, cap=5).remaining == 2
    assert RosterSummary("CH1", "TA", enabled_count=6, cap=5).remaining == 0
    assert RosterSummary("CH1", "TA", enabled_count=5, cap=5).to_dict()["remaining"] == 0
