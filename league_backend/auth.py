"""
Bearer-token identity. Tokens are issued by the platform's auth service;
here they are only decoded into an Actor. create_access_token exists for
tests and local demos.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from league_backend import config
from league_backend.models import Actor, Role


def create_access_token(
    user_id: str,
    role: str,
    league_id: str | None = None,
    team_id: str | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": user_id, "role": Role(role).value, "exp": expire}
    if league_id is not None:
        to_encode["league_id"] = league_id
    if team_id is not None:
        to_encode["team_id"] = team_id
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_token(token: str) -> Actor | None:
    """Actor from a valid token; None when the token is invalid, expired, or names an unknown role."""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or role not in {r.value for r in Role}:
        return None
    return Actor(
        user_id=user_id,
        role=role,
        league_id=payload.get("league_id"),
        team_id=payload.get("team_id"),
    )
