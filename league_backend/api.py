"""
REST API for player enrollments and transfers.
Thin wrappers around the workflow coordinator.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from league_backend import config
from league_backend.auth import decode_token
from league_backend.models import Actor
from league_backend.persistence import get_connection, init_db
from league_backend.persistence.db import get_db_path
from league_backend.services import WorkflowCoordinator
from league_backend.services.errors import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
    WorkflowError,
)

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db(db_path=get_db_path())
    with db_conn() as conn:
        coordinator.prune_request_keys(conn)
    logger.info("database ready at %s", get_db_path())
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="League Eligibility API",
    description="Player enrollments (habilitaciones) and two-party transfers",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:4200",
        "http://127.0.0.1:4200",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

coordinator = WorkflowCoordinator()
security = HTTPBearer(auto_error=False)


# ---------- Error mapping ----------

_STATUS_BY_ERROR: list[tuple[type[WorkflowError], int]] = [
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
]


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    """Typed error -> {"error": kind, "message": str}. Remaining kinds are state conflicts (409)."""
    status_code = 409
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    return JSONResponse(status_code=status_code, content={"error": exc.kind, "message": str(exc)})


# ---------- Request models ----------


class SubmitEnrollmentRequest(BaseModel):
    player_id: str
    championship_id: str
    team_id: str
    category_id: str | None = Field(None, description="Optional; must match the team's confirmed registration")
    jersey_number: int | None = Field(None, ge=0)
    position: str | None = Field(None, max_length=50)
    notes: str | None = None


class UpdateEnrollmentRequest(BaseModel):
    jersey_number: int | None = Field(None, ge=0)
    position: str | None = Field(None, max_length=50)
    notes: str | None = None
    expected_version: int | None = None


class DecisionRequest(BaseModel):
    notes: str | None = Field(None, description="Reason; required when rejecting an enrollment or as origin team")
    expected_version: int | None = Field(None, description="Version the caller read; stale -> 409 conflict")


class RequestTransferRequest(BaseModel):
    player_id: str
    championship_id: str
    origin_team_id: str
    destination_team_id: str
    notes: str | None = None


def _get_actor(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> Actor:
    """Actor from the bearer token; 401 if missing or invalid."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Bearer token required")
    actor = decode_token(credentials.credentials)
    if actor is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return actor


def _decision(req: DecisionRequest | None) -> DecisionRequest:
    return req if req is not None else DecisionRequest()


# ---------- Endpoints ----------


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ---------- Enrollments ----------


@app.post("/enrollments")
def submit_enrollment(
    req: SubmitEnrollmentRequest,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    with db_conn() as conn:
        enrollment = coordinator.submit_enrollment(
            conn, actor,
            player_id=req.player_id,
            championship_id=req.championship_id,
            team_id=req.team_id,
            category_id=req.category_id,
            jersey_number=req.jersey_number,
            position=req.position,
            notes=req.notes,
            request_key=idempotency_key,
        )
        return enrollment.to_dict()


@app.get("/enrollments/pending")
def pending_enrollments(actor: Actor = Depends(_get_actor)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"enrollments": [e.to_dict() for e in coordinator.pending_enrollments(conn, actor)]}


@app.get("/enrollments/{enrollment_id}", dependencies=[Depends(_get_actor)])
def get_enrollment(enrollment_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return coordinator.get_enrollment(conn, enrollment_id).to_dict()


@app.patch("/enrollments/{enrollment_id}")
def update_enrollment(
    enrollment_id: str,
    req: UpdateEnrollmentRequest,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    with db_conn() as conn:
        enrollment = coordinator.update_enrollment(
            conn, actor, enrollment_id,
            jersey_number=req.jersey_number,
            position=req.position,
            notes=req.notes,
            expected_version=req.expected_version,
            request_key=idempotency_key,
        )
        return enrollment.to_dict()


@app.delete("/enrollments/{enrollment_id}")
def withdraw_enrollment(
    enrollment_id: str,
    expected_version: int | None = Query(None),
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    with db_conn() as conn:
        enrollment = coordinator.withdraw_enrollment(
            conn, actor, enrollment_id, expected_version=expected_version, request_key=idempotency_key
        )
        return enrollment.to_dict()


@app.post("/enrollments/{enrollment_id}/approve")
def approve_enrollment(
    enrollment_id: str,
    req: DecisionRequest | None = None,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    d = _decision(req)
    with db_conn() as conn:
        enrollment = coordinator.approve_enrollment(
            conn, actor, enrollment_id,
            notes=d.notes, expected_version=d.expected_version, request_key=idempotency_key,
        )
        return enrollment.to_dict()


@app.post("/enrollments/{enrollment_id}/reject")
def reject_enrollment(
    enrollment_id: str,
    req: DecisionRequest | None = None,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    d = _decision(req)
    with db_conn() as conn:
        enrollment = coordinator.reject_enrollment(
            conn, actor, enrollment_id,
            notes=d.notes, expected_version=d.expected_version, request_key=idempotency_key,
        )
        return enrollment.to_dict()


@app.get("/players/{player_id}/enrollments", dependencies=[Depends(_get_actor)])
def player_enrollments(player_id: str) -> dict[str, Any]:
    """Full history, rejected and inactive enrollments included."""
    with db_conn() as conn:
        return {"enrollments": [e.to_dict() for e in coordinator.enrollment_history(conn, player_id)]}


@app.get("/championships/{championship_id}/enrollments", dependencies=[Depends(_get_actor)])
def championship_enrollments(championship_id: str, team_id: str | None = Query(None)) -> dict[str, Any]:
    with db_conn() as conn:
        enrollments = coordinator.list_enrollments(conn, championship_id, team_id)
        return {"enrollments": [e.to_dict() for e in enrollments]}


@app.get("/championships/{championship_id}/teams/{team_id}/roster", dependencies=[Depends(_get_actor)])
def roster_summary(championship_id: str, team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return coordinator.roster_summary(conn, championship_id, team_id).to_dict()


# ---------- Transfers ----------


@app.post("/transfers")
def request_transfer(
    req: RequestTransferRequest,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    with db_conn() as conn:
        transfer = coordinator.request_transfer(
            conn, actor,
            player_id=req.player_id,
            championship_id=req.championship_id,
            origin_team_id=req.origin_team_id,
            destination_team_id=req.destination_team_id,
            notes=req.notes,
            request_key=idempotency_key,
        )
        return transfer.to_dict()


@app.get("/transfers/pending-origin")
def pending_origin_transfers(actor: Actor = Depends(_get_actor)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"transfers": [t.to_dict() for t in coordinator.pending_origin_transfers(conn, actor)]}


@app.get("/transfers/pending-director")
def pending_director_transfers(actor: Actor = Depends(_get_actor)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"transfers": [t.to_dict() for t in coordinator.pending_director_transfers(conn, actor)]}


@app.get("/transfers/{transfer_id}", dependencies=[Depends(_get_actor)])
def get_transfer(transfer_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return coordinator.get_transfer(conn, transfer_id).to_dict()


@app.post("/transfers/{transfer_id}/approve-origin")
def approve_transfer_origin(
    transfer_id: str,
    req: DecisionRequest | None = None,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    d = _decision(req)
    with db_conn() as conn:
        transfer = coordinator.approve_transfer_origin(
            conn, actor, transfer_id,
            notes=d.notes, expected_version=d.expected_version, request_key=idempotency_key,
        )
        return transfer.to_dict()


@app.post("/transfers/{transfer_id}/reject-origin")
def reject_transfer_origin(
    transfer_id: str,
    req: DecisionRequest | None = None,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    d = _decision(req)
    with db_conn() as conn:
        transfer = coordinator.reject_transfer_origin(
            conn, actor, transfer_id,
            notes=d.notes, expected_version=d.expected_version, request_key=idempotency_key,
        )
        return transfer.to_dict()


@app.post("/transfers/{transfer_id}/approve-director")
def approve_transfer_director(
    transfer_id: str,
    req: DecisionRequest | None = None,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    d = _decision(req)
    with db_conn() as conn:
        transfer = coordinator.approve_transfer_director(
            conn, actor, transfer_id,
            notes=d.notes, expected_version=d.expected_version, request_key=idempotency_key,
        )
        return transfer.to_dict()


@app.post("/transfers/{transfer_id}/reject-director")
def reject_transfer_director(
    transfer_id: str,
    req: DecisionRequest | None = None,
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    d = _decision(req)
    with db_conn() as conn:
        transfer = coordinator.reject_transfer_director(
            conn, actor, transfer_id,
            notes=d.notes, expected_version=d.expected_version, request_key=idempotency_key,
        )
        return transfer.to_dict()


@app.delete("/transfers/{transfer_id}")
def cancel_transfer(
    transfer_id: str,
    expected_version: int | None = Query(None),
    actor: Actor = Depends(_get_actor),
    idempotency_key: str | None = Header(None),
) -> dict[str, Any]:
    with db_conn() as conn:
        transfer = coordinator.cancel_transfer(
            conn, actor, transfer_id, expected_version=expected_version, request_key=idempotency_key
        )
        return transfer.to_dict()


@app.get("/players/{player_id}/transfers", dependencies=[Depends(_get_actor)])
def player_transfers(player_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return {"transfers": [t.to_dict() for t in coordinator.transfer_history(conn, player_id)]}


@app.get("/championships/{championship_id}/transfers", dependencies=[Depends(_get_actor)])
def championship_transfers(championship_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return {"transfers": [t.to_dict() for t in coordinator.list_transfers(conn, championship_id)]}


@app.get("/championships/{championship_id}/transfer-candidates", dependencies=[Depends(_get_actor)])
def transfer_candidates(championship_id: str) -> dict[str, Any]:
    """Enabled players without an open transfer ('disponibles para transferencia')."""
    with db_conn() as conn:
        return {"enrollments": [e.to_dict() for e in coordinator.transfer_candidates(conn, championship_id)]}


# ---------- Run with: uvicorn league_backend.api:app --reload ----------
