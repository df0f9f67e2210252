"""
Error taxonomy for the eligibility workflow.
Every error is recoverable by the caller; the service layer never retries.
"""
from __future__ import annotations


class WorkflowError(ValueError):
    """Base class. kind is the stable name surfaced to API clients."""

    kind = "workflow_error"


class ValidationError(WorkflowError):
    """Malformed or policy-violating input (wrong current team, duplicate pending transfer, ...)."""

    kind = "validation_error"


class NotFoundError(WorkflowError):
    """Referenced enrollment, transfer, championship, team or player does not exist."""

    kind = "not_found"


class AuthorizationError(WorkflowError):
    """Actor lacks the role capability or the league/team scope for the operation."""

    kind = "authorization_error"


class InvalidStateTransition(WorkflowError):
    """Operation not valid for the current state (e.g. approving an already-rejected track)."""

    kind = "invalid_state_transition"


class OutOfOrderApproval(WorkflowError):
    """Director approval attempted before the origin team approved."""

    kind = "out_of_order_approval"


class CapacityExceeded(WorkflowError):
    """Roster cap reached at the moment of the atomic check."""

    kind = "capacity_exceeded"


class ConflictError(WorkflowError):
    """Entity changed since the caller read it (stale optimistic-concurrency version)."""

    kind = "conflict"
