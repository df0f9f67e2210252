"""
Service layer: roster ledger, enrollment and transfer state machines, workflow coordinator.
State machines run inside the caller's transaction; the coordinator owns transactions and locks.
"""
from .errors import (
    WorkflowError,
    ValidationError,
    NotFoundError,
    AuthorizationError,
    InvalidStateTransition,
    OutOfOrderApproval,
    CapacityExceeded,
    ConflictError,
)
from .roster_ledger import RosterLedger
from .enrollment_service import EnrollmentService
from .transfer_service import TransferService
from .workflow import WorkflowCoordinator

__all__ = [
    "WorkflowError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "InvalidStateTransition",
    "OutOfOrderApproval",
    "CapacityExceeded",
    "ConflictError",
    "RosterLedger",
    "EnrollmentService",
    "TransferService",
    "WorkflowCoordinator",
]
