"""
Workflow refusals.

A refusal is NOT a crash - it's the system working correctly. Each one has a
stable code and a message telling the caller what to do next. The engine
returns them inside a TransitionResult instead of letting them escape.
"""
from typing import Optional


class WorkflowError(Exception):
    """Base class for recoverable business refusals."""
    code = "workflow_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class Unauthorized(WorkflowError):
    """Actor lacks the role or assignment for the requested transition."""
    code = "unauthorized"


class InvalidTransition(WorkflowError):
    """Current status does not permit the transition, or a required field is empty."""
    code = "invalid_transition"


class ConcurrencyConflict(WorkflowError):
    """The artifact changed since the caller's snapshot was read. Re-fetch and retry."""
    code = "concurrency_conflict"

    def __init__(self, message: str, expected_revision: Optional[int] = None, actual_revision: Optional[int] = None):
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(message)


class NoDiscardableRevision(WorkflowError):
    """Discard requested but there is no unsubmitted revision on top of an approved baseline."""
    code = "no_discardable_revision"


class ValidationFailed(WorkflowError):
    """A payload value is malformed (unknown bump kind, foreign entry id, ...)."""
    code = "validation_failed"


class AuditTrailCorrupted(RuntimeError):
    """
    Internal invariant violation in a stored audit trail.

    Deliberately not a WorkflowError: it must never be turned into a result.
    """
