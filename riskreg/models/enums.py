"""Enums for the approval workflow - these define the valid values for states and actions."""
from enum import Enum


class ApprovalStatus(str, Enum):
    """The five states an artifact can be in. No other states are allowed."""
    DRAFT = "DRAFT"
    PENDING_FIRST_APPROVAL = "PENDING_FIRST_APPROVAL"
    PENDING_SECOND_APPROVAL = "PENDING_SECOND_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


PENDING_STATUSES = frozenset({
    ApprovalStatus.PENDING_FIRST_APPROVAL,
    ApprovalStatus.PENDING_SECOND_APPROVAL,
})


class VersionAction(str, Enum):
    """Action recorded on an audit entry."""
    DRAFT_AND_REVIEW = "DRAFT_AND_REVIEW"
    SUBMITTED_FOR_REVIEW = "SUBMITTED_FOR_REVIEW"
    FIRST_LEVEL_APPROVAL = "FIRST_LEVEL_APPROVAL"
    SECOND_LEVEL_APPROVAL = "SECOND_LEVEL_APPROVAL"
    UPDATION = "UPDATION"
    REJECTED = "REJECTED"


class BumpKind(str, Enum):
    """How a version number moves on submission or revision."""
    NONE = "NONE"
    MINOR = "MINOR"
    MAJOR = "MAJOR"


class ArtifactKind(str, Enum):
    """Granularity the engine is instantiated for."""
    DOCUMENT = "DOCUMENT"
    ITEM = "ITEM"


class Transition(str, Enum):
    """Requests the engine understands."""
    CREATE = "create"
    SUBMIT_FOR_REVIEW = "submit_for_review"
    FIRST_APPROVAL = "first_approval"
    SECOND_APPROVAL = "second_approval"
    REJECT = "reject"
    START_NEW_REVISION = "start_new_revision"
    DISCARD_REVISION = "discard_revision"
    RECORD_UPDATE = "record_update"
    ASSIGN = "assign"
    CORRECT_DESCRIPTION = "correct_description"


class RiskBand(str, Enum):
    """Inherent risk band derived from likelihood x impact."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
