"""
Value objects handed to and returned from the workflow engine.

These are plain frozen dataclasses: the engine never touches the database,
it receives a snapshot and returns a new one for the store to commit.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional
import uuid

from riskreg.models.enums import ApprovalStatus, ArtifactKind, VersionAction
from riskreg.models.version import VersionNumber


@dataclass(frozen=True)
class Actor:
    """The identity performing a request, with the capabilities it holds."""
    identity: str
    role_label: str
    can_edit: bool = True
    is_global_admin: bool = False


@dataclass(frozen=True)
class ArtifactSnapshot:
    """
    Approval-relevant state of a Document or an Item.

    Invariants:
    - last_rejection_reason is only set while REJECTED
    - revision increases by one on every accepted mutation (optimistic lock token)
    """
    kind: ArtifactKind
    id: str
    version: VersionNumber
    approval_status: ApprovalStatus
    reviewer_ref: Optional[str] = None
    approver_ref: Optional[str] = None
    last_rejection_reason: Optional[str] = None
    revision: int = 0
    scope: Optional[str] = None

    def evolve(self, **changes) -> "ArtifactSnapshot":
        """Copy with changes applied and the revision advanced."""
        changes.setdefault("revision", self.revision + 1)
        return replace(self, **changes)


def _new_entry_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class AuditEntry:
    """
    One immutable record of a workflow transition.

    version is the artifact version after the transition was applied.
    actor_role_label is denormalized so history stays accurate when roles change.
    """
    artifact_kind: ArtifactKind
    artifact_id: str
    sequence: int
    version: VersionNumber
    action: VersionAction
    change_description: str
    actor_identity: str
    actor_role_label: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    id: str = field(default_factory=_new_entry_id)

    def with_description(self, change_description: str) -> "AuditEntry":
        """Annotation edit: only the description changes."""
        return replace(self, change_description=change_description)
