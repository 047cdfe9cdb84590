"""
Persistence for workflow results.

The engine never touches the database. The store turns rows into snapshots
and trails, and commits a TransitionResult - artifact row and version
entries - in a single transaction guarded by the revision counter.
"""
import logging
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from riskreg.models.artifact import ArtifactSnapshot, AuditEntry
from riskreg.models.audit import VersionEntry
from riskreg.models.domain import ARTIFACT_MODELS
from riskreg.models.enums import ArtifactKind, PENDING_STATUSES
from riskreg.models.version import VersionNumber
from riskreg.services.audit_trail import AuditTrail, TrailRegistry
from riskreg.services.errors import ConcurrencyConflict, InvalidTransition

logger = logging.getLogger(__name__)


class ArtifactNotFound(LookupError):
    def __init__(self, kind: ArtifactKind, artifact_id: str):
        self.kind = kind
        self.artifact_id = artifact_id
        super().__init__(f"{kind.value} {artifact_id} not found")


def snapshot_from_row(row) -> ArtifactSnapshot:
    return ArtifactSnapshot(
        kind=row.artifact_kind,
        id=row.id,
        version=VersionNumber(row.version_major, row.version_minor),
        approval_status=row.approval_status,
        reviewer_ref=row.reviewer_ref,
        approver_ref=row.approver_ref,
        last_rejection_reason=row.last_rejection_reason,
        revision=row.revision,
        scope=row.organization_id
    )


def entry_from_row(row: VersionEntry) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        artifact_kind=row.artifact_kind,
        artifact_id=row.artifact_id,
        sequence=row.sequence,
        version=VersionNumber(row.version_major, row.version_minor),
        action=row.action,
        change_description=row.change_description,
        actor_identity=row.actor_identity,
        actor_role_label=row.actor_role_label,
        created_at=row.created_at
    )


def row_from_entry(entry: AuditEntry) -> VersionEntry:
    return VersionEntry(
        id=entry.id,
        artifact_kind=entry.artifact_kind,
        artifact_id=entry.artifact_id,
        sequence=entry.sequence,
        version_major=entry.version.major,
        version_minor=entry.version.minor,
        action=entry.action,
        change_description=entry.change_description,
        actor_identity=entry.actor_identity,
        actor_role_label=entry.actor_role_label,
        created_at=entry.created_at
    )


def _snapshot_values(snapshot: ArtifactSnapshot) -> dict:
    return {
        "version_major": snapshot.version.major,
        "version_minor": snapshot.version.minor,
        "approval_status": snapshot.approval_status,
        "reviewer_ref": snapshot.reviewer_ref,
        "approver_ref": snapshot.approver_ref,
        "last_rejection_reason": snapshot.last_rejection_reason,
        "revision": snapshot.revision,
    }


class WorkflowStore:
    """Loads and commits workflow state for both artifact kinds."""

    def __init__(self, db: Session):
        self.db = db

    # Loading

    def get_row(self, kind: ArtifactKind, artifact_id: str):
        model = ARTIFACT_MODELS[ArtifactKind(kind)]
        row = self.db.get(model, artifact_id)
        if row is None:
            raise ArtifactNotFound(ArtifactKind(kind), artifact_id)
        return row

    def load_snapshot(self, kind: ArtifactKind, artifact_id: str) -> ArtifactSnapshot:
        return snapshot_from_row(self.get_row(kind, artifact_id))

    def load_trail(self, kind: ArtifactKind, artifact_id: str, revision: Optional[int] = None) -> AuditTrail:
        rows = self.db.execute(
            select(VersionEntry)
            .where(VersionEntry.artifact_kind == kind, VersionEntry.artifact_id == artifact_id)
            .order_by(VersionEntry.sequence)
        ).scalars().all()
        if revision is None:
            revision = self.get_row(kind, artifact_id).revision
        return AuditTrail(kind, artifact_id, [entry_from_row(r) for r in rows], revision=revision)

    def load(self, kind: ArtifactKind, artifact_id: str, trails: TrailRegistry) -> ArtifactSnapshot:
        """Read the snapshot and register its trail with an engine's registry."""
        snapshot = self.load_snapshot(kind, artifact_id)
        trails.put(self.load_trail(kind, artifact_id, revision=snapshot.revision))
        return snapshot

    def find_register(self, organization_id: str):
        model = ARTIFACT_MODELS[ArtifactKind.DOCUMENT]
        return self.db.execute(
            select(model).where(model.organization_id == organization_id)
        ).scalar_one_or_none()

    def pending_rows(self, kind: ArtifactKind, organization_id: str) -> List:
        model = ARTIFACT_MODELS[ArtifactKind(kind)]
        return self.db.execute(
            select(model)
            .where(model.organization_id == organization_id, model.approval_status.in_(PENDING_STATUSES))
            .order_by(model.updated_at.desc())
        ).scalars().all()

    # Committing

    def insert(self, result, row) -> None:
        """
        Commit a successful create: the new artifact row and its first entry.

        Refused with InvalidTransition when the id (or, for the register, the
        organization) is already taken.
        """
        for key, value in _snapshot_values(result.snapshot).items():
            setattr(row, key, value)
        row.id = result.snapshot.id
        row.organization_id = result.snapshot.scope
        self.db.add(row)
        self.db.add(row_from_entry(result.entry))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise InvalidTransition(
                f"{result.snapshot.kind.value} {result.snapshot.id} already exists for "
                f"organization {result.snapshot.scope}"
            )
        logger.info("Created %s %s", result.snapshot.kind.value, result.snapshot.id)

    def commit(self, result, content: Optional[dict] = None) -> None:
        """
        Commit a successful transition.

        The artifact row is only updated if it is still at the revision the
        engine started from; otherwise nothing is written and
        ConcurrencyConflict is raised. `content` columns are written in the
        same UPDATE.
        """
        if not result.ok:
            raise ValueError("Refused results have nothing to commit")

        snapshot = result.snapshot
        model = ARTIFACT_MODELS[snapshot.kind]

        if result.previous_revision == snapshot.revision:
            # Description correction: the artifact itself does not move
            if result.entry is not None:
                self.db.execute(
                    update(VersionEntry)
                    .where(VersionEntry.id == result.entry.id)
                    .values(change_description=result.entry.change_description)
                )
            self.db.commit()
            return

        try:
            updated = self.db.execute(
                update(model)
                .where(model.id == snapshot.id, model.revision == result.previous_revision)
                .values(**_snapshot_values(snapshot), **(content or {}))
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                raise ConcurrencyConflict(
                    f"{snapshot.kind.value} {snapshot.id} was modified by another user. Re-fetch and retry.",
                    expected_revision=result.previous_revision
                )
            if result.entry is not None:
                self.db.add(row_from_entry(result.entry))
            if result.removed:
                self.db.execute(
                    delete(VersionEntry).where(VersionEntry.id.in_([e.id for e in result.removed]))
                )
            self.db.commit()
        except ConcurrencyConflict:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            raise ConcurrencyConflict(
                f"{snapshot.kind.value} {snapshot.id} history was written concurrently. Re-fetch and retry.",
                expected_revision=result.previous_revision
            )
        self.db.expire_all()
