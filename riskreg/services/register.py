"""
Risk register service - wires the workflow engine to the database.

Every request gets fresh engines whose trails are loaded from the store,
so the engine stays free of I/O and the store is the only writer.
"""
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple
import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from riskreg.config import WorkflowPolicy
from riskreg.models.artifact import Actor, ArtifactSnapshot, AuditEntry
from riskreg.models.domain import Risk, RiskRegister
from riskreg.models.enums import ApprovalStatus, ArtifactKind, BumpKind, Transition
from riskreg.services.audit_trail import TrailRegistry
from riskreg.services.errors import ConcurrencyConflict, InvalidTransition, ValidationFailed
from riskreg.services.scoring import inherent_score
from riskreg.services.store import WorkflowStore
from riskreg.services.workflow import TransitionResult, WorkflowEngine

logger = logging.getLogger(__name__)

# Engine operations callable through RegisterService.apply
OPERATIONS = {
    Transition.SUBMIT_FOR_REVIEW: "submit_for_review",
    Transition.FIRST_APPROVAL: "first_approval",
    Transition.SECOND_APPROVAL: "second_approval",
    Transition.REJECT: "reject",
    Transition.START_NEW_REVISION: "start_new_revision",
    Transition.DISCARD_REVISION: "discard_revision",
    Transition.RECORD_UPDATE: "record_update",
    Transition.ASSIGN: "assign",
    Transition.CORRECT_DESCRIPTION: "correct_description",
}

# Fields an UPDATION may change, per artifact kind
CONTENT_FIELDS = {
    ArtifactKind.DOCUMENT: frozenset({"title"}),
    ArtifactKind.ITEM: frozenset({"title", "description", "owner_ref", "likelihood", "impact"}),
}


@dataclass(frozen=True)
class PendingApproval:
    kind: ArtifactKind
    snapshot: ArtifactSnapshot
    title: str
    actionable: bool


@dataclass(frozen=True)
class BulkSubmitOutcome:
    artifact_id: str
    code: str
    result: TransitionResult


class RegisterService:
    """Creates artifacts and applies workflow operations with persistence."""

    def __init__(self, db: Session, policy: Optional[WorkflowPolicy] = None):
        self.db = db
        self.policy = policy or WorkflowPolicy()
        self.store = WorkflowStore(db)

    def engine(self, kind: ArtifactKind) -> WorkflowEngine:
        return WorkflowEngine(kind, self.policy, trails=TrailRegistry())

    # Creation

    def create_register(
        self,
        organization_id: str,
        actor: Actor,
        title: str = "Risk Register",
        reviewer_ref: Optional[str] = None,
        approver_ref: Optional[str] = None,
        change_description: Optional[str] = None
    ) -> Tuple[Optional[RiskRegister], TransitionResult]:
        """Create the organization's register. Refused if one already exists."""
        existing = self.store.find_register(organization_id)
        if existing is not None:
            return None, TransitionResult(
                snapshot=self.store.load_snapshot(ArtifactKind.DOCUMENT, existing.id),
                error=InvalidTransition(
                    f"Organization {organization_id} already has a risk register ({existing.id})"
                )
            )

        engine = self.engine(ArtifactKind.DOCUMENT)
        result = engine.create(
            uuid.uuid4().hex, actor, change_description,
            reviewer_ref=reviewer_ref, approver_ref=approver_ref, scope=organization_id
        )
        if not result.ok:
            return None, result

        row = RiskRegister(title=title)
        return self._insert(result, row)

    def create_risk(
        self,
        organization_id: str,
        actor: Actor,
        title: str,
        description: Optional[str] = None,
        owner_ref: Optional[str] = None,
        likelihood: int = 1,
        impact: int = 1,
        reviewer_ref: Optional[str] = None,
        approver_ref: Optional[str] = None,
        change_description: Optional[str] = None
    ) -> Tuple[Optional[Risk], TransitionResult]:
        try:
            _check_scale(likelihood, impact)
        except ValidationFailed as e:
            return self._refused_create(ArtifactKind.ITEM, organization_id, e)

        engine = self.engine(ArtifactKind.ITEM)
        result = engine.create(
            uuid.uuid4().hex, actor, change_description or f"Risk created: {title}",
            reviewer_ref=reviewer_ref, approver_ref=approver_ref, scope=organization_id
        )
        if not result.ok:
            return None, result

        row = Risk(
            code=self._next_risk_code(organization_id),
            title=title,
            description=description,
            owner_ref=owner_ref,
            likelihood=likelihood,
            impact=impact
        )
        return self._insert(result, row)

    def _refused_create(self, kind: ArtifactKind, organization_id: str, error: ValidationFailed):
        logger.info("Refused create of %s for %s: %s", kind.value, organization_id, error.message)
        snapshot = ArtifactSnapshot(
            kind=kind,
            id="",
            version=self.policy.initial_version,
            approval_status=ApprovalStatus.DRAFT,
            scope=organization_id
        )
        return None, TransitionResult(snapshot=snapshot, error=error)

    def _insert(self, result: TransitionResult, row):
        try:
            self.store.insert(result, row)
        except InvalidTransition as e:
            return None, replace(result, error=e)
        return row, result

    def _next_risk_code(self, organization_id: str) -> str:
        count = self.db.execute(
            select(func.count(Risk.id)).where(Risk.organization_id == organization_id)
        ).scalar_one()
        return f"RISK-{count + 1:03d}"

    # Reads

    def get(self, kind: ArtifactKind, artifact_id: str):
        return self.store.get_row(kind, artifact_id)

    def history(self, kind: ArtifactKind, artifact_id: str) -> List[AuditEntry]:
        return self.store.load_trail(kind, artifact_id).history()

    def list_risks(self, organization_id: str, approval_status: Optional[ApprovalStatus] = None) -> List[Risk]:
        query = select(Risk).where(Risk.organization_id == organization_id)
        if approval_status is not None:
            query = query.where(Risk.approval_status == approval_status)
        return self.db.execute(query.order_by(Risk.code)).scalars().all()

    def pending_approvals(self, organization_id: str, actor: Optional[Actor] = None) -> List[PendingApproval]:
        """Register and risks awaiting approval; `actionable` tells whether `actor` may act now."""
        pending = []
        for kind in (ArtifactKind.DOCUMENT, ArtifactKind.ITEM):
            engine = self.engine(kind)
            for row in self.store.pending_rows(kind, organization_id):
                snapshot = self.store.load(kind, row.id, engine.trails)
                actionable = actor is not None and any(
                    engine.can_perform(actor, transition, snapshot)
                    for transition in (Transition.FIRST_APPROVAL, Transition.SECOND_APPROVAL)
                )
                pending.append(PendingApproval(kind, snapshot, row.title, actionable))
        return pending

    # Writes

    def apply(
        self,
        kind: ArtifactKind,
        artifact_id: str,
        transition: Transition,
        actor: Actor,
        revision: Optional[int] = None,
        content: Optional[dict] = None,
        **payload
    ) -> TransitionResult:
        """
        Run one engine operation against the stored artifact and commit it.

        `revision` is the revision the caller read; a stale one is refused
        with ConcurrencyConflict inside the result. `content` holds field
        values written together with an UPDATION entry.
        """
        if content and transition != Transition.RECORD_UPDATE:
            raise ValueError("Only record_update carries content changes")

        engine = self.engine(kind)
        snapshot = self.store.load(kind, artifact_id, engine.trails)
        if revision is not None:
            snapshot = replace(snapshot, revision=revision)

        result = getattr(engine, OPERATIONS[transition])(snapshot, actor, **payload)
        if not result.ok:
            return result

        if content:
            try:
                self._check_content(kind, artifact_id, content)
            except ValidationFailed as e:
                logger.info("Refused content change on %s %s: %s", kind.value, artifact_id, e.message)
                return TransitionResult(snapshot=snapshot, error=e, previous_revision=snapshot.revision)

        try:
            self.store.commit(result, content)
        except ConcurrencyConflict as e:
            logger.info("Lost race on %s %s: %s", kind.value, artifact_id, e.message)
            return TransitionResult(snapshot=snapshot, error=e, previous_revision=snapshot.revision)
        return result

    def record_update(
        self,
        kind: ArtifactKind,
        artifact_id: str,
        actor: Actor,
        change_description: str,
        revision: Optional[int] = None,
        **content
    ) -> TransitionResult:
        """Save content changes of a draft or rejected artifact with an UPDATION entry."""
        return self.apply(
            kind, artifact_id, Transition.RECORD_UPDATE, actor,
            revision=revision, content=content, change_description=change_description
        )

    def _check_content(self, kind: ArtifactKind, artifact_id: str, content: dict) -> None:
        unknown = set(content) - CONTENT_FIELDS[kind]
        if unknown:
            raise ValidationFailed(
                f"{kind.value} content has no field(s): {', '.join(sorted(unknown))}"
            )
        if "title" in content and not (content["title"] or "").strip():
            raise ValidationFailed("Title cannot be empty")
        if "likelihood" in content or "impact" in content:
            row = self.store.get_row(kind, artifact_id)
            _check_scale(content.get("likelihood", row.likelihood), content.get("impact", row.impact))

    def bulk_submit(
        self,
        organization_id: str,
        actor: Actor,
        change_description: str,
        bump_kind=BumpKind.NONE
    ) -> List[BulkSubmitOutcome]:
        """Submit every draft or rejected risk of the organization, one at a time."""
        rows = self.db.execute(
            select(Risk)
            .where(
                Risk.organization_id == organization_id,
                Risk.approval_status.in_([ApprovalStatus.DRAFT, ApprovalStatus.REJECTED])
            )
            .order_by(Risk.code)
        ).scalars().all()
        targets = [(row.id, row.code) for row in rows]

        outcomes = []
        for artifact_id, code in targets:
            result = self.apply(
                ArtifactKind.ITEM, artifact_id, Transition.SUBMIT_FOR_REVIEW, actor,
                change_description=change_description, bump_kind=bump_kind
            )
            outcomes.append(BulkSubmitOutcome(artifact_id, code, result))

        logger.info(
            "Bulk submit for %s: %d of %d risks submitted",
            organization_id, sum(1 for o in outcomes if o.result.ok), len(outcomes)
        )
        return outcomes


def _check_scale(likelihood, impact) -> None:
    try:
        inherent_score(likelihood, impact)
    except ValueError as e:
        raise ValidationFailed(str(e))
