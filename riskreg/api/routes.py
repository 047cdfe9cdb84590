"""API routes for the risk register approval workflow."""
from enum import Enum
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from riskreg.config import WorkflowPolicy, load_settings
from riskreg.database import get_db
from riskreg.models.artifact import Actor, AuditEntry
from riskreg.models.domain import Risk
from riskreg.models.enums import ApprovalStatus, ArtifactKind, Transition
from riskreg.services.errors import (
    ConcurrencyConflict,
    InvalidTransition,
    NoDiscardableRevision,
    Unauthorized,
    ValidationFailed,
    WorkflowError
)
from riskreg.services.register import RegisterService
from riskreg.services.workflow import TransitionResult
from riskreg.api.schemas import (
    ApprovalDecision,
    ArtifactResponse,
    Assignment,
    BulkSubmit,
    BulkSubmitItem,
    BulkSubmitResponse,
    ContentUpdate,
    DescriptionCorrection,
    NewRevision,
    PendingApprovalResponse,
    RefusalResponse,
    RegisterCreate,
    Rejection,
    RiskCreate,
    RiskResponse,
    SubmitForReview,
    TransitionRequest,
    TransitionResponse,
    VersionEntryResponse
)

router = APIRouter()

REFUSAL_STATUS = {
    Unauthorized: status.HTTP_403_FORBIDDEN,
    InvalidTransition: status.HTTP_400_BAD_REQUEST,
    ValidationFailed: 422,
    ConcurrencyConflict: status.HTTP_409_CONFLICT,
    NoDiscardableRevision: status.HTTP_409_CONFLICT,
}

REFUSAL_RESPONSES = {
    code: {"model": RefusalResponse}
    for code in sorted(set(REFUSAL_STATUS.values()))
}


class Collection(str, Enum):
    """Path segment naming which artifact kind a request targets."""
    REGISTERS = "registers"
    RISKS = "risks"


KINDS = {
    Collection.REGISTERS: ArtifactKind.DOCUMENT,
    Collection.RISKS: ArtifactKind.ITEM,
}


# Dependencies
def get_policy() -> WorkflowPolicy:
    return load_settings().workflow_policy()


def get_service(db: Session = Depends(get_db), policy: WorkflowPolicy = Depends(get_policy)) -> RegisterService:
    return RegisterService(db, policy)


def get_actor(
    x_actor_id: str = Header(...),
    x_actor_role: str = Header("Member"),
    x_actor_admin: bool = Header(False),
    x_actor_can_edit: bool = Header(True)
) -> Actor:
    """The acting user, as asserted by the authenticating gateway in front of us."""
    return Actor(
        identity=x_actor_id,
        role_label=x_actor_role,
        can_edit=x_actor_can_edit,
        is_global_admin=x_actor_admin
    )


# Serialization helpers
def artifact_response(row) -> ArtifactResponse:
    data = {
        "id": row.id,
        "kind": row.artifact_kind,
        "organization_id": row.organization_id,
        "title": row.title,
        "version": f"{row.version_major}.{row.version_minor}",
        "approval_status": row.approval_status,
        "reviewer_ref": row.reviewer_ref,
        "approver_ref": row.approver_ref,
        "last_rejection_reason": row.last_rejection_reason,
        "revision": row.revision,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }
    if isinstance(row, Risk):
        data.update(
            code=row.code,
            description=row.description,
            owner_ref=row.owner_ref,
            likelihood=row.likelihood,
            impact=row.impact,
            inherent_score=row.inherent_score,
            band=row.band,
        )
        return RiskResponse(**data)
    return ArtifactResponse(**data)


def entry_response(entry: AuditEntry) -> VersionEntryResponse:
    return VersionEntryResponse(
        id=entry.id,
        sequence=entry.sequence,
        version=entry.version.display(),
        action=entry.action,
        change_description=entry.change_description,
        actor_identity=entry.actor_identity,
        actor_role_label=entry.actor_role_label,
        created_at=entry.created_at
    )


def raise_refusal(error: WorkflowError) -> None:
    """Return a refusal as an HTTP error carrying its code and message."""
    raise HTTPException(
        status_code=REFUSAL_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST),
        detail=error.to_dict()
    )


def transition_response(service: RegisterService, kind: ArtifactKind, result: TransitionResult, message: str):
    if not result.ok:
        raise_refusal(result.error)
    row = service.get(kind, result.snapshot.id)
    return TransitionResponse(
        artifact=artifact_response(row),
        entry=entry_response(result.entry) if result.entry else None,
        removed_entry_ids=[e.id for e in result.removed],
        message=message
    )


# Register endpoints
@router.post("/registers", response_model=ArtifactResponse, status_code=status.HTTP_201_CREATED,
             responses=REFUSAL_RESPONSES)
def create_register(
    data: RegisterCreate,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    """Create the organization's risk register in DRAFT at the initial version."""
    row, result = service.create_register(
        data.organization_id, actor,
        title=data.title,
        reviewer_ref=data.reviewer_ref,
        approver_ref=data.approver_ref,
        change_description=data.change_description
    )
    if not result.ok:
        raise_refusal(result.error)
    return artifact_response(row)


@router.get("/organizations/{organization_id}/register", response_model=ArtifactResponse)
def get_organization_register(organization_id: str, service: RegisterService = Depends(get_service)):
    """Get the single register of an organization."""
    row = service.store.find_register(organization_id)
    if not row:
        raise HTTPException(status_code=404, detail="Risk register not found")
    return artifact_response(row)


# Risk endpoints
@router.post("/risks", response_model=RiskResponse, status_code=status.HTTP_201_CREATED,
             responses=REFUSAL_RESPONSES)
def create_risk(
    data: RiskCreate,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    """Create a risk in DRAFT; it is versioned independently of the register."""
    row, result = service.create_risk(
        data.organization_id, actor,
        title=data.title,
        description=data.description,
        owner_ref=data.owner_ref,
        likelihood=data.likelihood,
        impact=data.impact,
        reviewer_ref=data.reviewer_ref,
        approver_ref=data.approver_ref,
        change_description=data.change_description
    )
    if not result.ok:
        raise_refusal(result.error)
    return artifact_response(row)


@router.get("/risks", response_model=List[RiskResponse])
def list_risks(
    organization_id: str = Query(..., min_length=1),
    approval_status: Optional[ApprovalStatus] = None,
    service: RegisterService = Depends(get_service)
):
    """Risks of an organization by code, optionally filtered by approval status."""
    return [artifact_response(row) for row in service.list_risks(organization_id, approval_status)]


@router.post("/risks/bulk-submit", response_model=BulkSubmitResponse)
def bulk_submit(
    data: BulkSubmit,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    """
    Submit every DRAFT or REJECTED risk of an organization.
    Each risk is submitted on its own; one refusal does not stop the others.
    """
    outcomes = service.bulk_submit(data.organization_id, actor, data.change_description, data.version_bump)
    if not outcomes:
        raise HTTPException(status_code=400, detail="No draft risks to submit")

    results = [
        BulkSubmitItem(
            id=o.artifact_id,
            code=o.code,
            submitted=o.result.ok,
            version=o.result.snapshot.version.display(),
            error=o.result.error.message if o.result.error else None
        )
        for o in outcomes
    ]
    submitted = sum(1 for r in results if r.submitted)
    return BulkSubmitResponse(
        submitted=submitted,
        results=results,
        message=f"{submitted} risks submitted for 1st level approval"
    )


@router.get("/organizations/{organization_id}/pending-approvals", response_model=List[PendingApprovalResponse])
def pending_approvals(
    organization_id: str,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    """Register and risks waiting for 1st or 2nd level approval."""
    return [
        PendingApprovalResponse(
            kind=p.kind,
            id=p.snapshot.id,
            title=p.title,
            version=p.snapshot.version.display(),
            approval_status=p.snapshot.approval_status,
            revision=p.snapshot.revision,
            actionable=p.actionable
        )
        for p in service.pending_approvals(organization_id, actor)
    ]


# Endpoints shared by both artifact kinds
@router.get("/{collection}/{artifact_id}", response_model=Union[RiskResponse, ArtifactResponse])
def get_artifact(collection: Collection, artifact_id: str, service: RegisterService = Depends(get_service)):
    return artifact_response(service.get(KINDS[collection], artifact_id))


@router.get("/{collection}/{artifact_id}/versions", response_model=List[VersionEntryResponse])
def version_history(collection: Collection, artifact_id: str, service: RegisterService = Depends(get_service)):
    """Version history, newest first."""
    service.get(KINDS[collection], artifact_id)
    return [entry_response(e) for e in service.history(KINDS[collection], artifact_id)]


@router.patch("/{collection}/{artifact_id}/versions/{entry_id}", response_model=VersionEntryResponse,
              responses=REFUSAL_RESPONSES)
def correct_entry_description(
    collection: Collection,
    artifact_id: str,
    entry_id: str,
    data: DescriptionCorrection,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    """Correct the description of a history entry. Version and action are untouched."""
    result = service.apply(
        KINDS[collection], artifact_id, Transition.CORRECT_DESCRIPTION, actor,
        entry_id=entry_id, change_description=data.change_description
    )
    if not result.ok:
        raise_refusal(result.error)
    return entry_response(result.entry)


@router.post("/{collection}/{artifact_id}/submit-for-review", response_model=TransitionResponse,
             responses=REFUSAL_RESPONSES)
def submit_for_review(
    collection: Collection,
    artifact_id: str,
    data: SubmitForReview,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    kind = KINDS[collection]
    result = service.apply(
        kind, artifact_id, Transition.SUBMIT_FOR_REVIEW, actor, revision=data.revision,
        change_description=data.change_description, bump_kind=data.version_bump
    )
    return transition_response(service, kind, result, "Submitted for 1st level approval")


@router.post("/{collection}/{artifact_id}/first-approval", response_model=TransitionResponse,
             responses=REFUSAL_RESPONSES)
def first_approval(
    collection: Collection,
    artifact_id: str,
    data: ApprovalDecision,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    kind = KINDS[collection]
    result = service.apply(
        kind, artifact_id, Transition.FIRST_APPROVAL, actor, revision=data.revision,
        comments=data.comments
    )
    return transition_response(service, kind, result, "First level approval granted. Pending 2nd level approval.")


@router.post("/{collection}/{artifact_id}/second-approval", response_model=TransitionResponse,
             responses=REFUSAL_RESPONSES)
def second_approval(
    collection: Collection,
    artifact_id: str,
    data: ApprovalDecision,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    kind = KINDS[collection]
    result = service.apply(
        kind, artifact_id, Transition.SECOND_APPROVAL, actor, revision=data.revision,
        comments=data.comments
    )
    version = result.snapshot.version.display()
    return transition_response(service, kind, result, f"Fully approved (v{version})")


@router.post("/{collection}/{artifact_id}/reject", response_model=TransitionResponse,
             responses=REFUSAL_RESPONSES)
def reject(
    collection: Collection,
    artifact_id: str,
    data: Rejection,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    kind = KINDS[collection]
    result = service.apply(
        kind, artifact_id, Transition.REJECT, actor, revision=data.revision,
        reason=data.reason
    )
    return transition_response(service, kind, result, "Rejected and sent back for revision.")


@router.post("/{collection}/{artifact_id}/new-revision", response_model=TransitionResponse,
             responses=REFUSAL_RESPONSES)
def start_new_revision(
    collection: Collection,
    artifact_id: str,
    data: NewRevision,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    kind = KINDS[collection]
    result = service.apply(
        kind, artifact_id, Transition.START_NEW_REVISION, actor, revision=data.revision,
        change_description=data.change_description, bump_kind=data.version_bump
    )
    return transition_response(service, kind, result, "New draft revision started")


@router.post("/{collection}/{artifact_id}/discard", response_model=TransitionResponse,
             responses=REFUSAL_RESPONSES)
def discard_revision(
    collection: Collection,
    artifact_id: str,
    data: TransitionRequest,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    """Abandon the unsubmitted revision and return to the last approved version."""
    kind = KINDS[collection]
    result = service.apply(kind, artifact_id, Transition.DISCARD_REVISION, actor, revision=data.revision)
    return transition_response(service, kind, result, "Draft revision discarded")


@router.post("/{collection}/{artifact_id}/updates", response_model=TransitionResponse,
             responses=REFUSAL_RESPONSES)
def record_update(
    collection: Collection,
    artifact_id: str,
    data: ContentUpdate,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    """Record a content edit on a DRAFT or REJECTED artifact."""
    kind = KINDS[collection]
    content = data.model_dump(exclude_unset=True, exclude={"revision", "change_description"})
    result = service.record_update(
        kind, artifact_id, actor, data.change_description, revision=data.revision, **content
    )
    return transition_response(service, kind, result, "Update recorded")


@router.put("/{collection}/{artifact_id}/assignment", response_model=TransitionResponse,
            responses=REFUSAL_RESPONSES)
def assign_reviewers(
    collection: Collection,
    artifact_id: str,
    data: Assignment,
    actor: Actor = Depends(get_actor),
    service: RegisterService = Depends(get_service)
):
    kind = KINDS[collection]
    result = service.apply(
        kind, artifact_id, Transition.ASSIGN, actor, revision=data.revision,
        reviewer_ref=data.reviewer_ref, approver_ref=data.approver_ref
    )
    return transition_response(service, kind, result, "Reviewer and approver assigned")
