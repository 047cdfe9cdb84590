"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from riskreg.models.enums import ApprovalStatus, ArtifactKind, BumpKind, RiskBand, VersionAction


class VersionBumpChoice(BaseModel):
    version_bump: BumpKind = BumpKind.NONE

    @field_validator("version_bump", mode="before")
    @classmethod
    def normalize_bump(cls, value):
        # Accept "minor" as well as "MINOR"
        return value.strip().upper() if isinstance(value, str) else value


# Creation schemas
class RegisterCreate(BaseModel):
    organization_id: str = Field(..., min_length=1)
    title: str = Field("Risk Register", min_length=1, max_length=200)
    reviewer_ref: Optional[str] = None
    approver_ref: Optional[str] = None
    change_description: Optional[str] = None


class RiskCreate(BaseModel):
    organization_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    owner_ref: Optional[str] = None
    likelihood: int = Field(1, ge=1, le=5)
    impact: int = Field(1, ge=1, le=5)
    reviewer_ref: Optional[str] = None
    approver_ref: Optional[str] = None
    change_description: Optional[str] = None


# Artifact schemas
class ArtifactResponse(BaseModel):
    id: str
    kind: ArtifactKind
    organization_id: str
    title: str
    version: str
    approval_status: ApprovalStatus
    reviewer_ref: Optional[str]
    approver_ref: Optional[str]
    last_rejection_reason: Optional[str]
    revision: int
    created_at: datetime
    updated_at: datetime


class RiskResponse(ArtifactResponse):
    code: str
    description: Optional[str]
    owner_ref: Optional[str]
    likelihood: int
    impact: int
    inherent_score: int
    band: RiskBand


class VersionEntryResponse(BaseModel):
    id: str
    sequence: int
    version: str
    action: VersionAction
    change_description: str
    actor_identity: str
    actor_role_label: str
    created_at: datetime


# Transition requests - each carries the revision the caller read
class TransitionRequest(BaseModel):
    revision: int = Field(..., ge=0)


class SubmitForReview(TransitionRequest, VersionBumpChoice):
    change_description: str


class ApprovalDecision(TransitionRequest):
    comments: Optional[str] = None


class Rejection(TransitionRequest):
    reason: str


class NewRevision(TransitionRequest, VersionBumpChoice):
    change_description: str
    version_bump: BumpKind = BumpKind.MINOR


class ContentUpdate(TransitionRequest):
    """Fields left out are not changed. Registers only accept a title."""
    change_description: str
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    owner_ref: Optional[str] = None
    likelihood: Optional[int] = Field(None, ge=1, le=5)
    impact: Optional[int] = Field(None, ge=1, le=5)


class Assignment(TransitionRequest):
    reviewer_ref: Optional[str] = None
    approver_ref: Optional[str] = None


class DescriptionCorrection(BaseModel):
    change_description: str


class TransitionResponse(BaseModel):
    artifact: Union[RiskResponse, ArtifactResponse]
    entry: Optional[VersionEntryResponse] = None
    removed_entry_ids: List[str] = []
    message: str


# Queries
class PendingApprovalResponse(BaseModel):
    kind: ArtifactKind
    id: str
    title: str
    version: str
    approval_status: ApprovalStatus
    revision: int
    actionable: bool


class BulkSubmit(VersionBumpChoice):
    organization_id: str = Field(..., min_length=1)
    change_description: str


class BulkSubmitItem(BaseModel):
    id: str
    code: str
    submitted: bool
    version: str
    error: Optional[str] = None


class BulkSubmitResponse(BaseModel):
    submitted: int
    results: List[BulkSubmitItem]
    message: str


# Error response
class RefusalResponse(BaseModel):
    """Response when a workflow action is refused."""
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
