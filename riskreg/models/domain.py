"""Domain models - the risk register document and the risks it contains."""
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Integer, String, Text, UniqueConstraint

from riskreg.database import Base
from riskreg.models.enums import ApprovalStatus, ArtifactKind, RiskBand
from riskreg.services.scoring import inherent_score, risk_band


class ApprovalColumns:
    """
    Approval-relevant columns every workflow artifact carries.

    Invariants:
    - revision increases on every accepted mutation (optimistic lock token)
    - last_rejection_reason is only set while REJECTED
    """
    version_major = Column(Integer, nullable=False, default=0)
    version_minor = Column(Integer, nullable=False, default=1)
    approval_status = Column(SQLEnum(ApprovalStatus), nullable=False, default=ApprovalStatus.DRAFT, index=True)
    reviewer_ref = Column(String, nullable=True)
    approver_ref = Column(String, nullable=True)
    last_rejection_reason = Column(Text, nullable=True)
    revision = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class RiskRegister(ApprovalColumns, Base):
    """
    The Risk Register document. Exactly one per organization.
    """
    __tablename__ = "risk_registers"
    artifact_kind = ArtifactKind.DOCUMENT

    id = Column(String, primary_key=True)
    organization_id = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False, default="Risk Register")


class Risk(ApprovalColumns, Base):
    """
    An individual risk. Versioned and approved independently of the register.

    likelihood/impact are 1-5; inherent score and band are derived.
    """
    __tablename__ = "risks"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_risk_code"),
    )
    artifact_kind = ArtifactKind.ITEM

    id = Column(String, primary_key=True)
    code = Column(String, nullable=False)  # e.g. "RISK-007", unique per organization
    organization_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    owner_ref = Column(String, nullable=True)
    likelihood = Column(Integer, nullable=False, default=1)
    impact = Column(Integer, nullable=False, default=1)

    @property
    def inherent_score(self) -> int:
        return inherent_score(self.likelihood, self.impact)

    @property
    def band(self) -> RiskBand:
        return risk_band(self.inherent_score)


ARTIFACT_MODELS = {
    ArtifactKind.DOCUMENT: RiskRegister,
    ArtifactKind.ITEM: Risk,
}
