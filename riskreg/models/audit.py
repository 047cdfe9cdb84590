"""
Version history rows - one per workflow transition.

Rows are written by the store from AuditEntry values the engine produced.
Apart from a description correction they are never edited; the only
deletion is the discard of an abandoned, unsubmitted revision.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Integer, String, Text, UniqueConstraint

from riskreg.database import Base
from riskreg.models.enums import ArtifactKind, VersionAction


class VersionEntry(Base):
    """
    Persisted AuditEntry.

    Invariants:
    - (artifact_kind, artifact_id, sequence) is unique, so two writers racing
      on the same artifact revision cannot both insert
    - actor_role_label is denormalized at write time
    """
    __tablename__ = "version_entries"
    __table_args__ = (
        UniqueConstraint("artifact_kind", "artifact_id", "sequence", name="uq_version_entry_sequence"),
    )

    id = Column(String, primary_key=True)
    artifact_kind = Column(SQLEnum(ArtifactKind), nullable=False)
    artifact_id = Column(String, nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    version_major = Column(Integer, nullable=False)
    version_minor = Column(Integer, nullable=False)
    action = Column(SQLEnum(VersionAction), nullable=False, index=True)
    change_description = Column(Text, nullable=False)
    actor_identity = Column(String, nullable=False)
    actor_role_label = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
