import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Uuid, Text

from governance.db.base import Base


class Artifact(Base):
    """
    A governed project document.

    The editor owns the content; the approval engine only moves ``status``
    to approved/rejected when the artifact's chain completes.
    """
    __tablename__ = "artifacts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, nullable=False, index=True)
    organisation_id = Column(Uuid, nullable=True, index=True)
    artifact_type = Column(String(100), nullable=True)
    title = Column(String(255), nullable=False, default="")
    content = Column(Text, nullable=True)

    # draft, submitted, approved, rejected
    status = Column(String(50), nullable=False, default="draft", index=True)

    # Chain currently governing the artifact (set by the submission flow)
    approval_chain_id = Column(Uuid, nullable=True, index=True)

    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Artifact {self.title!r} [{self.status}]>"
