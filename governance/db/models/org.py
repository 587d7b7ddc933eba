import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Uuid

from governance.db.base import Base


class OrganisationMember(Base):
    """
    Membership of a user in an organisation.

    Owned by the membership service; the approval engine only reads it to
    turn canonical approver bindings into user identities.
    """
    __tablename__ = "organisation_members"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id = Column(Uuid, nullable=False, index=True)
    user_id = Column(Uuid, nullable=False, index=True)
    role = Column(String(50), nullable=False, default="member")
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<OrganisationMember {self.user_id} [{self.role}]>"
