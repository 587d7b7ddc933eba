"""Approver delegation records (holiday cover).

Created and revoked by the delegation admin flow; read-only to the engine.
"""

import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, String, DateTime, Boolean, Uuid

from governance.db.base import Base


def window_contains(
    starts_at: Optional[datetime],
    ends_at: Optional[datetime],
    now: datetime,
) -> bool:
    """True when ``now`` lies in [starts_at, ends_at]; a missing bound is unbounded."""
    if starts_at is not None and now < starts_at:
        return False
    if ends_at is not None and now > ends_at:
        return False
    return True


class ApproverDelegation(Base):
    __tablename__ = "approver_delegations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id = Column(Uuid, nullable=True, index=True)

    # The designated approver being covered, and who covers for them
    principal_user_id = Column(Uuid, nullable=False, index=True)
    delegate_user_id = Column(Uuid, nullable=False, index=True)

    # Validity window; NULL means open-ended on that side
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)

    reason = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def is_effective(self, now: datetime) -> bool:
        return bool(self.is_active) and window_contains(self.starts_at, self.ends_at, now)

    def __repr__(self) -> str:
        return f"<ApproverDelegation {self.delegate_user_id} for {self.principal_user_id}>"
