"""Approval event trail.

Every recorded vote and every status transition is appended here so the
artifact timeline can be rendered. Deployments without the events table
simply skip the trail.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from governance.db.capabilities import StoreCapabilities, get_capabilities
from governance.db.models import ApprovalEvent

MIN_TIMELINE_LIMIT = 10
MAX_TIMELINE_LIMIT = 500


def clamp_limit(limit: Optional[int], default: int = 250) -> int:
    try:
        n = int(limit) if limit is not None else default
    except (TypeError, ValueError):
        n = default
    return max(MIN_TIMELINE_LIMIT, min(MAX_TIMELINE_LIMIT, n))


class EventLog:
    """Writes and reads ``approval_events`` rows."""

    def __init__(self, db: Session, capabilities: Optional[StoreCapabilities] = None):
        self.db = db
        self.capabilities = capabilities or get_capabilities(db)

    @property
    def enabled(self) -> bool:
        return self.capabilities.approval_events

    def append(
        self,
        action_type: str,
        *,
        artifact_id: UUID,
        project_id: Optional[UUID] = None,
        chain_id: Optional[UUID] = None,
        step_id: Optional[UUID] = None,
        actor_user_id: Optional[UUID] = None,
        actor_role: Optional[str] = None,
        comment: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        at: Optional[datetime] = None,
    ) -> Optional[ApprovalEvent]:
        if not self.enabled:
            return None

        event = ApprovalEvent(
            artifact_id=artifact_id,
            project_id=project_id,
            chain_id=chain_id,
            step_id=step_id,
            action_type=action_type,
            actor_user_id=actor_user_id,
            actor_role=actor_role,
            comment=comment,
            meta=meta or {},
            created_at=at or datetime.utcnow(),
        )
        self.db.add(event)
        return event

    def timeline(self, artifact_id: UUID, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """The newest ``limit`` events for an artifact, returned oldest first."""
        if not self.enabled:
            return []

        rows = self.db.query(ApprovalEvent).filter(
            ApprovalEvent.artifact_id == artifact_id
        ).order_by(ApprovalEvent.id.desc()).limit(clamp_limit(limit)).all()

        return [self._event_to_dict(e) for e in reversed(rows)]

    def _event_to_dict(self, event: ApprovalEvent) -> Dict[str, Any]:
        return {
            "id": event.id,
            "artifact_id": str(event.artifact_id),
            "chain_id": str(event.chain_id) if event.chain_id else None,
            "step_id": str(event.step_id) if event.step_id else None,
            "action_type": event.action_type,
            "actor_user_id": str(event.actor_user_id) if event.actor_user_id else None,
            "actor_role": event.actor_role,
            "comment": event.comment,
            "meta": event.meta or {},
            "created_at": event.created_at.isoformat() if event.created_at else None,
        }
