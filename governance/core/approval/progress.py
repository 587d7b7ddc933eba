"""Read-only approval progress for display."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from governance.db.capabilities import StoreCapabilities, get_capabilities
from governance.db.models import ApprovalChain, ApprovalDecision, ApprovalStep, Artifact

from .gate import AuthorizationGate, PendingStep
from .resolvers import Clock
from .states import ChainStatus, StepStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    artifact_id: UUID
    chain_id: UUID
    chain_status: str
    total_steps: int
    approved_steps: int
    rejected_steps: int
    pending_steps: int
    current_step: Optional[PendingStep] = None
    approver_count: Optional[int] = None
    remaining_approvers: Optional[int] = None
    can_act: bool = False
    on_behalf_of: Optional[UUID] = None
    decided_by: List[UUID] = field(default_factory=list)

    @property
    def needs_reassignment(self) -> bool:
        """A pending step nobody can decide on blocks until approvers are rebound."""
        return self.current_step is not None and self.approver_count == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifact_id": str(self.artifact_id),
            "chain_id": str(self.chain_id),
            "chain_status": self.chain_status,
            "total_steps": self.total_steps,
            "approved_steps": self.approved_steps,
            "rejected_steps": self.rejected_steps,
            "pending_steps": self.pending_steps,
            "current_step": self.current_step.to_dict() if self.current_step else None,
            "approver_count": self.approver_count,
            "remaining_approvers": self.remaining_approvers,
            "needs_reassignment": self.needs_reassignment,
            "decided_by": [str(uid) for uid in self.decided_by],
            "my_action": {
                "can_act": self.can_act,
                "on_behalf_of": str(self.on_behalf_of) if self.on_behalf_of else None,
            },
        }


class ProgressReporter:
    """
    Aggregates chain, step and decision state into a snapshot.

    Never writes. Artifacts that were never submitted, and deployments
    without the approval tables, report no workflow (None).
    """

    def __init__(
        self,
        db: Session,
        capabilities: Optional[StoreCapabilities] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.capabilities = capabilities or get_capabilities(db)
        self.gate = AuthorizationGate(db, self.capabilities, clock=clock)

    def snapshot(
        self,
        artifact_id: UUID,
        caller_user_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ProgressSnapshot]:
        if not self.capabilities.approval_engine:
            return None

        artifact = self.db.query(Artifact).filter(Artifact.id == artifact_id).first()
        if not artifact or not artifact.approval_chain_id:
            return None

        chain = self.db.query(ApprovalChain).filter(
            ApprovalChain.id == artifact.approval_chain_id
        ).first()
        if chain is None:
            return None

        statuses = [
            s for (s,) in self.db.query(ApprovalStep.status).filter(
                ApprovalStep.chain_id == chain.id,
                ApprovalStep.artifact_id == artifact.id,
            ).all()
        ]

        current = self.gate.pending_step(artifact.id)

        approver_count = None
        remaining = None
        decided: List[UUID] = []
        can_act = False
        on_behalf_of = None

        if current is not None:
            approver_ids = self.gate.approvers.resolve_step(current.step_id)
            decided = [
                uid for (uid,) in self.db.query(ApprovalDecision.approver_user_id).filter(
                    ApprovalDecision.chain_id == current.chain_id,
                    ApprovalDecision.step_id == current.step_id,
                ).distinct().all()
            ]
            decided_set = set(decided)
            approver_count = len(approver_ids)
            remaining = sum(1 for uid in approver_ids if uid not in decided_set)

            if caller_user_id:
                principal = self.gate.delegations.resolve_principal(caller_user_id, approver_ids, now=now)
                can_act = principal is not None
                on_behalf_of = principal if principal and principal != caller_user_id else None

            if approver_count == 0:
                logger.warning(
                    "Step %s of artifact %s has no active approvers; it needs reassignment",
                    current.step_id, artifact.id,
                )

        return ProgressSnapshot(
            artifact_id=artifact.id,
            chain_id=chain.id,
            chain_status=chain.status or ChainStatus.ACTIVE.value,
            total_steps=len(statuses),
            approved_steps=statuses.count(StepStatus.APPROVED.value),
            rejected_steps=statuses.count(StepStatus.REJECTED.value),
            pending_steps=statuses.count(StepStatus.PENDING.value),
            current_step=current,
            approver_count=approver_count,
            remaining_approvers=remaining,
            can_act=can_act,
            on_behalf_of=on_behalf_of,
            decided_by=decided,
        )
