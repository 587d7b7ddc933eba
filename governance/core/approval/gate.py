"""Authorization gate: may this actor decide on the pending step right now?"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from governance.db.capabilities import StoreCapabilities, get_capabilities
from governance.db.models import ApprovalStep, Artifact

from .errors import ApprovalEngineUnavailable, Forbidden, NoPendingStep
from .resolvers import ApproverResolver, Clock, DelegationResolver
from .states import StepStatus, effective_max_rejections, effective_min_approvals


@dataclass(frozen=True)
class PendingStep:
    """The single open step of an artifact's chain."""
    chain_id: UUID
    artifact_id: UUID
    project_id: Optional[UUID]
    step_id: UUID
    step_order: int
    step_name: str
    mode: str
    min_approvals: int
    max_rejections: int

    @classmethod
    def from_model(cls, step: ApprovalStep, project_id: Optional[UUID]) -> "PendingStep":
        return cls(
            chain_id=step.chain_id,
            artifact_id=step.artifact_id,
            project_id=project_id,
            step_id=step.id,
            step_order=step.step_order,
            step_name=step.name or "Approval",
            mode=step.mode or "veto_quorum",
            min_approvals=effective_min_approvals(step.min_approvals),
            max_rejections=effective_max_rejections(step.max_rejections),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": str(self.chain_id),
            "artifact_id": str(self.artifact_id),
            "project_id": str(self.project_id) if self.project_id else None,
            "step_id": str(self.step_id),
            "step_order": self.step_order,
            "step_name": self.step_name,
            "mode": self.mode,
            "min_approvals": self.min_approvals,
            "max_rejections": self.max_rejections,
        }


@dataclass(frozen=True)
class Authorization:
    """Outcome of a gate check."""
    pending: Optional[PendingStep]
    actor_user_id: UUID
    principal_user_id: Optional[UUID] = None
    approver_ids: List[UUID] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.pending is not None and self.principal_user_id is not None

    @property
    def on_behalf_of(self) -> Optional[UUID]:
        """The covered approver when acting as a delegate, else None."""
        if self.principal_user_id is None or self.principal_user_id == self.actor_user_id:
            return None
        return self.principal_user_id


class AuthorizationGate:
    """
    Composes approver and delegation resolution for one artifact.

    Must run immediately before every decision write; results are never
    cached because delegation windows and approver bindings change.
    """

    def __init__(
        self,
        db: Session,
        capabilities: Optional[StoreCapabilities] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.capabilities = capabilities or get_capabilities(db)
        self.approvers = ApproverResolver(db, self.capabilities)
        self.delegations = DelegationResolver(db, self.capabilities, clock=clock)

    def pending_step(self, artifact_id: UUID) -> Optional[PendingStep]:
        """Locate the pending step of the artifact's current chain."""
        if not self.capabilities.approval_engine:
            raise ApprovalEngineUnavailable()

        artifact = self.db.query(Artifact).filter(Artifact.id == artifact_id).first()
        if not artifact or not artifact.approval_chain_id:
            return None

        step = self.db.query(ApprovalStep).filter(
            ApprovalStep.chain_id == artifact.approval_chain_id,
            ApprovalStep.artifact_id == artifact.id,
            ApprovalStep.status == StepStatus.PENDING.value,
        ).order_by(ApprovalStep.step_order.asc()).first()

        return PendingStep.from_model(step, artifact.project_id) if step else None

    def check(
        self,
        artifact_id: UUID,
        actor_user_id: UUID,
        now: Optional[datetime] = None,
    ) -> Authorization:
        """Evaluate eligibility without raising for denials."""
        pending = self.pending_step(artifact_id)
        if pending is None:
            return Authorization(pending=None, actor_user_id=actor_user_id)

        approver_ids = self.approvers.resolve_step(pending.step_id)
        principal = None
        if actor_user_id:
            principal = self.delegations.resolve_principal(actor_user_id, approver_ids, now=now)

        return Authorization(
            pending=pending,
            actor_user_id=actor_user_id,
            principal_user_id=principal,
            approver_ids=approver_ids,
        )

    def require(
        self,
        artifact_id: UUID,
        actor_user_id: UUID,
        now: Optional[datetime] = None,
    ) -> Authorization:
        """
        Like check(), but raise when the actor cannot decide.

        Raises:
            NoPendingStep: If the artifact has no open step
            Forbidden: If the actor is neither an approver nor a delegate
        """
        auth = self.check(artifact_id, actor_user_id, now=now)
        if auth.pending is None:
            raise NoPendingStep(artifact_id)
        if not auth.allowed:
            raise Forbidden(actor_user_id, auth.pending.step_id)
        return auth
