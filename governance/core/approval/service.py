"""Approval service for artifact approval chains.

Provides the high-level API over the approval engine: authorize, record
and recompute a decision, and read progress, eligibility, the event trail
and delegation records.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from governance.core.config import Settings, get_settings
from governance.db.capabilities import StoreCapabilities, get_capabilities
from governance.db.models import ApproverDelegation

from .events import EventLog, clamp_limit
from .gate import AuthorizationGate
from .machine import StatusTriple, StepStateMachine
from .progress import ProgressReporter, ProgressSnapshot
from .recorder import DecisionRecorder, parse_decision
from .resolvers import Clock

logger = logging.getLogger(__name__)

ROLE_APPROVER = "approver"
ROLE_DELEGATE = "delegate_approver"


class ApprovalService:
    """
    High-level service for artifact approvals.

    Handles:
    - Recording approve/reject decisions, directly or as a delegate
    - Cascading step outcomes onto the chain and artifact
    - Progress and eligibility queries
    - The approval event trail

    Every write is flushed, never committed: the caller owns the transaction.
    """

    def __init__(
        self,
        db: Session,
        *,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        capabilities: Optional[StoreCapabilities] = None,
    ):
        """
        Initialize the approval service.

        Args:
            db: Database session
            settings: Application settings (defaults to the process settings)
            clock: Returns the current naive-UTC time (injectable for tests)
            capabilities: Store capabilities (probed from ``db`` when omitted)
        """
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock or datetime.utcnow
        self.capabilities = capabilities or get_capabilities(db)

        self.gate = AuthorizationGate(db, self.capabilities, clock=self.clock)
        self.recorder = DecisionRecorder(db, reason_max_length=self.settings.decision_reason_max_length)
        self.machine = StepStateMachine(db, self.capabilities, clock=self.clock)
        self.reporter = ProgressReporter(db, self.capabilities, clock=self.clock)
        self.events = EventLog(db, self.capabilities)

    def decide(
        self,
        artifact_id: UUID,
        actor_user_id: UUID,
        decision: Any,
        reason: Optional[str] = None,
    ) -> StatusTriple:
        """
        Record a decision on the artifact's pending step and cascade it.

        Args:
            artifact_id: Artifact under review
            actor_user_id: User performing the action
            decision: "approved" or "rejected"
            reason: Optional free text

        Returns:
            The (step, chain, artifact) statuses after the decision

        Raises:
            DecisionValidationError: If the decision value is malformed
            NoPendingStep: If the artifact has no open step
            Forbidden: If the actor is neither an approver nor a delegate
            ApprovalEngineUnavailable: If the approval tables are missing
        """
        value = parse_decision(decision)
        now = self.clock()

        auth = self.gate.require(artifact_id, actor_user_id, now=now)
        pending = auth.pending

        stored = self.recorder.record(
            pending.chain_id,
            pending.step_id,
            auth.principal_user_id,
            actor_user_id,
            value,
            reason,
            decided_at=now,
        )

        on_behalf_of = auth.on_behalf_of
        self.events.append(
            "decision",
            artifact_id=artifact_id,
            project_id=pending.project_id,
            chain_id=pending.chain_id,
            step_id=pending.step_id,
            actor_user_id=actor_user_id,
            actor_role=ROLE_DELEGATE if on_behalf_of else ROLE_APPROVER,
            comment=stored.reason,
            meta={
                "decision": stored.decision,
                "step_order": pending.step_order,
                "on_behalf_of": str(on_behalf_of) if on_behalf_of else None,
            },
            at=now,
        )
        self.db.flush()

        if on_behalf_of:
            logger.info(
                "User %s %s artifact %s on behalf of %s",
                actor_user_id, value.value, artifact_id, on_behalf_of,
            )

        return self.machine.recompute(
            artifact_id, pending.chain_id, pending.step_id, actor_user_id=actor_user_id,
        )

    def get_progress(
        self,
        artifact_id: UUID,
        caller_user_id: Optional[UUID] = None,
    ) -> Optional[ProgressSnapshot]:
        """Progress snapshot, or None when the artifact has no approval workflow."""
        return self.reporter.snapshot(artifact_id, caller_user_id, now=self.clock())

    def can_act(self, artifact_id: UUID, actor_user_id: UUID) -> Dict[str, Any]:
        """Whether ``actor_user_id`` may decide now, and for whom."""
        if not self.capabilities.approval_engine:
            return {"can_act": False, "on_behalf_of": None}

        auth = self.gate.check(artifact_id, actor_user_id, now=self.clock())
        return {"can_act": auth.allowed, "on_behalf_of": auth.on_behalf_of}

    def reconcile(self, artifact_id: UUID) -> Optional[StatusTriple]:
        """
        Re-run the recompute for the artifact's pending step.

        Resumes a cascade that was interrupted after the decision was stored.
        Returns None when no step is pending.
        """
        pending = self.gate.pending_step(artifact_id)
        if pending is None:
            return None

        triple = self.machine.recompute(artifact_id, pending.chain_id, pending.step_id)
        logger.info("Reconciled artifact %s: %s", artifact_id, triple)
        return triple

    def timeline(self, artifact_id: UUID, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Approval events for the artifact, oldest first."""
        if limit is None:
            limit = self.settings.events_page_limit
        return self.events.timeline(artifact_id, clamp_limit(limit))

    def list_delegations(
        self,
        organisation_id: UUID,
        include_inactive: bool = False,
    ) -> List[Dict[str, Any]]:
        """Delegation records of an organisation, newest window first."""
        if not self.capabilities.delegations:
            return []

        query = self.db.query(ApproverDelegation).filter(
            ApproverDelegation.organisation_id == organisation_id
        )
        if not include_inactive:
            query = query.filter(ApproverDelegation.is_active.is_(True))

        rows = query.order_by(
            ApproverDelegation.starts_at.desc(),
            ApproverDelegation.created_at.desc(),
        ).all()
        now = self.clock()
        return [self._delegation_to_dict(d, now) for d in rows]

    def _delegation_to_dict(self, delegation: ApproverDelegation, now: datetime) -> Dict[str, Any]:
        return {
            "id": str(delegation.id),
            "organisation_id": str(delegation.organisation_id) if delegation.organisation_id else None,
            "principal_user_id": str(delegation.principal_user_id),
            "delegate_user_id": str(delegation.delegate_user_id),
            "starts_at": delegation.starts_at.isoformat() if delegation.starts_at else None,
            "ends_at": delegation.ends_at.isoformat() if delegation.ends_at else None,
            "reason": delegation.reason,
            "is_active": bool(delegation.is_active),
            "in_effect": delegation.is_effective(now),
            "created_at": delegation.created_at.isoformat() if delegation.created_at else None,
        }
