"""Step state machine: turns a step's vote tally into status transitions.

The outcome of a step is a pure function of its stored tally and
thresholds, so recomputing is safe to repeat. The step row is locked
before its tally is read, so two votes landing together are counted
together by whichever recompute runs second. A compare-and-swap on the
step status still guards the cascade: only the caller that moves the step
out of ``pending`` writes to the chain and artifact.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from governance.db.capabilities import StoreCapabilities, get_capabilities
from governance.db.models import ApprovalChain, ApprovalDecision, ApprovalStep, Artifact

from .errors import StepNotFound
from .events import EventLog
from .resolvers import Clock
from .states import (
    ArtifactStatus,
    ChainStatus,
    DecisionValue,
    SUPPORTED_MODES,
    StepStatus,
    can_transition,
    get_transition,
    effective_max_rejections,
    effective_min_approvals,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepTally:
    approvals: int = 0
    rejections: int = 0


@dataclass(frozen=True)
class StatusTriple:
    """Step, chain and artifact status after a recompute."""
    step_status: str
    chain_status: str
    artifact_status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_status": self.step_status,
            "chain_status": self.chain_status,
            "artifact_status": self.artifact_status,
        }


def evaluate_tally(tally: StepTally, min_approvals: Optional[int], max_rejections: Optional[int]) -> StepStatus:
    """
    Decide a step's outcome from its votes.

    Rejection wins: the step is rejected once rejections exceed
    ``max_rejections`` (so 0 means a single veto), otherwise approved once
    approvals reach ``min_approvals`` (unset means 1), otherwise pending.
    """
    if tally.rejections > effective_max_rejections(max_rejections):
        return StepStatus.REJECTED
    if tally.approvals >= effective_min_approvals(min_approvals):
        return StepStatus.APPROVED
    return StepStatus.PENDING


class StepStateMachine:
    """
    Recomputes and applies step, chain and artifact transitions.

    Writes are flushed, not committed; the request handler owns the
    transaction.
    """

    def __init__(
        self,
        db: Session,
        capabilities: Optional[StoreCapabilities] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.capabilities = capabilities or get_capabilities(db)
        self.clock = clock or datetime.utcnow
        self.events = EventLog(db, self.capabilities)

    def tally(self, chain_id: UUID, step_id: UUID) -> StepTally:
        """Count current approvals and rejections for a step."""
        rows = self.db.query(ApprovalDecision.decision, func.count(ApprovalDecision.id)).filter(
            ApprovalDecision.chain_id == chain_id,
            ApprovalDecision.step_id == step_id,
        ).group_by(ApprovalDecision.decision).all()

        counts = {decision: count for decision, count in rows}
        return StepTally(
            approvals=counts.get(DecisionValue.APPROVED.value, 0),
            rejections=counts.get(DecisionValue.REJECTED.value, 0),
        )

    def recompute(
        self,
        artifact_id: UUID,
        chain_id: UUID,
        step_id: UUID,
        *,
        actor_user_id: Optional[UUID] = None,
    ) -> StatusTriple:
        """
        Re-evaluate a step and cascade its outcome.

        Args:
            artifact_id: Artifact governed by the chain
            chain_id: Chain of the step
            step_id: The step that was just voted on
            actor_user_id: Recorded on transition events

        Returns:
            The (step, chain, artifact) statuses after recomputation

        Raises:
            StepNotFound: If the step does not belong to the chain
        """
        # Concurrent voters on the same step queue here, so each tally sees
        # every vote committed before it
        step = self._load_step(chain_id, step_id, lock=True)

        if step.status != StepStatus.PENDING.value:
            # Already decided (replay or a concurrent caller won the cascade)
            return self._stored_triple(step, artifact_id)

        if step.mode and step.mode not in SUPPORTED_MODES:
            logger.warning("Step %s has unknown mode %r; evaluating as veto_quorum", step_id, step.mode)

        outcome = evaluate_tally(self.tally(chain_id, step_id), step.min_approvals, step.max_rejections)
        if outcome is StepStatus.PENDING:
            return self._stored_triple(step, artifact_id)

        triple = self.apply_transition(step, artifact_id, outcome, actor_user_id=actor_user_id)
        if triple is None:
            logger.info("Step %s was settled concurrently; skipping cascade", step_id)
            return self._stored_triple(self._load_step(chain_id, step_id), artifact_id)
        return triple

    def apply_transition(
        self,
        step: ApprovalStep,
        artifact_id: UUID,
        outcome: StepStatus,
        *,
        actor_user_id: Optional[UUID] = None,
    ) -> Optional[StatusTriple]:
        """
        Move a pending step to ``outcome`` and cascade, as one unit.

        Returns None when the step was no longer pending at write time; in
        that case nothing is written.
        """
        if not can_transition(StepStatus.PENDING, outcome):
            raise ValueError(f"Cannot settle a step as {outcome.value}")

        now = self.clock()
        with self.db.begin_nested():
            if not self._compare_and_swap(step.id, StepStatus.PENDING, outcome, now):
                return None

            chain = self.db.query(ApprovalChain).filter(
                ApprovalChain.id == step.chain_id
            ).with_for_update().populate_existing().one()
            artifact = self.db.query(Artifact).filter(Artifact.id == artifact_id).first()
            project_id = chain.project_id or (artifact.project_id if artifact else None)

            self._log_transition(step, outcome, artifact_id, project_id, actor_user_id, now)

            if outcome is StepStatus.REJECTED:
                triple = self._finish_chain(
                    chain, artifact, artifact_id, ChainStatus.REJECTED, project_id, actor_user_id, now,
                )
                return StatusTriple(StepStatus.REJECTED.value, triple[0], triple[1])

            next_step = self.db.query(ApprovalStep).filter(
                ApprovalStep.chain_id == step.chain_id,
                ApprovalStep.step_order > step.step_order,
            ).order_by(ApprovalStep.step_order.asc()).with_for_update().first()

            if next_step is not None:
                if next_step.status != StepStatus.PENDING.value:
                    self._log_transition(
                        next_step, StepStatus.PENDING, artifact_id, project_id, actor_user_id, now,
                        from_status=next_step.status,
                    )
                    next_step.status = StepStatus.PENDING.value
                chain.status = ChainStatus.ACTIVE.value
                chain.is_active = True
                self.db.flush()
                artifact_status = artifact.status if artifact else ArtifactStatus.SUBMITTED.value
                return StatusTriple(StepStatus.APPROVED.value, ChainStatus.ACTIVE.value, artifact_status)

            triple = self._finish_chain(
                chain, artifact, artifact_id, ChainStatus.APPROVED, project_id, actor_user_id, now,
            )
            return StatusTriple(StepStatus.APPROVED.value, triple[0], triple[1])

    def _compare_and_swap(
        self,
        step_id: UUID,
        expected: StepStatus,
        target: StepStatus,
        now: datetime,
    ) -> bool:
        result = self.db.execute(
            update(ApprovalStep)
            .where(ApprovalStep.id == step_id, ApprovalStep.status == expected.value)
            .values(status=target.value, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        step = self.db.get(ApprovalStep, step_id)
        if step is not None:
            self.db.expire(step, ["status", "completed_at"])
        return True

    def _finish_chain(
        self,
        chain: ApprovalChain,
        artifact: Optional[Artifact],
        artifact_id: UUID,
        status: ChainStatus,
        project_id: Optional[UUID],
        actor_user_id: Optional[UUID],
        now: datetime,
    ) -> tuple[str, str]:
        chain.status = status.value
        chain.is_active = False
        chain.completed_at = now

        artifact_status = ArtifactStatus(status.value)
        if artifact is not None:
            artifact.status = artifact_status.value
            if artifact_status is ArtifactStatus.APPROVED:
                artifact.approved_at = now
            else:
                artifact.rejected_at = now
        else:
            logger.warning("Artifact %s missing while finishing chain %s", artifact_id, chain.id)

        self.events.append(
            f"chain_{status.value}",
            artifact_id=artifact_id,
            project_id=project_id,
            chain_id=chain.id,
            actor_user_id=actor_user_id,
            meta={"artifact_status": artifact_status.value},
            at=now,
        )
        self.db.flush()
        logger.info("Chain %s %s; artifact %s is %s", chain.id, status.value, artifact_id, artifact_status.value)
        return chain.status, artifact_status.value

    def _log_transition(
        self,
        step: ApprovalStep,
        to_status: StepStatus,
        artifact_id: UUID,
        project_id: Optional[UUID],
        actor_user_id: Optional[UUID],
        now: datetime,
        *,
        from_status: Union[StepStatus, str] = StepStatus.PENDING,
    ) -> None:
        # Provisioned rows may carry statuses outside the enum; log them as-is
        known = StepStatus.parse(from_status)
        rule = get_transition(known, to_status) if known else None
        from_value = known.value if known else str(from_status)
        action = rule.action if rule else f"step_{to_status.value}"
        self.events.append(
            action,
            artifact_id=artifact_id,
            project_id=project_id,
            chain_id=step.chain_id,
            step_id=step.id,
            actor_user_id=actor_user_id,
            meta={
                "step_order": step.step_order,
                "step_name": step.name,
                "from_status": from_value,
                "to_status": to_status.value,
            },
            at=now,
        )

    def _load_step(self, chain_id: UUID, step_id: UUID, lock: bool = False) -> ApprovalStep:
        query = self.db.query(ApprovalStep).filter(
            ApprovalStep.id == step_id,
            ApprovalStep.chain_id == chain_id,
        )
        if lock:
            query = query.with_for_update()
        step = query.populate_existing().first()
        if step is None:
            raise StepNotFound(step_id, chain_id)
        return step

    def _stored_triple(self, step: ApprovalStep, artifact_id: UUID) -> StatusTriple:
        chain = self.db.query(ApprovalChain).filter(ApprovalChain.id == step.chain_id).populate_existing().first()
        artifact = self.db.query(Artifact).filter(Artifact.id == artifact_id).populate_existing().first()
        return StatusTriple(
            step_status=step.status,
            chain_status=chain.status if chain else ChainStatus.ACTIVE.value,
            artifact_status=artifact.status if artifact else ArtifactStatus.SUBMITTED.value,
        )
