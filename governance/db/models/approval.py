"""Approval workflow database models.

Stores approval chains, their ordered steps, approver bindings, the
decision ledger and the event trail.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Boolean, Integer, JSON, ForeignKey, Text, Uuid,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from governance.db.base import Base


class ApprovalChain(Base):
    """
    One approval workflow run for one artifact submission.

    Created by the submission flow together with its steps. Terminal once
    approved or rejected; a resubmission creates a new chain.
    """
    __tablename__ = "approval_chains"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    artifact_id = Column(Uuid, ForeignKey("artifacts.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Uuid, nullable=True, index=True)

    # active, approved, rejected
    status = Column(String(50), nullable=False, default="active", index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    artifact = relationship("Artifact")
    steps = relationship(
        "ApprovalStep",
        back_populates="chain",
        order_by="ApprovalStep.step_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ApprovalChain {self.id} [{self.status}]>"


class ApprovalStep(Base):
    """
    An ordered stage of a chain with its own quorum/veto thresholds.

    The step is approved once ``min_approvals`` approvals are recorded and
    rejected once rejections exceed ``max_rejections``.
    """
    __tablename__ = "artifact_approval_steps"
    __table_args__ = (
        UniqueConstraint("chain_id", "step_order", name="uq_step_chain_order"),
        Index("ix_steps_chain_status", "chain_id", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    chain_id = Column(Uuid, ForeignKey("approval_chains.id", ondelete="CASCADE"), nullable=False, index=True)
    artifact_id = Column(Uuid, nullable=False, index=True)

    step_order = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False, default="Approval")
    mode = Column(String(50), nullable=False, default="veto_quorum")

    # NULL or 0 is treated as 1
    min_approvals = Column(Integer, nullable=True, default=1)
    max_rejections = Column(Integer, nullable=False, default=0)

    # pending, approved, rejected, not_reached
    status = Column(String(50), nullable=False, default="not_reached")

    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    chain = relationship("ApprovalChain", back_populates="steps")
    approvers = relationship("StepApprover", back_populates="step", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<ApprovalStep #{self.step_order} {self.name!r} [{self.status}]>"


class StepApprover(Base):
    """
    Binds a designated approver to a step.

    Canonical rows reference an organisation membership
    (``approver_member_id``); legacy rows carry the user id directly in
    ``approver_ref``.
    """
    __tablename__ = "artifact_step_approvers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    step_id = Column(Uuid, ForeignKey("artifact_approval_steps.id", ondelete="CASCADE"), nullable=False, index=True)

    approver_type = Column(String(50), nullable=False, default="user")
    approver_member_id = Column(Uuid, nullable=True)
    approver_ref = Column(String(64), nullable=True)

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    step = relationship("ApprovalStep", back_populates="approvers")


class ApprovalDecision(Base):
    """
    One principal's vote on one step.

    Unique per (chain, step, principal): a later vote replaces the earlier
    one. ``actor_user_id`` differs from ``approver_user_id`` when a delegate
    voted.
    """
    __tablename__ = "artifact_approval_decisions"
    __table_args__ = (
        UniqueConstraint("chain_id", "step_id", "approver_user_id", name="uq_decision_principal"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    chain_id = Column(Uuid, ForeignKey("approval_chains.id", ondelete="CASCADE"), nullable=False, index=True)
    step_id = Column(Uuid, ForeignKey("artifact_approval_steps.id", ondelete="CASCADE"), nullable=False, index=True)

    approver_user_id = Column(Uuid, nullable=False, index=True)
    actor_user_id = Column(Uuid, nullable=False)

    # approved, rejected
    decision = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)

    decided_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ApprovalDecision {self.approver_user_id} {self.decision}>"


class ApprovalEvent(Base):
    """
    Append-only audit trail of votes and status transitions.
    """
    __tablename__ = "approval_events"

    # Integer key keeps insertion order for events sharing a timestamp
    id = Column(Integer, primary_key=True, autoincrement=True)
    artifact_id = Column(Uuid, nullable=False, index=True)
    project_id = Column(Uuid, nullable=True, index=True)
    chain_id = Column(Uuid, nullable=True)
    step_id = Column(Uuid, nullable=True)

    action_type = Column(String(50), nullable=False)
    actor_user_id = Column(Uuid, nullable=True)
    actor_role = Column(String(50), nullable=True)
    comment = Column(Text, nullable=True)
    meta = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ApprovalEvent {self.action_type}>"
