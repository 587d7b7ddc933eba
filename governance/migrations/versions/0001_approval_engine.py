"""Approval engine schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Tables added:
- artifacts: Governed project documents
- organisation_members: Organisation memberships (read by approver resolution)
- approval_chains: One approval run per artifact submission
- artifact_approval_steps: Ordered veto/quorum steps of a chain
- artifact_step_approvers: Approver bindings per step
- artifact_approval_decisions: Decision ledger, one vote per principal and step
- approver_delegations: Time-boxed approver cover
- approval_events: Vote and transition audit trail
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the approval engine tables."""

    # --- artifacts ---
    op.create_table(
        "artifacts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("organisation_id", sa.Uuid(), nullable=True),
        sa.Column("artifact_type", sa.String(100), nullable=True),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="draft"),
        sa.Column("approval_chain_id", sa.Uuid(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_artifacts"),
    )
    op.create_index("ix_artifacts_project_id", "artifacts", ["project_id"])
    op.create_index("ix_artifacts_organisation_id", "artifacts", ["organisation_id"])
    op.create_index("ix_artifacts_status", "artifacts", ["status"])
    op.create_index("ix_artifacts_approval_chain_id", "artifacts", ["approval_chain_id"])

    # --- organisation_members ---
    op.create_table(
        "organisation_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_organisation_members"),
    )
    op.create_index("ix_organisation_members_organisation_id", "organisation_members", ["organisation_id"])
    op.create_index("ix_organisation_members_user_id", "organisation_members", ["user_id"])

    # --- approval_chains ---
    op.create_table(
        "approval_chains",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("artifact_id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_chains"),
        sa.ForeignKeyConstraint(
            ["artifact_id"], ["artifacts.id"], name="fk_approval_chains_artifact_id", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_approval_chains_artifact_id", "approval_chains", ["artifact_id"])
    op.create_index("ix_approval_chains_project_id", "approval_chains", ["project_id"])
    op.create_index("ix_approval_chains_status", "approval_chains", ["status"])

    # --- artifact_approval_steps ---
    op.create_table(
        "artifact_approval_steps",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("chain_id", sa.Uuid(), nullable=False),
        sa.Column("artifact_id", sa.Uuid(), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default="Approval"),
        sa.Column("mode", sa.String(50), nullable=False, server_default="veto_quorum"),
        sa.Column("min_approvals", sa.Integer(), nullable=True, server_default="1"),
        sa.Column("max_rejections", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(50), nullable=False, server_default="not_reached"),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_artifact_approval_steps"),
        sa.ForeignKeyConstraint(
            ["chain_id"], ["approval_chains.id"], name="fk_artifact_approval_steps_chain_id", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("chain_id", "step_order", name="uq_step_chain_order"),
    )
    op.create_index("ix_artifact_approval_steps_chain_id", "artifact_approval_steps", ["chain_id"])
    op.create_index("ix_artifact_approval_steps_artifact_id", "artifact_approval_steps", ["artifact_id"])
    op.create_index("ix_steps_chain_status", "artifact_approval_steps", ["chain_id", "status"])

    # --- artifact_step_approvers ---
    op.create_table(
        "artifact_step_approvers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("step_id", sa.Uuid(), nullable=False),
        sa.Column("approver_type", sa.String(50), nullable=False, server_default="user"),
        sa.Column("approver_member_id", sa.Uuid(), nullable=True),
        sa.Column("approver_ref", sa.String(64), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_artifact_step_approvers"),
        sa.ForeignKeyConstraint(
            ["step_id"], ["artifact_approval_steps.id"],
            name="fk_artifact_step_approvers_step_id", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_artifact_step_approvers_step_id", "artifact_step_approvers", ["step_id"])

    # --- artifact_approval_decisions ---
    op.create_table(
        "artifact_approval_decisions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("chain_id", sa.Uuid(), nullable=False),
        sa.Column("step_id", sa.Uuid(), nullable=False),
        sa.Column("approver_user_id", sa.Uuid(), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=False),
        sa.Column("decision", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_artifact_approval_decisions"),
        sa.ForeignKeyConstraint(
            ["chain_id"], ["approval_chains.id"],
            name="fk_artifact_approval_decisions_chain_id", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["step_id"], ["artifact_approval_steps.id"],
            name="fk_artifact_approval_decisions_step_id", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("chain_id", "step_id", "approver_user_id", name="uq_decision_principal"),
    )
    op.create_index("ix_artifact_approval_decisions_chain_id", "artifact_approval_decisions", ["chain_id"])
    op.create_index("ix_artifact_approval_decisions_step_id", "artifact_approval_decisions", ["step_id"])
    op.create_index(
        "ix_artifact_approval_decisions_approver_user_id", "artifact_approval_decisions", ["approver_user_id"],
    )

    # --- approver_delegations ---
    op.create_table(
        "approver_delegations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organisation_id", sa.Uuid(), nullable=True),
        sa.Column("principal_user_id", sa.Uuid(), nullable=False),
        sa.Column("delegate_user_id", sa.Uuid(), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=True),
        sa.Column("ends_at", sa.DateTime(), nullable=True),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approver_delegations"),
    )
    op.create_index("ix_approver_delegations_organisation_id", "approver_delegations", ["organisation_id"])
    op.create_index("ix_approver_delegations_principal_user_id", "approver_delegations", ["principal_user_id"])
    op.create_index("ix_approver_delegations_delegate_user_id", "approver_delegations", ["delegate_user_id"])

    # --- approval_events ---
    op.create_table(
        "approval_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("artifact_id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("chain_id", sa.Uuid(), nullable=True),
        sa.Column("step_id", sa.Uuid(), nullable=True),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("actor_role", sa.String(50), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_events"),
    )
    op.create_index("ix_approval_events_artifact_id", "approval_events", ["artifact_id"])
    op.create_index("ix_approval_events_project_id", "approval_events", ["project_id"])
    op.create_index("ix_approval_events_created_at", "approval_events", ["created_at"])


def downgrade() -> None:
    """Drop the approval engine tables."""
    op.drop_table("approval_events")
    op.drop_table("approver_delegations")
    op.drop_table("artifact_approval_decisions")
    op.drop_table("artifact_step_approvers")
    op.drop_table("artifact_approval_steps")
    op.drop_table("approval_chains")
    op.drop_table("organisation_members")
    op.drop_table("artifacts")
