"""Tests for the read-only progress snapshot."""

import uuid
from datetime import timedelta

import pytest

from governance.core.approval.progress import ProgressReporter
from governance.db.capabilities import StoreCapabilities
from governance.db.models import ApprovalEvent, ApprovalStep

from tests.factories import (
    NOW,
    create_artifact,
    create_chain,
    create_decision,
    create_delegation,
    create_step_approver,
    get_step,
)


pytestmark = pytest.mark.db


@pytest.fixture()
def users():
    return [uuid.uuid4() for _ in range(3)]


@pytest.fixture()
def artifact(db_session, users):
    artifact = create_artifact(db_session)
    create_chain(
        db_session,
        artifact=artifact,
        steps=[
            {"approvers": users, "min_approvals": 2},
            {"approvers": users[:1]},
        ],
    )
    return artifact


def _reporter(db_session):
    return ProgressReporter(db_session, clock=lambda: NOW)


class TestSnapshot:

    def test_counts_and_current_step(self, db_session, artifact, users):
        step = db_session.query(ApprovalStep).filter(
            ApprovalStep.chain_id == artifact.approval_chain_id,
            ApprovalStep.step_order == 1,
        ).one()
        create_decision(db_session, step=step, approver_user_id=users[0])

        snap = _reporter(db_session).snapshot(artifact.id)

        assert snap.chain_status == "active"
        assert snap.total_steps == 2
        assert snap.pending_steps == 1
        assert snap.approved_steps == 0
        assert snap.current_step.step_id == step.id
        assert snap.approver_count == 3
        assert snap.remaining_approvers == 2
        assert snap.needs_reassignment is False
        assert snap.decided_by == [users[0]]
        assert snap.to_dict()["decided_by"] == [str(users[0])]

    def test_caller_eligibility(self, db_session, artifact, users):
        snap = _reporter(db_session).snapshot(artifact.id, users[1])

        assert snap.can_act is True
        assert snap.on_behalf_of is None

    def test_delegate_sees_principal(self, db_session, artifact, users):
        dave = uuid.uuid4()
        create_delegation(
            db_session, principal_user_id=users[2], delegate_user_id=dave,
            starts_at=NOW - timedelta(hours=1), ends_at=NOW + timedelta(hours=1),
        )

        snap = _reporter(db_session).snapshot(artifact.id, dave, now=NOW)
        data = snap.to_dict()

        assert data["my_action"] == {"can_act": True, "on_behalf_of": str(users[2])}

    def test_stranger_cannot_act(self, db_session, artifact):
        snap = _reporter(db_session).snapshot(artifact.id, uuid.uuid4())
        assert snap.to_dict()["my_action"] == {"can_act": False, "on_behalf_of": None}

    def test_empty_approver_set_needs_reassignment(self, db_session):
        artifact = create_artifact(db_session)
        chain = create_chain(db_session, artifact=artifact)
        create_step_approver(db_session, step=get_step(db_session, chain, 1), user_id=uuid.uuid4(), active=False)

        snap = _reporter(db_session).snapshot(artifact.id)

        assert snap.approver_count == 0
        assert snap.remaining_approvers == 0
        assert snap.needs_reassignment is True
        assert snap.current_step is not None

    def test_completed_chain(self, db_session, artifact):
        for step in db_session.query(ApprovalStep).filter(ApprovalStep.chain_id == artifact.approval_chain_id):
            step.status = "approved"
        db_session.flush()

        snap = _reporter(db_session).snapshot(artifact.id)

        assert snap.current_step is None
        assert snap.approved_steps == 2
        assert snap.to_dict()["current_step"] is None

    def test_snapshot_is_read_only(self, db_session, artifact, users):
        step = db_session.query(ApprovalStep).filter(
            ApprovalStep.chain_id == artifact.approval_chain_id,
            ApprovalStep.step_order == 1,
        ).one()
        # Enough votes to settle the step, but the reporter must not settle it
        create_decision(db_session, step=step, approver_user_id=users[0])
        create_decision(db_session, step=step, approver_user_id=users[1])

        _reporter(db_session).snapshot(artifact.id, users[0])

        db_session.expire_all()
        assert step.status == "pending"
        assert db_session.query(ApprovalEvent).filter(ApprovalEvent.artifact_id == artifact.id).count() == 0


class TestNoWorkflow:

    def test_unsubmitted_artifact(self, db_session):
        assert _reporter(db_session).snapshot(create_artifact(db_session).id) is None

    def test_unknown_artifact(self, db_session):
        assert _reporter(db_session).snapshot(uuid.uuid4()) is None

    def test_engine_tables_missing(self, db_session, artifact):
        caps = StoreCapabilities(
            approval_engine=False, organisation_members=False, delegations=False, approval_events=False,
        )
        assert ProgressReporter(db_session, caps).snapshot(artifact.id) is None

    def test_store_without_engine_tables(self, partial_session):
        session = partial_session("artifacts")
        assert ProgressReporter(session).snapshot(uuid.uuid4()) is None
