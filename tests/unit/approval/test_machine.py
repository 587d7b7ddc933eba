"""Tests for the step state machine and its chain/artifact cascade."""

import uuid

import pytest
from sqlalchemy import event, update

from governance.core.approval.errors import StepNotFound
from governance.core.approval.machine import StepStateMachine
from governance.core.approval.states import StepStatus
from governance.db.models import ApprovalEvent, ApprovalStep

from tests.factories import NOW, create_artifact, create_chain, create_decision, get_step


pytestmark = pytest.mark.db


@pytest.fixture()
def approvers():
    return [uuid.uuid4() for _ in range(3)]


@pytest.fixture()
def two_step_chain(db_session, approvers):
    a, b, c = approvers
    artifact = create_artifact(db_session)
    chain = create_chain(
        db_session,
        artifact=artifact,
        steps=[
            {"approvers": [a], "min_approvals": 1, "max_rejections": 0},
            {"approvers": [b, c], "min_approvals": 2, "max_rejections": 0},
        ],
    )
    return artifact, chain


def _machine(db_session):
    return StepStateMachine(db_session, clock=lambda: NOW)


def _actions(db_session, artifact):
    return [
        e.action_type for e in db_session.query(ApprovalEvent).filter(
            ApprovalEvent.artifact_id == artifact.id
        ).order_by(ApprovalEvent.id.asc())
    ]


class TestTally:

    def test_counts_by_decision(self, db_session, two_step_chain):
        artifact, chain = two_step_chain
        step = get_step(db_session, chain, 2)
        create_decision(db_session, step=step, approver_user_id=uuid.uuid4(), decision="approved")
        create_decision(db_session, step=step, approver_user_id=uuid.uuid4(), decision="rejected")
        create_decision(db_session, step=step, approver_user_id=uuid.uuid4(), decision="approved")

        tally = _machine(db_session).tally(chain.id, step.id)
        assert (tally.approvals, tally.rejections) == (2, 1)


class TestRecompute:

    def test_no_votes_stays_pending(self, db_session, two_step_chain):
        artifact, chain = two_step_chain
        step = get_step(db_session, chain, 1)

        triple = _machine(db_session).recompute(artifact.id, chain.id, step.id)

        assert triple.to_dict() == {
            "step_status": "pending",
            "chain_status": "active",
            "artifact_status": "submitted",
        }

    def test_approval_activates_next_step(self, db_session, two_step_chain, approvers):
        artifact, chain = two_step_chain
        step1 = get_step(db_session, chain, 1)
        create_decision(db_session, step=step1, approver_user_id=approvers[0])

        triple = _machine(db_session).recompute(artifact.id, chain.id, step1.id)

        assert triple.step_status == "approved"
        assert triple.chain_status == "active"
        assert triple.artifact_status == "submitted"
        assert get_step(db_session, chain, 1).status == "approved"
        assert get_step(db_session, chain, 1).completed_at == NOW
        assert get_step(db_session, chain, 2).status == "pending"
        assert _actions(db_session, artifact) == ["step_approved", "step_activated"]

    def test_last_step_approves_chain_and_artifact(self, db_session, approvers):
        artifact = create_artifact(db_session)
        chain = create_chain(db_session, artifact=artifact, steps=[{"approvers": approvers[:1]}])
        step = get_step(db_session, chain, 1)
        create_decision(db_session, step=step, approver_user_id=approvers[0])

        triple = _machine(db_session).recompute(artifact.id, chain.id, step.id)

        assert triple.to_dict() == {
            "step_status": "approved",
            "chain_status": "approved",
            "artifact_status": "approved",
        }
        assert chain.is_active is False
        assert chain.completed_at == NOW
        assert artifact.approved_at == NOW
        assert _actions(db_session, artifact) == ["step_approved", "chain_approved"]

    def test_rejection_short_circuits(self, db_session, approvers):
        a, b, c = approvers
        artifact = create_artifact(db_session)
        chain = create_chain(
            db_session,
            artifact=artifact,
            steps=[{"approvers": [a]}, {"approvers": [b]}, {"approvers": [c]}],
        )
        step1 = get_step(db_session, chain, 1)
        create_decision(db_session, step=step1, approver_user_id=a, decision="rejected")

        triple = _machine(db_session).recompute(artifact.id, chain.id, step1.id)

        assert triple.to_dict() == {
            "step_status": "rejected",
            "chain_status": "rejected",
            "artifact_status": "rejected",
        }
        assert get_step(db_session, chain, 2).status == "not_reached"
        assert get_step(db_session, chain, 3).status == "not_reached"
        assert artifact.rejected_at == NOW
        assert _actions(db_session, artifact) == ["step_rejected", "chain_rejected"]

    def test_rejection_threshold(self, db_session):
        artifact = create_artifact(db_session)
        chain = create_chain(db_session, artifact=artifact, steps=[{"min_approvals": 3, "max_rejections": 1}])
        step = get_step(db_session, chain, 1)
        machine = _machine(db_session)

        create_decision(db_session, step=step, approver_user_id=uuid.uuid4(), decision="rejected")
        assert machine.recompute(artifact.id, chain.id, step.id).step_status == "pending"

        create_decision(db_session, step=step, approver_user_id=uuid.uuid4(), decision="rejected")
        assert machine.recompute(artifact.id, chain.id, step.id).step_status == "rejected"

    def test_recompute_is_idempotent(self, db_session, two_step_chain, approvers):
        artifact, chain = two_step_chain
        step1 = get_step(db_session, chain, 1)
        create_decision(db_session, step=step1, approver_user_id=approvers[0])
        machine = _machine(db_session)

        first = machine.recompute(artifact.id, chain.id, step1.id)
        events_after_first = _actions(db_session, artifact)
        second = machine.recompute(artifact.id, chain.id, step1.id)

        assert first == second
        assert _actions(db_session, artifact) == events_after_first
        assert get_step(db_session, chain, 2).status == "pending"

    def test_unknown_step(self, db_session, two_step_chain):
        artifact, chain = two_step_chain
        with pytest.raises(StepNotFound):
            _machine(db_session).recompute(artifact.id, chain.id, uuid.uuid4())

    def test_step_of_another_chain(self, db_session, two_step_chain):
        artifact, chain = two_step_chain
        other = create_chain(db_session, artifact=create_artifact(db_session))

        with pytest.raises(StepNotFound):
            _machine(db_session).recompute(artifact.id, chain.id, get_step(db_session, other, 1).id)


class TestApplyTransition:

    def test_cas_loser_writes_nothing(self, db_session, two_step_chain):
        """Only the caller that moves the step out of pending performs the cascade."""
        artifact, chain = two_step_chain
        step1 = get_step(db_session, chain, 1)

        # A concurrent request settled the step first
        db_session.execute(
            update(ApprovalStep).where(ApprovalStep.id == step1.id).values(status="approved")
        )

        result = _machine(db_session).apply_transition(step1, artifact.id, StepStatus.APPROVED)

        assert result is None
        assert get_step(db_session, chain, 2).status == "not_reached"
        assert _actions(db_session, artifact) == []

    def test_rejects_invalid_outcome(self, db_session, two_step_chain):
        artifact, chain = two_step_chain
        with pytest.raises(ValueError):
            _machine(db_session).apply_transition(get_step(db_session, chain, 1), artifact.id, StepStatus.PENDING)

    def test_single_pending_step_per_chain(self, db_session, two_step_chain, approvers):
        artifact, chain = two_step_chain
        step1 = get_step(db_session, chain, 1)
        create_decision(db_session, step=step1, approver_user_id=approvers[0])

        _machine(db_session).recompute(artifact.id, chain.id, step1.id)

        pending = db_session.query(ApprovalStep).filter(
            ApprovalStep.chain_id == chain.id,
            ApprovalStep.status == "pending",
        ).count()
        assert pending == 1

    def test_step_locked_before_tally(self, db_session, two_step_chain, approvers):
        """Votes committed while a recompute waits on the step row are counted."""
        artifact, chain = two_step_chain
        step1 = get_step(db_session, chain, 1)
        create_decision(db_session, step=step1, approver_user_id=approvers[0])
        machine = _machine(db_session)

        selects = []

        def capture(state):
            if state.is_select:
                selects.append(str(state.statement))

        event.listen(db_session, "do_orm_execute", capture)
        try:
            machine.recompute(artifact.id, chain.id, step1.id)
        finally:
            event.remove(db_session, "do_orm_execute", capture)

        locked = [
            i for i, sql in enumerate(selects)
            if "FROM artifact_approval_steps" in sql and "FOR UPDATE" in sql
        ]
        tallies = [i for i, sql in enumerate(selects) if "FROM artifact_approval_decisions" in sql]
        assert locked and tallies
        assert locked[0] < tallies[0]

    def test_next_step_with_unrecognised_status(self, db_session, approvers):
        artifact = create_artifact(db_session)
        chain = create_chain(
            db_session,
            artifact=artifact,
            steps=[{"approvers": approvers[:1]}, {"approvers": approvers[1:], "status": "on_hold"}],
        )
        step1 = get_step(db_session, chain, 1)
        create_decision(db_session, step=step1, approver_user_id=approvers[0])

        triple = _machine(db_session).recompute(artifact.id, chain.id, step1.id)

        assert triple.step_status == "approved"
        assert get_step(db_session, chain, 2).status == "pending"
        assert _actions(db_session, artifact) == ["step_approved", "step_pending"]
        activation = db_session.query(ApprovalEvent).filter(
            ApprovalEvent.artifact_id == artifact.id,
            ApprovalEvent.action_type == "step_pending",
        ).one()
        assert activation.meta["from_status"] == "on_hold"
