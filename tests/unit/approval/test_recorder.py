"""Tests for the decision ledger."""

import uuid
from unittest.mock import patch

import pytest

from governance.core.approval.errors import DecisionValidationError
from governance.core.approval.recorder import DecisionRecorder, normalize_reason
from governance.db.models import ApprovalDecision

from tests.factories import create_artifact, create_chain, get_step


pytestmark = pytest.mark.db


@pytest.fixture()
def step(db_session):
    artifact = create_artifact(db_session)
    chain = create_chain(db_session, artifact=artifact)
    return get_step(db_session, chain, 1)


def _decisions(db_session, step):
    return db_session.query(ApprovalDecision).filter(ApprovalDecision.step_id == step.id).all()


class TestRecord:

    def test_records_vote(self, db_session, step):
        alice = uuid.uuid4()
        row = DecisionRecorder(db_session).record(step.chain_id, step.id, alice, alice, "approved", "LGTM")

        assert row.decision == "approved"
        assert row.reason == "LGTM"
        assert row.approver_user_id == alice
        assert row.actor_user_id == alice
        assert row.decided_at is not None

    def test_repeat_vote_overwrites(self, db_session, step):
        """Voting again replaces the principal's earlier vote instead of adding one."""
        alice, dave = uuid.uuid4(), uuid.uuid4()
        recorder = DecisionRecorder(db_session)
        recorder.record(step.chain_id, step.id, alice, alice, "approved")
        row = recorder.record(step.chain_id, step.id, alice, dave, "rejected", "changed my mind")

        rows = _decisions(db_session, step)
        assert len(rows) == 1
        assert rows[0].id == row.id
        assert row.decision == "rejected"
        assert row.actor_user_id == dave
        assert row.reason == "changed my mind"

    def test_distinct_principals_get_separate_rows(self, db_session, step):
        recorder = DecisionRecorder(db_session)
        recorder.record(step.chain_id, step.id, uuid.uuid4(), uuid.uuid4(), "approved")
        recorder.record(step.chain_id, step.id, uuid.uuid4(), uuid.uuid4(), "approved")

        assert len(_decisions(db_session, step)) == 2

    def test_fallback_upsert_without_on_conflict(self, db_session, step):
        alice = uuid.uuid4()
        recorder = DecisionRecorder(db_session)

        with patch("governance.core.approval.recorder._dialect_insert", return_value=None):
            recorder.record(step.chain_id, step.id, alice, alice, "approved")
            recorder.record(step.chain_id, step.id, alice, alice, "rejected")

        rows = _decisions(db_session, step)
        assert len(rows) == 1
        assert rows[0].decision == "rejected"


class TestValidation:

    def test_invalid_decision_writes_nothing(self, db_session, step):
        alice = uuid.uuid4()
        with pytest.raises(DecisionValidationError) as exc_info:
            DecisionRecorder(db_session).record(step.chain_id, step.id, alice, alice, "maybe")

        assert exc_info.value.field == "decision"
        assert isinstance(exc_info.value, ValueError)
        assert _decisions(db_session, step) == []

    def test_missing_principal(self, db_session, step):
        with pytest.raises(DecisionValidationError) as exc_info:
            DecisionRecorder(db_session).record(step.chain_id, step.id, None, uuid.uuid4(), "approved")

        assert exc_info.value.field == "approver_user_id"

    def test_decision_is_normalised(self, db_session, step):
        alice = uuid.uuid4()
        row = DecisionRecorder(db_session).record(step.chain_id, step.id, alice, alice, "  APPROVED ")
        assert row.decision == "approved"


class TestReason:

    def test_trimmed_and_blank_dropped(self):
        assert normalize_reason("  ok  ") == "ok"
        assert normalize_reason("   ") is None
        assert normalize_reason(None) is None

    def test_clamped_to_max_length(self, db_session, step):
        alice = uuid.uuid4()
        row = DecisionRecorder(db_session, reason_max_length=10).record(
            step.chain_id, step.id, alice, alice, "rejected", "x" * 50,
        )
        assert row.reason == "x" * 10

    def test_default_limit(self):
        assert len(normalize_reason("y" * 6000)) == 5000
