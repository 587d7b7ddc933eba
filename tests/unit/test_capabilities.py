"""Tests for store capability negotiation."""

import pytest

from governance.db.capabilities import StoreCapabilities, get_capabilities, reset_capabilities


pytestmark = pytest.mark.db


class TestStoreCapabilities:

    def test_full_schema(self, db_session):
        assert get_capabilities(db_session) == StoreCapabilities.full()

    def test_from_table_names(self):
        caps = StoreCapabilities.from_table_names([
            "artifacts",
            "approval_chains",
            "artifact_approval_steps",
            "artifact_step_approvers",
            "artifact_approval_decisions",
        ])

        assert caps.approval_engine
        assert not caps.organisation_members
        assert not caps.delegations
        assert not caps.approval_events

    def test_engine_requires_every_core_table(self):
        caps = StoreCapabilities.from_table_names(["artifacts", "approval_chains"])
        assert not caps.approval_engine

    def test_partial_store(self, partial_session):
        session = partial_session("artifacts", "organisation_members")
        caps = get_capabilities(session)

        assert not caps.approval_engine
        assert caps.organisation_members
        assert not caps.delegations

    def test_probed_once_per_engine(self, db_session):
        first = get_capabilities(db_session)
        assert get_capabilities(db_session) is first

        reset_capabilities()
        assert get_capabilities(db_session) == first
