"""Schema capability negotiation.

Deployments do not all carry every table the approval engine can use
(older installs lack organisation memberships, delegations or the event
trail). Instead of probing by catching errors on every query, the engine
asks once per database engine which tables exist and keeps the answer for
the lifetime of the process.
"""

import logging
from dataclasses import dataclass
from typing import Dict

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


ENGINE_TABLES = (
    "approval_chains",
    "artifact_approval_steps",
    "artifact_step_approvers",
    "artifact_approval_decisions",
)


@dataclass(frozen=True)
class StoreCapabilities:
    """Which optional parts of the schema are available."""

    approval_engine: bool
    organisation_members: bool
    delegations: bool
    approval_events: bool

    @classmethod
    def from_table_names(cls, tables) -> "StoreCapabilities":
        names = set(tables)
        return cls(
            approval_engine=all(t in names for t in ENGINE_TABLES) and "artifacts" in names,
            organisation_members="organisation_members" in names,
            delegations="approver_delegations" in names,
            approval_events="approval_events" in names,
        )

    @classmethod
    def full(cls) -> "StoreCapabilities":
        return cls(
            approval_engine=True,
            organisation_members=True,
            delegations=True,
            approval_events=True,
        )


_capabilities: Dict[Engine, StoreCapabilities] = {}


def get_capabilities(db: Session) -> StoreCapabilities:
    """Return the capabilities of the store behind ``db``, probing at most once per engine."""
    connection = db.connection()
    engine = connection.engine
    caps = _capabilities.get(engine)
    if caps is None:
        caps = StoreCapabilities.from_table_names(inspect(connection).get_table_names())
        _capabilities[engine] = caps
        if not caps.approval_engine:
            logger.warning("Approval engine tables are missing on %s", engine.url)
        else:
            logger.info("Store capabilities for %s: %s", engine.url, caps)
    return caps


def reset_capabilities() -> None:
    """Forget every probed engine (schema migrated at runtime, tests)."""
    _capabilities.clear()
