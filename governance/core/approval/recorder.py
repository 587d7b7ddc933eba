"""Decision ledger writes.

A vote is upserted on (chain, step, principal): repeating it overwrites the
earlier row instead of adding a second vote, which makes a retried request
harmless. Recording never touches step, chain or artifact status.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from governance.db.models import ApprovalDecision

from .errors import DecisionValidationError
from .states import DecisionValue

logger = logging.getLogger(__name__)

DEFAULT_REASON_MAX_LENGTH = 5000

_CONFLICT_KEYS = ["chain_id", "step_id", "approver_user_id"]


def _dialect_insert(dialect_name: str):
    """Return the dialect's INSERT construct when it supports ON CONFLICT."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


def parse_decision(decision: Any) -> DecisionValue:
    """Parse a vote value, raising DecisionValidationError when it is not approved/rejected."""
    parsed = DecisionValue.parse(decision)
    if parsed is None:
        raise DecisionValidationError(
            f"Invalid decision {decision!r}: must be 'approved' or 'rejected'",
            field="decision",
        )
    return parsed


def normalize_reason(reason: Optional[str], max_length: int = DEFAULT_REASON_MAX_LENGTH) -> Optional[str]:
    if reason is None:
        return None
    text = str(reason).strip()
    if len(text) > max_length:
        text = text[:max_length]
    return text or None


class DecisionRecorder:
    """Persists one approver's vote against a step."""

    def __init__(self, db: Session, *, reason_max_length: int = DEFAULT_REASON_MAX_LENGTH):
        self.db = db
        self.reason_max_length = reason_max_length

    def validate(
        self,
        chain_id: Optional[UUID],
        step_id: Optional[UUID],
        principal_user_id: Optional[UUID],
        actor_user_id: Optional[UUID],
        decision: Any,
    ) -> DecisionValue:
        """
        Check the inputs of a vote.

        Raises:
            DecisionValidationError: If an id is missing or the vote is not approved/rejected
        """
        for name, value in (
            ("chain_id", chain_id),
            ("step_id", step_id),
            ("approver_user_id", principal_user_id),
            ("actor_user_id", actor_user_id),
        ):
            if not value:
                raise DecisionValidationError(f"Missing decision field: {name}", field=name)

        return parse_decision(decision)

    def record(
        self,
        chain_id: UUID,
        step_id: UUID,
        principal_user_id: UUID,
        actor_user_id: UUID,
        decision: Any,
        reason: Optional[str] = None,
        *,
        decided_at: Optional[datetime] = None,
    ) -> ApprovalDecision:
        """
        Upsert the principal's vote on a step.

        Args:
            chain_id: Chain of the step
            step_id: Step being voted on
            principal_user_id: Approver of record
            actor_user_id: User who physically acted (a delegate or the principal)
            decision: "approved" or "rejected"
            reason: Optional free text, trimmed and clamped

        Returns:
            The stored decision row

        Raises:
            DecisionValidationError: Before any write, if the inputs are invalid
        """
        value = self.validate(chain_id, step_id, principal_user_id, actor_user_id, decision)

        row: Dict[str, Any] = {
            "chain_id": chain_id,
            "step_id": step_id,
            "approver_user_id": principal_user_id,
            "actor_user_id": actor_user_id,
            "decision": value.value,
            "reason": normalize_reason(reason, self.reason_max_length),
            "decided_at": decided_at or datetime.utcnow(),
        }

        insert = _dialect_insert(self.db.get_bind().dialect.name)
        if insert is not None:
            self.db.flush()
            stmt = insert(ApprovalDecision).values(**row)
            stmt = stmt.on_conflict_do_update(
                index_elements=_CONFLICT_KEYS,
                set_={
                    "actor_user_id": stmt.excluded.actor_user_id,
                    "decision": stmt.excluded.decision,
                    "reason": stmt.excluded.reason,
                    "decided_at": stmt.excluded.decided_at,
                },
            )
            self.db.execute(stmt)
        else:
            self._upsert_with_lock(row)

        stored = self.db.query(ApprovalDecision).populate_existing().filter(
            ApprovalDecision.chain_id == chain_id,
            ApprovalDecision.step_id == step_id,
            ApprovalDecision.approver_user_id == principal_user_id,
        ).one()

        logger.info(
            "Recorded %s by %s (actor %s) on step %s",
            value.value, principal_user_id, actor_user_id, step_id,
        )
        return stored

    def _upsert_with_lock(self, row: Dict[str, Any]) -> None:
        existing = self.db.query(ApprovalDecision).filter(
            ApprovalDecision.chain_id == row["chain_id"],
            ApprovalDecision.step_id == row["step_id"],
            ApprovalDecision.approver_user_id == row["approver_user_id"],
        ).with_for_update().first()

        if existing:
            existing.actor_user_id = row["actor_user_id"]
            existing.decision = row["decision"]
            existing.reason = row["reason"]
            existing.decided_at = row["decided_at"]
        else:
            self.db.add(ApprovalDecision(**row))
        self.db.flush()
