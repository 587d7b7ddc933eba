"""Approver and delegation resolution.

Turns a step's approver bindings into concrete user ids, and decides whether
an acting user may stand in for one of those approvers. Nothing here is
cached: approver sets and delegation windows can change between requests.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from governance.db.capabilities import StoreCapabilities, get_capabilities
from governance.db.models import ApproverDelegation, OrganisationMember, StepApprover

logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


def to_naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC; normalise aware values to match."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_user_id(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    if not value:
        return None
    try:
        return UUID(str(value).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class MemberApprover:
    """Approver named through an organisation membership."""
    member_id: UUID


@dataclass(frozen=True)
class DirectApprover:
    """Approver named directly by user id (legacy bindings)."""
    user_id: UUID


ApproverRef = Union[MemberApprover, DirectApprover]


def refs_from_binding(binding: StepApprover) -> List[ApproverRef]:
    """Extract approver references from one binding row.

    A row may carry both forms; each is returned so the resolved set is the
    union of the two.
    """
    if (binding.approver_type or "").strip().lower() != "user":
        return []

    refs: List[ApproverRef] = []
    member_id = parse_user_id(binding.approver_member_id)
    if member_id:
        refs.append(MemberApprover(member_id))
    user_id = parse_user_id(binding.approver_ref)
    if user_id:
        refs.append(DirectApprover(user_id))
    return refs


class ApproverResolver:
    """Resolves approver references for a step into user ids."""

    def __init__(self, db: Session, capabilities: Optional[StoreCapabilities] = None):
        self.db = db
        self.capabilities = capabilities or get_capabilities(db)

    def refs_for_step(self, step_id: UUID) -> List[ApproverRef]:
        """Approver references of every active binding on the step."""
        bindings = self.db.query(StepApprover).filter(
            StepApprover.step_id == step_id,
            StepApprover.active.is_(True),
        ).order_by(StepApprover.created_at.asc()).all()

        refs: List[ApproverRef] = []
        for binding in bindings:
            refs.extend(refs_from_binding(binding))
        return refs

    def resolve(self, ref: ApproverRef) -> List[UUID]:
        """Resolve a single reference."""
        return self.resolve_many([ref])

    def resolve_many(self, refs: Sequence[ApproverRef]) -> List[UUID]:
        """Resolve references to de-duplicated user ids, keeping first-seen order."""
        members = self._member_user_ids(
            [r.member_id for r in refs if isinstance(r, MemberApprover)]
        )

        resolved: List[UUID] = []
        seen = set()
        for ref in refs:
            if isinstance(ref, MemberApprover):
                user_id = members.get(ref.member_id)
            else:
                user_id = ref.user_id
            if user_id and user_id not in seen:
                seen.add(user_id)
                resolved.append(user_id)
        return resolved

    def resolve_step(self, step_id: UUID) -> List[UUID]:
        """The de-duplicated user ids eligible to decide on ``step_id``."""
        return self.resolve_many(self.refs_for_step(step_id))

    def _member_user_ids(self, member_ids: List[UUID]) -> Dict[UUID, UUID]:
        if not member_ids:
            return {}

        if not self.capabilities.organisation_members:
            logger.warning(
                "organisation_members unavailable; resolving %d membership approvers "
                "through legacy ids only", len(member_ids),
            )
            return {}

        try:
            with self.db.begin_nested():
                rows = self.db.query(OrganisationMember.id, OrganisationMember.user_id).filter(
                    OrganisationMember.id.in_(member_ids)
                ).all()
        except SQLAlchemyError:
            logger.warning(
                "Membership lookup failed; falling back to legacy approver ids",
                exc_info=True,
            )
            return {}

        return {row.id: row.user_id for row in rows if row.user_id}


class DelegationResolver:
    """Finds the approver an acting user may stand in for."""

    def __init__(
        self,
        db: Session,
        capabilities: Optional[StoreCapabilities] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.capabilities = capabilities or get_capabilities(db)
        self.clock = clock or datetime.utcnow

    def resolve_principal(
        self,
        actor_user_id: UUID,
        approver_ids: Iterable[UUID],
        now: Optional[datetime] = None,
    ) -> Optional[UUID]:
        """
        Return the principal of record for ``actor_user_id``.

        The actor itself when it is a designated approver, otherwise the
        approver whose active delegation to the actor covers ``now``, or
        None when neither applies.
        """
        approvers = list(approver_ids)
        if actor_user_id in approvers:
            return actor_user_id
        return self.find_delegator(actor_user_id, approvers, now=now)

    def find_delegator(
        self,
        actor_user_id: UUID,
        approver_ids: Iterable[UUID],
        now: Optional[datetime] = None,
    ) -> Optional[UUID]:
        """Return an approver who has delegated to ``actor_user_id`` at ``now``."""
        approvers = list(approver_ids)
        if not actor_user_id or not approvers:
            return None
        if not self.capabilities.delegations:
            return None

        at = to_naive_utc(now or self.clock())

        # Any matching principal is valid; ordering only makes the pick stable.
        delegation = self.db.query(ApproverDelegation).filter(
            ApproverDelegation.principal_user_id.in_(approvers),
            ApproverDelegation.delegate_user_id == actor_user_id,
            ApproverDelegation.is_active.is_(True),
            or_(ApproverDelegation.starts_at.is_(None), ApproverDelegation.starts_at <= at),
            or_(ApproverDelegation.ends_at.is_(None), ApproverDelegation.ends_at >= at),
        ).order_by(ApproverDelegation.created_at.asc(), ApproverDelegation.id.asc()).first()

        if delegation is None:
            return None

        logger.debug(
            "User %s acts for %s under delegation %s",
            actor_user_id, delegation.principal_user_id, delegation.id,
        )
        return delegation.principal_user_id
