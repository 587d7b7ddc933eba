"""Database models for the approval engine."""

from governance.db.models.artifact import Artifact
from governance.db.models.org import OrganisationMember
from governance.db.models.delegation import ApproverDelegation
from governance.db.models.approval import (
    ApprovalChain,
    ApprovalStep,
    StepApprover,
    ApprovalDecision,
    ApprovalEvent,
)

__all__ = [
    "Artifact",
    "OrganisationMember",
    "ApproverDelegation",
    "ApprovalChain",
    "ApprovalStep",
    "StepApprover",
    "ApprovalDecision",
    "ApprovalEvent",
]
