"""Approval workflow states and transitions.

State Machine Diagram (one step of a chain):

    ┌─────────────┐
    │ NOT_REACHED │ ← Created with the chain (every step except the first)
    └──────┬──────┘
           │ previous step approved
    ┌──────▼──────┐
    │   PENDING   │ ← At most one per chain
    └──────┬──────┘
           │
     ┌─────┴──────┐
     │            │
┌────▼─────┐ ┌────▼─────┐
│ APPROVED │ │ REJECTED │
└──────────┘ └──────────┘

Chain: ACTIVE → APPROVED (last step approved) or REJECTED (any step rejected).
Artifact: SUBMITTED → APPROVED / REJECTED, driven by its chain.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class StepStatus(str, Enum):
    """States of a single approval step."""

    NOT_REACHED = "not_reached"   # Waiting for earlier steps
    PENDING = "pending"           # Open for votes
    APPROVED = "approved"         # Quorum reached
    REJECTED = "rejected"         # Veto threshold exceeded

    @classmethod
    def parse(cls, value) -> Optional["StepStatus"]:
        """Parse a stored status; returns None for values outside the enum."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class ChainStatus(str, Enum):
    """States of an approval chain."""

    ACTIVE = "active"
    APPROVED = "approved"
    REJECTED = "rejected"


class ArtifactStatus(str, Enum):
    """Lifecycle of the governed artifact as seen by the engine."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class DecisionValue(str, Enum):
    """A single approver's vote."""

    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value) -> Optional["DecisionValue"]:
        """Parse a raw vote; returns None for anything but approved/rejected."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class StepMode(str, Enum):
    """How a step turns votes into an outcome."""

    VETO_QUORUM = "veto_quorum"


class StepTransition(NamedTuple):
    """Defines a valid step status change."""
    from_status: StepStatus
    to_status: StepStatus
    action: str


# Define all valid step transitions
STEP_TRANSITIONS: list[StepTransition] = [
    StepTransition(StepStatus.NOT_REACHED, StepStatus.PENDING, "step_activated"),
    StepTransition(StepStatus.PENDING, StepStatus.APPROVED, "step_approved"),
    StepTransition(StepStatus.PENDING, StepStatus.REJECTED, "step_rejected"),
]

# Build lookup table for efficient access
VALID_STEP_TRANSITIONS: Dict[tuple[StepStatus, StepStatus], StepTransition] = {
    (t.from_status, t.to_status): t for t in STEP_TRANSITIONS
}


# Terminal states (no outgoing transitions)
TERMINAL_STEP_STATES: Set[StepStatus] = {
    StepStatus.APPROVED,
    StepStatus.REJECTED,
}

TERMINAL_CHAIN_STATES: Set[ChainStatus] = {
    ChainStatus.APPROVED,
    ChainStatus.REJECTED,
}

# Decision modes the engine knows how to evaluate
SUPPORTED_MODES: Set[str] = {m.value for m in StepMode}

DEFAULT_MIN_APPROVALS = 1
DEFAULT_MAX_REJECTIONS = 0


def can_transition(from_status: StepStatus, to_status: StepStatus) -> bool:
    """Check if a step may move between the two statuses."""
    return (from_status, to_status) in VALID_STEP_TRANSITIONS


def get_transition(from_status: StepStatus, to_status: StepStatus) -> Optional[StepTransition]:
    """Get the transition rule for a status change."""
    return VALID_STEP_TRANSITIONS.get((from_status, to_status))


def effective_min_approvals(value: Optional[int]) -> int:
    """Unset or non-positive thresholds fall back to a single approval."""
    try:
        n = int(value) if value is not None else 0
    except (TypeError, ValueError):
        n = 0
    return n if n > 0 else DEFAULT_MIN_APPROVALS


def effective_max_rejections(value: Optional[int]) -> int:
    try:
        n = int(value) if value is not None else DEFAULT_MAX_REJECTIONS
    except (TypeError, ValueError):
        n = DEFAULT_MAX_REJECTIONS
    return max(n, 0)
