"""Errors raised by the approval engine."""

from typing import Optional
from uuid import UUID


class ApprovalError(Exception):
    """Base class for approval engine errors."""


class Forbidden(ApprovalError):
    """Raised when the actor may not decide on the pending step."""

    def __init__(self, actor_user_id: UUID, step_id: Optional[UUID] = None):
        super().__init__("Forbidden: not an approver or delegate for the pending step")
        self.actor_user_id = actor_user_id
        self.step_id = step_id


class NoPendingStep(ApprovalError):
    """Raised when the artifact has no step awaiting decisions."""

    def __init__(self, artifact_id: UUID):
        super().__init__(f"No pending approval step found for artifact {artifact_id}")
        self.artifact_id = artifact_id


class DecisionValidationError(ApprovalError, ValueError):
    """Raised before any write when a decision is malformed."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StepNotFound(ApprovalError):
    """Raised when recomputing a step that does not exist in the chain."""

    def __init__(self, step_id: UUID, chain_id: Optional[UUID] = None):
        super().__init__(f"Approval step {step_id} not found")
        self.step_id = step_id
        self.chain_id = chain_id


class ApprovalEngineUnavailable(ApprovalError):
    """Raised when a write needs approval tables this deployment does not have."""

    def __init__(self):
        super().__init__("Approval engine not available")
