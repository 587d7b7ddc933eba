"""Approval engine for governed artifacts.

Implements multi-step approval chains with veto/quorum steps, delegation
and the chain/artifact status cascade.
"""

from .errors import (
    ApprovalEngineUnavailable,
    ApprovalError,
    DecisionValidationError,
    Forbidden,
    NoPendingStep,
    StepNotFound,
)
from .gate import AuthorizationGate, PendingStep
from .machine import StatusTriple, StepStateMachine
from .progress import ProgressReporter, ProgressSnapshot
from .service import ApprovalService
from .states import ArtifactStatus, ChainStatus, DecisionValue, StepStatus

__all__ = [
    "ApprovalEngineUnavailable",
    "ApprovalError",
    "DecisionValidationError",
    "Forbidden",
    "NoPendingStep",
    "StepNotFound",
    "AuthorizationGate",
    "PendingStep",
    "StatusTriple",
    "StepStateMachine",
    "ProgressReporter",
    "ProgressSnapshot",
    "ApprovalService",
    "ArtifactStatus",
    "ChainStatus",
    "DecisionValue",
    "StepStatus",
]
