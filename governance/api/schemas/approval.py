"""Schemas for the artifact approval endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class DecisionRequest(BaseModel):
    """A vote on the artifact's pending step."""
    decision: str = Field(..., description="'approved' or 'rejected'")
    reason: Optional[str] = None


class StatusTripleResponse(BaseModel):
    step_status: str
    chain_status: str
    artifact_status: str


class MyActionResponse(BaseModel):
    can_act: bool
    on_behalf_of: Optional[UUID] = None


class PendingStepResponse(BaseModel):
    chain_id: UUID
    artifact_id: UUID
    project_id: Optional[UUID] = None
    step_id: UUID
    step_order: int
    step_name: str
    mode: str
    min_approvals: int
    max_rejections: int


class ProgressResponse(BaseModel):
    artifact_id: UUID
    chain_id: UUID
    chain_status: str
    total_steps: int
    approved_steps: int
    rejected_steps: int
    pending_steps: int
    current_step: Optional[PendingStepResponse] = None
    approver_count: Optional[int] = None
    remaining_approvers: Optional[int] = None
    needs_reassignment: bool = False
    decided_by: List[UUID] = []
    my_action: MyActionResponse


class TimelineEventResponse(BaseModel):
    id: int
    artifact_id: UUID
    chain_id: Optional[UUID] = None
    step_id: Optional[UUID] = None
    action_type: str
    actor_user_id: Optional[UUID] = None
    actor_role: Optional[str] = None
    comment: Optional[str] = None
    meta: Dict[str, Any] = {}
    created_at: Optional[datetime] = None


class TimelineResponse(BaseModel):
    items: List[TimelineEventResponse]
    limit: int
