"""Artifact approval API endpoints."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from governance.api.deps import get_current_user_id, get_db
from governance.api.schemas.approval import (
    DecisionRequest,
    MyActionResponse,
    ProgressResponse,
    StatusTripleResponse,
    TimelineResponse,
)
from governance.core.approval import (
    ApprovalEngineUnavailable,
    ApprovalError,
    ApprovalService,
    DecisionValidationError,
    Forbidden,
    NoPendingStep,
    StepNotFound,
)
from governance.core.approval.events import clamp_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/artifacts", tags=["approvals"])


def _http_error(exc: ApprovalError) -> HTTPException:
    if isinstance(exc, Forbidden):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, NoPendingStep):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, DecisionValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, StepNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ApprovalEngineUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("/{artifact_id}/decision", response_model=StatusTripleResponse)
async def decide(
    artifact_id: UUID,
    body: DecisionRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """Approve or reject the artifact's pending step."""
    try:
        triple = ApprovalService(db).decide(artifact_id, user_id, body.decision, body.reason)
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise _http_error(e)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Decision on artifact %s failed", artifact_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Approval store unavailable, retry the decision",
        )

    return StatusTripleResponse(**triple.to_dict())


@router.get("/{artifact_id}/approval-progress", response_model=Optional[ProgressResponse])
async def get_approval_progress(
    artifact_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """Chain progress for the artifact, or null when it has no workflow."""
    snapshot = ApprovalService(db).get_progress(artifact_id, user_id)
    if snapshot is None:
        return None
    return ProgressResponse(**snapshot.to_dict())


@router.get("/{artifact_id}/can-act", response_model=MyActionResponse)
async def can_act(
    artifact_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """Whether the current user may decide on the pending step."""
    return MyActionResponse(**ApprovalService(db).can_act(artifact_id, user_id))


@router.post("/{artifact_id}/reconcile", response_model=Optional[StatusTripleResponse])
async def reconcile(
    artifact_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """Resume an interrupted cascade from the stored decisions."""
    try:
        triple = ApprovalService(db).reconcile(artifact_id)
        db.commit()
    except ApprovalError as e:
        db.rollback()
        raise _http_error(e)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Reconcile of artifact %s failed", artifact_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Approval store unavailable, retry the reconcile",
        )

    logger.info("User %s reconciled artifact %s", user_id, artifact_id)
    return StatusTripleResponse(**triple.to_dict()) if triple else None


@router.get("/{artifact_id}/approval-timeline", response_model=TimelineResponse)
async def get_approval_timeline(
    artifact_id: UUID,
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    """Approval events for the artifact, oldest first."""
    service = ApprovalService(db)
    effective = clamp_limit(limit if limit is not None else service.settings.events_page_limit)
    return TimelineResponse(items=service.timeline(artifact_id, effective), limit=effective)
