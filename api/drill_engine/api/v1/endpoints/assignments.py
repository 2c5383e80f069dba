"""
Drill assignment endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from typing import Dict, List, Optional
import logging

from drill_engine.core.database import get_session
from drill_engine.models.enums import AssignmentStatus
from drill_engine.schemas.attempt import AttemptListResponse, AttemptResponse, LatestAttemptInfo
from drill_engine.schemas.drill import (
    AssignmentListResponse,
    AssignmentResponse,
    UpdateAssignmentStatusRequest,
)
from drill_engine.services import assignment_service, attempt_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drill-assignments", tags=["drill-assignments"])


@router.get("", response_model=AssignmentListResponse)
async def list_learner_assignments(
    learner_id: int,
    status: Optional[AssignmentStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session)
):
    """List the assignments of a learner, newest first."""
    assignments, total = assignment_service.list_assignments_for_learner(
        session, learner_id, status=status, page=page, page_size=page_size
    )
    return AssignmentListResponse(
        assignments=[AssignmentResponse.model_validate(a) for a in assignments],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/latest-attempts", response_model=Dict[int, LatestAttemptInfo])
async def get_latest_attempts(
    assignment_ids: List[int] = Query(...),
    session: Session = Depends(get_session)
):
    """
    Latest attempt of each assignment, keyed by assignment id.

    Subjective attempts carry their review status and correct/total counts.
    Assignments without attempts are left out.
    """
    latest = attempt_service.get_latest_attempts(session, assignment_ids)
    response = {}
    for assignment_id, attempt in latest.items():
        info = attempt_service.review_info(attempt)
        response[assignment_id] = LatestAttemptInfo(
            attempt_id=attempt.id,
            score=attempt.score,
            time_spent=attempt.time_spent,
            completed_at=attempt.completed_at,
            review_status=info.get("review_status"),
            correct_count=info.get("correct_count"),
            total_count=info.get("total_count"),
        )
    return response


@router.patch("/{assignment_id}/status", response_model=AssignmentResponse)
async def update_assignment_status(
    assignment_id: int,
    request: UpdateAssignmentStatusRequest,
    session: Session = Depends(get_session)
):
    """
    Move an assignment to another status.

    'completed' is rejected here; an assignment is completed by submitting the drill.
    """
    assignment = assignment_service.update_assignment_status(
        session, assignment_id, request.status, request.completed_at
    )
    return AssignmentResponse.model_validate(assignment)


@router.get("/{assignment_id}/attempts", response_model=AttemptListResponse)
async def list_assignment_attempts(
    assignment_id: int,
    session: Session = Depends(get_session)
):
    """All attempts of an assignment, latest first."""
    assignment_service.get_assignment(session, assignment_id)
    attempts = attempt_service.list_attempts_for_assignment(session, assignment_id)
    return AttemptListResponse(
        attempts=[AttemptResponse.model_validate(a) for a in attempts],
        total=len(attempts),
    )
