"""
Drill endpoints: catalog, assignment and completion.
"""
# pyright: reportAttributeAccessIssue=false
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlmodel import Session
from typing import Optional
import logging

from drill_engine.core.database import get_session
from drill_engine.models.enums import Difficulty, DrillType
from drill_engine.schemas.attempt import AttemptResponse, CompleteDrillRequest
from drill_engine.schemas.drill import (
    AssignDrillRequest,
    AssignDrillResponse,
    AssignmentListResponse,
    AssignmentResponse,
    CreateDrillRequest,
    CreateDrillResponse,
    DrillDetailResponse,
    DrillListResponse,
    DrillResponse,
    UpdateDrillRequest,
    UpdateDrillResponse,
)
from drill_engine.services import assignment_service, attempt_service, drill_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drills", tags=["drills"])


@router.post("", response_model=CreateDrillResponse, status_code=status.HTTP_201_CREATED)
async def create_drill(
    request: CreateDrillRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session)
):
    """
    Create a drill and assign it to the listed learners.

    Learners are notified in the background once the drill is saved.
    """
    drill, assignment_count = drill_service.create_drill_with_assignments(
        session,
        request.drill,
        request.creator_id,
        request.learner_ids,
        schedule=background_tasks.add_task,
    )
    return CreateDrillResponse(
        drill=DrillResponse.model_validate(drill),
        assignment_count=assignment_count,
    )


@router.get("", response_model=DrillListResponse)
async def list_drills(
    type: Optional[DrillType] = None,
    difficulty: Optional[Difficulty] = None,
    created_by_id: Optional[int] = None,
    learner_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session)
):
    """List drills with optional filters."""
    drills, total = drill_service.list_drills(
        session,
        drill_type=type.value if type else None,
        difficulty=difficulty.value if difficulty else None,
        created_by_id=created_by_id,
        learner_id=learner_id,
        is_active=is_active,
        page=page,
        page_size=page_size,
    )
    return DrillListResponse(
        drills=[DrillResponse.model_validate(d) for d in drills],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{drill_id}", response_model=DrillDetailResponse)
async def get_drill(
    drill_id: int,
    user_id: int,
    assignment_id: Optional[int] = None,
    session: Session = Depends(get_session)
):
    """
    Get a drill as seen by a user.

    Admins see every drill, tutors the drills they created, learners the drills
    assigned to them.
    """
    drill, assignment = drill_service.get_drill_for_user(session, drill_id, user_id, assignment_id)
    return DrillDetailResponse(
        drill=DrillResponse.model_validate(drill),
        assignment=AssignmentResponse.model_validate(assignment) if assignment else None,
    )


@router.patch("/{drill_id}", response_model=UpdateDrillResponse)
async def update_drill(
    drill_id: int,
    request: UpdateDrillRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session)
):
    """Edit a drill; learners listed for the first time get an assignment."""
    drill, created = drill_service.update_drill(
        session, drill_id, request, schedule=background_tasks.add_task
    )
    return UpdateDrillResponse(
        drill=DrillResponse.model_validate(drill),
        new_assignments_created=created,
    )


@router.post("/{drill_id}/assign", response_model=AssignDrillResponse, status_code=status.HTTP_201_CREATED)
async def assign_drill(
    drill_id: int,
    request: AssignDrillRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session)
):
    """
    Assign a drill to learners.

    Learners that already have the drill are skipped and counted, never duplicated.
    """
    result = assignment_service.assign_drill(
        session,
        drill_id,
        request.learner_ids,
        request.assigned_by,
        due_date=request.due_date,
        schedule=background_tasks.add_task,
    )
    return AssignDrillResponse(
        created=[AssignmentResponse.model_validate(a) for a in result.created],
        skipped=result.skipped,
        failed=result.failed,
        total=result.total,
    )


@router.get("/{drill_id}/assignments", response_model=AssignmentListResponse)
async def list_drill_assignments(
    drill_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=500),
    session: Session = Depends(get_session)
):
    """List the assignments of a drill."""
    assignments, total = assignment_service.list_assignments_for_drill(session, drill_id, page, page_size)
    return AssignmentListResponse(
        assignments=[AssignmentResponse.model_validate(a) for a in assignments],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/{drill_id}/complete", response_model=AttemptResponse, status_code=status.HTTP_201_CREATED)
async def complete_drill(
    drill_id: int,
    request: CompleteDrillRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session)
):
    """
    Record a finished drill.

    The assignment must belong to the learner and to this drill, and the results
    must be of the drill's type. The assigner is notified in the background.
    """
    attempt = attempt_service.complete_drill(
        session,
        drill_id,
        request.assignment_id,
        request.learner_id,
        request.score,
        request.time_spent,
        request.results,
        platform=request.platform,
        device_info=request.device_info,
        schedule=background_tasks.add_task,
    )
    return AttemptResponse.model_validate(attempt)
