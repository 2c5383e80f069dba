"""
Drill catalog service: creating, editing, reading and listing drills.
"""
# pyright: reportAttributeAccessIssue=false
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from drill_engine.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from drill_engine.models.assignment import DrillAssignment
from drill_engine.models.drill import Drill
from drill_engine.models.enums import UserRole
from drill_engine.schemas.drill import DrillContent, DrillData, UpdateDrillRequest
from drill_engine.services.assignment_service import (
    create_assignments_for_learners,
    derive_due_date,
    schedule_assignment_notifications,
)
from drill_engine.services.notification_service import NotificationScheduler
from drill_engine.services.user_service import find_user_by_id, find_users_with_role, unique_ids

logger = logging.getLogger(__name__)

AUTHOR_ROLES = {UserRole.TUTOR.value, UserRole.ADMIN.value}


def _check_content(drill_type: str, content: DrillContent) -> None:
    errors = content.validate_type_specific_fields(drill_type)
    if errors:
        raise ValidationError("; ".join(errors))


def create_drill_with_assignments(
    session: Session,
    drill_data: DrillData,
    creator_id: int,
    learner_ids: List[int],
    schedule: Optional[NotificationScheduler] = None,
) -> Tuple[Drill, int]:
    """
    Create a drill and assign it to learners in one transaction.

    Creator, learners and content are validated before anything is written.

    Args:
        session: Database session
        drill_data: Drill fields
        creator_id: Tutor or admin creating the drill
        learner_ids: Learners to assign it to (may be empty)
        schedule: Scheduler for assignment notifications

    Returns:
        Tuple of (created drill, number of assignments created)

    Raises:
        NotFoundError: If the creator or a learner does not exist
        ForbiddenError: If the creator is not a tutor or admin
        ValidationError: If the content does not fit the drill type
    """
    creator = find_user_by_id(session, creator_id, resource="Creator")
    if creator.role not in AUTHOR_ROLES:
        raise ForbiddenError("Only tutors and admins can create drills")
    learners = find_users_with_role(session, unique_ids(learner_ids), UserRole.LEARNER.value)
    _check_content(drill_data.type.value, drill_data.content)

    drill = Drill(
        title=drill_data.title,
        type=drill_data.type.value,
        difficulty=drill_data.difficulty.value,
        due_date=drill_data.due_date,
        duration_days=drill_data.duration_days or 1,
        context=drill_data.context,
        content=drill_data.content.model_dump(mode="json"),
        created_by_id=creator.id,
    )
    session.add(drill)
    session.flush()  # Assign drill.id

    created = []
    if learners:
        result = create_assignments_for_learners(
            session, drill, learners, creator.id, derive_due_date(drill)
        )
        created = result.created

    session.commit()
    session.refresh(drill)
    for assignment in created:
        session.refresh(assignment)

    logger.info(
        f"Drill created: id={drill.id}, type={drill.type}, created_by={creator.email}, "
        f"assignments_created={len(created)}"
    )

    if created:
        schedule_assignment_notifications(created, drill, creator, learners, schedule)

    return drill, len(created)


def get_drill(session: Session, drill_id: int) -> Drill:
    """Get a drill by id or raise NotFoundError."""
    drill = session.get(Drill, drill_id)
    if not drill:
        raise NotFoundError("Drill")
    return drill


def _check_can_edit(drill: Drill, actor) -> None:
    if actor.role != UserRole.ADMIN.value and drill.created_by_id != actor.id:
        raise ForbiddenError("You do not have permission to update this drill")


def update_drill(
    session: Session,
    drill_id: int,
    data: UpdateDrillRequest,
    schedule: Optional[NotificationScheduler] = None,
) -> Tuple[Drill, int]:
    """
    Apply a corrective edit to a drill and assign it to newly listed learners.

    Only the creator or an admin may edit. The drill type cannot change. Learners
    that already hold an assignment are left alone; new ones go through the same
    dedup path as assign_drill.

    Returns:
        Tuple of (updated drill, number of new assignments)

    Raises:
        NotFoundError: If the drill, the actor or a learner does not exist
        ForbiddenError: If the actor is neither the creator nor an admin
        ValidationError: If new content does not fit the drill type
    """
    drill = get_drill(session, drill_id)
    actor = find_user_by_id(session, data.actor_id)
    _check_can_edit(drill, actor)

    learners = find_users_with_role(session, unique_ids(data.learner_ids), UserRole.LEARNER.value)
    if data.content is not None:
        _check_content(drill.type, data.content)

    if data.title is not None:
        drill.title = data.title
    if data.difficulty is not None:
        drill.difficulty = data.difficulty.value
    if data.due_date is not None:
        drill.due_date = data.due_date
    if data.duration_days is not None:
        drill.duration_days = data.duration_days
    if data.context is not None:
        drill.context = data.context
    if data.content is not None:
        drill.content = data.content.model_dump(mode="json")
    if data.is_active is not None:
        drill.is_active = data.is_active
    drill.updated_at = datetime.utcnow()
    session.add(drill)

    created = []
    if learners:
        result = create_assignments_for_learners(
            session, drill, learners, actor.id, derive_due_date(drill)
        )
        created = result.created

    session.commit()
    session.refresh(drill)
    for assignment in created:
        session.refresh(assignment)

    logger.info(f"Drill {drill.id} updated by {actor.email}: new_assignments={len(created)}")

    if created:
        schedule_assignment_notifications(created, drill, actor, learners, schedule)

    return drill, len(created)


def get_drill_for_user(
    session: Session,
    drill_id: int,
    user_id: int,
    assignment_id: Optional[int] = None,
) -> Tuple[Drill, Optional[DrillAssignment]]:
    """
    Get a drill with an access check.

    With an assignment id, the assignment must belong to the user and the drill.
    Otherwise admins see every drill, tutors the drills they created and learners
    the drills assigned to them.

    Returns:
        Tuple of (drill, the user's assignment or None)

    Raises:
        NotFoundError: If the drill, user or assignment does not exist
        ForbiddenError: If the user may not see the drill
    """
    drill = get_drill(session, drill_id)
    user = find_user_by_id(session, user_id)

    if assignment_id is not None:
        assignment = session.get(DrillAssignment, assignment_id)
        if not assignment or assignment.learner_id != user.id or assignment.drill_id != drill.id:
            raise NotFoundError("Assignment")
        return drill, assignment

    if user.role == UserRole.ADMIN.value:
        return drill, None

    if user.role == UserRole.TUTOR.value:
        if drill.created_by_id != user.id:
            raise ForbiddenError("You do not have permission to view this drill")
        return drill, None

    assignment = session.exec(
        select(DrillAssignment).where(
            DrillAssignment.drill_id == drill.id,
            DrillAssignment.learner_id == user.id,
        )
    ).first()
    if not assignment:
        raise ForbiddenError("You do not have access to this drill")
    return drill, assignment


def list_drills(
    session: Session,
    drill_type: Optional[str] = None,
    difficulty: Optional[str] = None,
    created_by_id: Optional[int] = None,
    learner_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Drill], int]:
    """List drills matching the filters, newest first, with the total count."""
    filters = []
    if drill_type:
        filters.append(Drill.type == drill_type)
    if difficulty:
        filters.append(Drill.difficulty == difficulty)
    if created_by_id is not None:
        filters.append(Drill.created_by_id == created_by_id)
    if is_active is not None:
        filters.append(Drill.is_active == is_active)
    if learner_id is not None:
        assigned = select(DrillAssignment.drill_id).where(DrillAssignment.learner_id == learner_id)
        filters.append(Drill.id.in_(assigned))

    total = session.exec(select(func.count(Drill.id)).where(*filters)).one()
    drills = session.exec(
        select(Drill)
        .where(*filters)
        .order_by(Drill.created_at.desc(), Drill.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(drills), total
