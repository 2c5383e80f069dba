"""
Assignment ledger service.

Binds drills to learners, at most once per (drill, learner). The existence check
before inserting is a single query over all candidates; the unique constraint on
(drill_id, learner_id) is what actually keeps concurrent calls from creating
duplicates, and an insert that hits it counts as "already assigned".
"""
# pyright: reportAttributeAccessIssue=false
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from drill_engine.core.config import settings
from drill_engine.core.exceptions import NotFoundError, ValidationError
from drill_engine.models.assignment import DrillAssignment
from drill_engine.models.drill import Drill
from drill_engine.models.enums import AssignmentStatus, UserRole
from drill_engine.models.user import User
from drill_engine.services.notification_service import (
    NotificationScheduler,
    build_assigned_notification,
    dispatch_notifications,
)
from drill_engine.services.user_service import find_user_by_id, find_users_with_role, unique_ids

logger = logging.getLogger(__name__)


@dataclass
class AssignResult:
    """Outcome of a bulk assignment."""
    created: List[DrillAssignment] = field(default_factory=list)
    skipped: int = 0  # Already assigned, before the call or through an insert conflict
    failed: int = 0  # Rows that failed for any other reason

    @property
    def total(self) -> int:
        return len(self.created)


def derive_due_date(drill: Drill, due_date: Optional[datetime] = None, now: Optional[datetime] = None) -> datetime:
    """
    Due date for new assignments of a drill.

    An explicit due date wins, then the drill's own due date, then
    now + duration_days.
    """
    if due_date is not None:
        return due_date
    if drill.due_date is not None:
        return drill.due_date
    base = now or datetime.utcnow()
    return base + timedelta(days=drill.duration_days or settings.default_duration_days)


def find_existing_learner_ids(session: Session, drill_id: int, learner_ids: List[int]) -> Set[int]:
    """Learners among learner_ids that already have an assignment for the drill (one query)."""
    if not learner_ids:
        return set()
    rows = session.exec(
        select(DrillAssignment.learner_id).where(
            DrillAssignment.drill_id == drill_id,
            DrillAssignment.learner_id.in_(learner_ids),
        )
    ).all()
    return set(rows)


def insert_assignments(session: Session, assignments: List[DrillAssignment]) -> Tuple[List[DrillAssignment], int, int]:
    """
    Insert assignments best-effort, each inside its own savepoint.

    A unique-constraint conflict means another call assigned the learner first and is
    counted as a conflict. Any other database error is logged and counted as failed.
    Successful rows are kept either way; nothing is retried.

    Returns:
        Tuple of (inserted assignments, conflict count, failed count)
    """
    inserted = []
    conflicts = 0
    failed = 0
    for assignment in assignments:
        try:
            with session.begin_nested():
                session.add(assignment)
            inserted.append(assignment)
        except IntegrityError:
            conflicts += 1
            logger.info(
                f"Assignment for drill {assignment.drill_id} and learner {assignment.learner_id} "
                f"already exists; skipping"
            )
        except SQLAlchemyError as e:
            failed += 1
            logger.error(
                f"Failed to insert assignment for drill {assignment.drill_id} "
                f"and learner {assignment.learner_id}: {str(e)}"
            )
    if conflicts or failed:
        logger.warning(
            f"Some assignments were not created: inserted={len(inserted)}, "
            f"conflicts={conflicts}, failed={failed}"
        )
    return inserted, conflicts, failed


def create_assignments_for_learners(
    session: Session,
    drill: Drill,
    learners: List[User],
    assigned_by_id: int,
    due_date: datetime,
) -> AssignResult:
    """
    Create pending assignments for the learners that don't have one yet.

    Does not commit; the caller owns the transaction.
    """
    learner_ids = [learner.id for learner in learners]
    existing = find_existing_learner_ids(session, drill.id, learner_ids)

    now = datetime.utcnow()
    new_assignments = [
        DrillAssignment(
            drill_id=drill.id,
            learner_id=learner.id,
            assigned_by_id=assigned_by_id,
            assigned_at=now,
            due_date=due_date,
            status=AssignmentStatus.PENDING.value,
        )
        for learner in learners
        if learner.id not in existing
    ]

    inserted, conflicts, failed = insert_assignments(session, new_assignments)
    if inserted:
        drill.total_assignments = (drill.total_assignments or 0) + len(inserted)
        drill.updated_at = now
        session.add(drill)

    return AssignResult(created=inserted, skipped=len(existing) + conflicts, failed=failed)


def schedule_assignment_notifications(
    assignments: List[DrillAssignment],
    drill: Drill,
    assigner: User,
    learners: List[User],
    schedule: Optional[NotificationScheduler] = None,
) -> None:
    """Notify every newly assigned learner. Never raises."""
    try:
        learners_by_id = {learner.id: learner for learner in learners}
        notifications = [
            build_assigned_notification(learners_by_id[a.learner_id], drill, assigner, a.due_date)
            for a in assignments
            if a.learner_id in learners_by_id
        ]
        dispatch_notifications(notifications, schedule)
    except Exception as e:
        logger.error(f"Error preparing assignment notifications for drill {drill.id}: {str(e)}")


def assign_drill(
    session: Session,
    drill_id: int,
    learner_ids: List[int],
    assigned_by: int,
    due_date: Optional[datetime] = None,
    schedule: Optional[NotificationScheduler] = None,
) -> AssignResult:
    """
    Assign a drill to several learners, creating at most one assignment per learner.

    Validation (drill, assigner, learner roles) happens before anything is written;
    a validation failure creates no assignments. Learners already assigned are
    skipped and counted.

    Args:
        session: Database session
        drill_id: Drill to assign
        learner_ids: Learners to assign it to (all must hold the learner role)
        assigned_by: User making the assignment
        due_date: Optional explicit due date
        schedule: Scheduler for notifications (BackgroundTasks.add_task in the API)

    Returns:
        AssignResult with created assignments, skipped and failed counts

    Raises:
        NotFoundError: If the drill, the assigner or any learner is missing
        ValidationError: If no learners are given or a given user is not a learner
    """
    ids = unique_ids(learner_ids)
    if not ids:
        raise ValidationError("At least one learner is required")

    drill = session.get(Drill, drill_id)
    if not drill:
        raise NotFoundError("Drill")
    assigner = find_user_by_id(session, assigned_by, resource="Assigner")
    learners = find_users_with_role(session, ids, UserRole.LEARNER.value)

    resolved_due_date = derive_due_date(drill, due_date)
    result = create_assignments_for_learners(session, drill, learners, assigner.id, resolved_due_date)

    session.commit()
    for assignment in result.created:
        session.refresh(assignment)

    logger.info(
        f"Drill {drill.id} assigned by {assigner.email}: created={result.total}, "
        f"skipped={result.skipped}, failed={result.failed}"
    )

    if result.created:
        schedule_assignment_notifications(result.created, drill, assigner, learners, schedule)

    return result


def get_assignment(session: Session, assignment_id: int) -> DrillAssignment:
    """Get an assignment by id or raise NotFoundError."""
    assignment = session.get(DrillAssignment, assignment_id)
    if not assignment:
        raise NotFoundError("Drill assignment")
    return assignment


def update_assignment_status(
    session: Session,
    assignment_id: int,
    status: AssignmentStatus,
    completed_at: Optional[datetime] = None,
) -> DrillAssignment:
    """
    Move an assignment to another status.

    Any status may follow any other, except that 'completed' can only be reached by
    completing the drill (see attempt_service.complete_drill).

    Raises:
        NotFoundError: If the assignment does not exist
        ValidationError: If status is 'completed'
    """
    status = AssignmentStatus(status)
    if status == AssignmentStatus.COMPLETED:
        raise ValidationError("Assignments can only be completed by submitting the drill")

    assignment = get_assignment(session, assignment_id)
    assignment.status = status.value
    if completed_at is not None:
        assignment.completed_at = completed_at
    assignment.updated_at = datetime.utcnow()
    session.add(assignment)
    session.commit()
    session.refresh(assignment)

    logger.info(f"Assignment {assignment_id} status set to {status.value}")
    return assignment


def mark_assignment_completed(session: Session, assignment: DrillAssignment, completed_at: datetime) -> DrillAssignment:
    """Set an assignment to completed. Does not commit."""
    assignment.status = AssignmentStatus.COMPLETED.value
    assignment.completed_at = completed_at
    assignment.updated_at = completed_at
    session.add(assignment)
    return assignment


def list_assignments_for_learner(
    session: Session,
    learner_id: int,
    status: Optional[AssignmentStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[DrillAssignment], int]:
    """Assignments of a learner, newest first, with the total count."""
    query = select(DrillAssignment).where(DrillAssignment.learner_id == learner_id)
    count_query = select(func.count(DrillAssignment.id)).where(DrillAssignment.learner_id == learner_id)
    if status is not None:
        status_value = AssignmentStatus(status).value
        query = query.where(DrillAssignment.status == status_value)
        count_query = count_query.where(DrillAssignment.status == status_value)

    total = session.exec(count_query).one()
    assignments = session.exec(
        query.order_by(DrillAssignment.assigned_at.desc(), DrillAssignment.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(assignments), total


def list_assignments_for_drill(
    session: Session,
    drill_id: int,
    page: int = 1,
    page_size: int = 100,
) -> Tuple[List[DrillAssignment], int]:
    """Assignments of a drill, newest first, with the total count."""
    if not session.get(Drill, drill_id):
        raise NotFoundError("Drill")

    total = session.exec(
        select(func.count(DrillAssignment.id)).where(DrillAssignment.drill_id == drill_id)
    ).one()
    assignments = session.exec(
        select(DrillAssignment)
        .where(DrillAssignment.drill_id == drill_id)
        .order_by(DrillAssignment.assigned_at.desc(), DrillAssignment.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(assignments), total
