"""
Attempt store service: drill completion and attempt history.
"""
# pyright: reportAttributeAccessIssue=false
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from drill_engine.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from drill_engine.models.assignment import DrillAssignment
from drill_engine.models.attempt import DrillAttempt
from drill_engine.models.drill import Drill
from drill_engine.models.enums import Platform, ReviewStatus
from drill_engine.models.user import User
from drill_engine.schemas.results import (
    RESULTS_KIND_BY_DRILL_TYPE,
    SUBJECTIVE_KINDS,
    DrillResults,
    GrammarResults,
    SentenceResults,
    SummaryResults,
    dump_results,
)
from drill_engine.services.assignment_service import get_assignment, mark_assignment_completed
from drill_engine.services.notification_service import (
    NotificationScheduler,
    build_completed_notification,
    dispatch_notifications,
)
from drill_engine.utils.ref_utils import resolve_id

logger = logging.getLogger(__name__)


def check_results_match_drill(drill: Drill, results: DrillResults) -> None:
    """
    Ensure the results payload is the variant expected for the drill's type.

    Raises:
        ValidationError: If the payload kind does not belong to the drill type
    """
    expected_kind = RESULTS_KIND_BY_DRILL_TYPE.get(drill.type)
    if expected_kind is None:
        raise ValidationError(f"Unknown drill type: {drill.type}")
    if results.kind != expected_kind:
        raise ValidationError(
            f"Results of kind '{results.kind}' do not match drill type '{drill.type}' "
            f"(expected '{expected_kind}')"
        )


def complete_drill(
    session: Session,
    drill_id: Any,
    assignment_id: Any,
    learner_id: Any,
    score: int,
    time_spent: int,
    results: DrillResults,
    platform: Platform = Platform.WEB,
    device_info: Optional[str] = None,
    schedule: Optional[NotificationScheduler] = None,
) -> DrillAttempt:
    """
    Record a completed drill and mark its assignment completed.

    Steps:
    1. Validate the drill exists
    2. Validate the assignment exists
    3. Verify the assignment belongs to the learner
    4. Verify the assignment is for this drill (ids are resolved first, so a loaded
       object and a raw id compare equal)
    5. Create the attempt with the results payload of the drill's type
    6. Set the assignment to completed
    7. Notify the assigner (best effort, after commit)

    Nothing is written if any of steps 1-4 fails.

    Args:
        session: Database session
        drill_id: Drill being completed (object or id)
        assignment_id: Assignment being completed (object or id)
        learner_id: Learner submitting (object or id)
        score: Score 0-100 (0 for drills waiting on review)
        time_spent: Seconds spent
        results: Results payload
        platform: Client platform
        device_info: Optional device description
        schedule: Scheduler for notifications

    Returns:
        The created attempt

    Raises:
        NotFoundError: If the drill or assignment does not exist
        ForbiddenError: If the assignment belongs to another learner
        ValidationError: If the assignment is for another drill, or the payload does
            not match the drill type
    """
    requested_drill_id = resolve_id(drill_id)
    requested_learner_id = resolve_id(learner_id)

    # 1. Drill
    drill = session.get(Drill, requested_drill_id)
    if not drill:
        raise NotFoundError("Drill")

    # 2. Assignment
    assignment = get_assignment(session, resolve_id(assignment_id))

    # 3. Ownership
    if resolve_id(assignment.learner_id) != requested_learner_id:
        logger.warning(
            f"Learner {requested_learner_id} tried to complete assignment {assignment.id} "
            f"owned by learner {assignment.learner_id}"
        )
        raise ForbiddenError("You do not have permission to complete this drill assignment")

    # 4. Assignment/drill identity
    assignment_drill_id = resolve_id(assignment.drill_id)
    if assignment_drill_id != requested_drill_id:
        logger.error(
            "Drill assignment mismatch: assignment_id=%s, assignment_drill_id=%s, "
            "requested_drill_id=%s, learner_id=%s",
            assignment.id, assignment_drill_id, requested_drill_id, requested_learner_id,
        )
        raise ValidationError(
            f"Drill assignment does not match drill ID. Assignment is for drill {assignment_drill_id}, "
            f"but you're trying to complete drill {requested_drill_id}"
        )

    if not 0 <= score <= 100:
        raise ValidationError("Score must be between 0 and 100")
    if time_spent < 0:
        raise ValidationError("Time spent cannot be negative")
    check_results_match_drill(drill, results)

    # 5. Attempt
    completed_at = datetime.utcnow()
    review_status = ReviewStatus.PENDING.value if results.kind in SUBJECTIVE_KINDS else None
    if review_status is not None and getattr(results, "review_status", None) != ReviewStatus.PENDING.value:
        raise ValidationError("New submissions must be pending review")

    attempt = DrillAttempt(
        assignment_id=assignment.id,
        learner_id=requested_learner_id,
        drill_id=drill.id,
        started_at=completed_at - timedelta(seconds=time_spent),
        completed_at=completed_at,
        time_spent=time_spent,
        score=score,
        max_score=100,
        results_kind=results.kind,
        results=dump_results(results),
        review_status=review_status,
        platform=Platform(platform).value,
        device_info=device_info,
    )
    session.add(attempt)

    # 6. Assignment status
    mark_assignment_completed(session, assignment, completed_at)

    session.commit()
    session.refresh(attempt)

    logger.info(
        f"Drill completed: drill_id={drill.id}, assignment_id={assignment.id}, "
        f"learner_id={requested_learner_id}, score={score}, attempt_id={attempt.id}"
    )

    # 7. Notify the assigner
    schedule_completion_notification(session, drill, assignment, requested_learner_id, score, schedule)

    return attempt


def schedule_completion_notification(
    session: Session,
    drill: Drill,
    assignment: DrillAssignment,
    learner_id: int,
    score: int,
    schedule: Optional[NotificationScheduler] = None,
) -> None:
    """Tell the assigner that the learner completed the drill. Never raises."""
    try:
        tutor = session.get(User, assignment.assigned_by_id)
        learner = session.get(User, learner_id)
        if not tutor or not learner:
            logger.warning(f"Skipping completion notification for assignment {assignment.id}: user missing")
            return
        notification = build_completed_notification(tutor, learner, drill, assignment.id, score)
        dispatch_notifications([notification], schedule)
    except Exception as e:
        logger.error(f"Failed to send drill completion notification for assignment {assignment.id}: {str(e)}")


def get_attempt(session: Session, attempt_id: int) -> DrillAttempt:
    """Get an attempt by id or raise NotFoundError."""
    attempt = session.get(DrillAttempt, attempt_id)
    if not attempt:
        raise NotFoundError("Attempt")
    return attempt


def list_attempts_for_assignment(session: Session, assignment_id: int) -> List[DrillAttempt]:
    """All attempts of an assignment, latest first."""
    return list(session.exec(
        select(DrillAttempt)
        .where(DrillAttempt.assignment_id == assignment_id)
        .order_by(DrillAttempt.completed_at.desc(), DrillAttempt.created_at.desc(), DrillAttempt.id.desc())
    ).all())


def list_attempts_for_learner(
    session: Session,
    learner_id: int,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[DrillAttempt], int]:
    """Attempts of a learner, latest first, with the total count."""
    total = session.exec(
        select(func.count(DrillAttempt.id)).where(DrillAttempt.learner_id == learner_id)
    ).one()
    attempts = session.exec(
        select(DrillAttempt)
        .where(DrillAttempt.learner_id == learner_id)
        .order_by(DrillAttempt.completed_at.desc(), DrillAttempt.created_at.desc(), DrillAttempt.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(attempts), total


def _latest_key(attempt: DrillAttempt):
    return (attempt.completed_at or datetime.min, attempt.created_at or datetime.min, attempt.id or 0)


def review_info(attempt: DrillAttempt) -> Dict[str, Any]:
    """Review status and correct/total counts of a subjective attempt; empty otherwise."""
    results = attempt.results_payload
    if isinstance(results, SentenceResults):
        return {
            "review_status": results.review_status,
            "correct_count": sum(1 for r in results.sentence_reviews if r.is_correct),
            "total_count": results.total_sentences(),
        }
    if isinstance(results, GrammarResults):
        return {
            "review_status": results.review_status,
            "correct_count": sum(1 for r in results.pattern_reviews if r.is_correct),
            "total_count": results.total_sentences(),
        }
    if isinstance(results, SummaryResults):
        return {
            "review_status": results.review_status,
            "correct_count": 1 if results.review and results.review.is_acceptable else 0,
            "total_count": 1,
        }
    return {}


def get_latest_attempts(session: Session, assignment_ids: List[int]) -> Dict[int, DrillAttempt]:
    """
    Latest attempt of each assignment.

    "Latest" is the attempt with the greatest (completed_at, created_at). Assignments
    without attempts are absent from the result.
    """
    if not assignment_ids:
        return {}
    attempts = session.exec(
        select(DrillAttempt).where(DrillAttempt.assignment_id.in_(assignment_ids))
    ).all()

    latest: Dict[int, DrillAttempt] = {}
    for attempt in attempts:
        current = latest.get(attempt.assignment_id)
        if current is None or _latest_key(attempt) > _latest_key(current):
            latest[attempt.assignment_id] = attempt
    return latest
