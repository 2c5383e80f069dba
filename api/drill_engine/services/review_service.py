"""
Review pipeline service.

Subjective attempts (sentence writing, grammar, summary) are stored with a pending
review and a placeholder score. A tutor or admin reviews them once; the review sets
the final score and notifies the learner. A reviewed attempt cannot be reviewed again.
"""
# pyright: reportAttributeAccessIssue=false
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple, Type

from sqlalchemy import func, update
from sqlmodel import Session, select

from drill_engine.core.exceptions import ForbiddenError, ValidationError
from drill_engine.models.attempt import DrillAttempt
from drill_engine.models.drill import Drill
from drill_engine.models.enums import DrillType, ReviewStatus, UserRole
from drill_engine.models.user import User
from drill_engine.schemas.results import (
    GrammarResults,
    GrammarReviewEntry,
    SentenceResults,
    SentenceReviewEntry,
    SummaryResults,
    SummaryReviewEntry,
    dump_results,
)
from drill_engine.schemas.review import GrammarJudgment, SentenceJudgment, SummaryJudgment
from drill_engine.services.attempt_service import get_attempt
from drill_engine.services.notification_service import (
    NotificationScheduler,
    build_reviewed_notification,
    dispatch_notifications,
)
from drill_engine.services.user_service import find_user_by_id
from drill_engine.utils.score_utils import percentage

logger = logging.getLogger(__name__)

REVIEWER_ROLES = {UserRole.TUTOR.value, UserRole.ADMIN.value}

# Drill type each review flow accepts, and the review queue's drill types
REVIEWABLE_DRILL_TYPES = {
    DrillType.SENTENCE_WRITING.value: SentenceResults,
    DrillType.GRAMMAR.value: GrammarResults,
    DrillType.SUMMARY.value: SummaryResults,
}


def _load_for_review(
    session: Session,
    attempt_id: int,
    reviewer_id: int,
    drill_type: DrillType,
    results_type: Type,
    label: str,
) -> Tuple[DrillAttempt, Drill, User, object]:
    """
    Load an attempt and check it can receive a review of the given type.

    Every check runs before anything is modified.

    Raises:
        NotFoundError: If the attempt or the reviewer does not exist
        ForbiddenError: If the reviewer is not a tutor or admin
        ValidationError: If the attempt is for another drill type, has no results of
            the expected kind, or was already reviewed
    """
    attempt = get_attempt(session, attempt_id)

    reviewer = find_user_by_id(session, reviewer_id, resource="Reviewer")
    if reviewer.role not in REVIEWER_ROLES:
        raise ForbiddenError("Only tutors and admins can review drill attempts")

    drill = session.get(Drill, attempt.drill_id)
    if drill and drill.type != drill_type.value:
        raise ValidationError(f"This endpoint is only for {label} drills")

    results = attempt.results_payload
    if not isinstance(results, results_type):
        raise ValidationError(f"This attempt does not have {label} results")

    if results.review_status == ReviewStatus.REVIEWED.value or attempt.review_status == ReviewStatus.REVIEWED.value:
        logger.warning(f"Attempt {attempt.id} was already reviewed; rejecting review by user {reviewer.id}")
        raise ValidationError("This attempt has already been reviewed")

    return attempt, drill, reviewer, results


def _check_unique(keys: Iterable, label: str) -> None:
    seen = set()
    for key in keys:
        if key in seen:
            raise ValidationError(f"Duplicate review for {label} {key}")
        seen.add(key)


def _save_review(
    session: Session,
    attempt: DrillAttempt,
    drill: Optional[Drill],
    reviewer: User,
    results,
    score: int,
    all_correct: bool,
    schedule: Optional[NotificationScheduler],
) -> DrillAttempt:
    """
    Persist the reviewed payload and final score, then notify the learner.

    The write only applies while the row is still pending, so of two reviewers who
    loaded the same attempt only the first to commit wins.

    Raises:
        ValidationError: If another review was committed since the attempt was loaded
    """
    results.review_status = ReviewStatus.REVIEWED.value
    result = session.exec(
        update(DrillAttempt)
        .where(
            DrillAttempt.id == attempt.id,
            DrillAttempt.review_status == ReviewStatus.PENDING.value,
        )
        .values(
            results=dump_results(results),
            review_status=ReviewStatus.REVIEWED.value,
            score=score,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        attempt_id, reviewer_id = attempt.id, reviewer.id
        session.rollback()
        logger.warning(f"Attempt {attempt_id} was reviewed concurrently; rejecting review by user {reviewer_id}")
        raise ValidationError("This attempt has already been reviewed")
    session.commit()
    session.refresh(attempt)

    logger.info(
        f"Attempt {attempt.id} reviewed by {reviewer.email}: kind={results.kind}, "
        f"score={score}, all_correct={all_correct}"
    )

    schedule_review_notification(session, attempt, drill, reviewer, score, all_correct, schedule)
    return attempt


def review_sentence(
    session: Session,
    attempt_id: int,
    reviewer_id: int,
    judgments: List[SentenceJudgment],
    schedule: Optional[NotificationScheduler] = None,
) -> DrillAttempt:
    """
    Review a sentence writing attempt.

    Each judgment targets one written sentence by its position across all words
    (0-based). The score is the share of correct judgments, rounded half up.
    Corrections are only kept for incorrect sentences.

    Args:
        session: Database session
        attempt_id: Attempt to review
        reviewer_id: Tutor or admin reviewing
        judgments: One verdict per reviewed sentence
        schedule: Scheduler for the learner notification

    Returns:
        The reviewed attempt

    Raises:
        NotFoundError: If the attempt or reviewer does not exist
        ForbiddenError: If the reviewer is not a tutor or admin
        ValidationError: On a wrong drill type, missing results, a repeated review or
            judgments that don't match the written sentences
    """
    attempt, drill, reviewer, results = _load_for_review(
        session, attempt_id, reviewer_id, DrillType.SENTENCE_WRITING, SentenceResults, "sentence"
    )
    if not judgments:
        raise ValidationError("At least one sentence review is required")

    total_sentences = results.total_sentences()
    for judgment in judgments:
        if judgment.sentence_index >= total_sentences:
            raise ValidationError(
                f"Sentence index {judgment.sentence_index} is out of range ({total_sentences} sentences)"
            )
    _check_unique((j.sentence_index for j in judgments), "sentence")

    reviewed_at = datetime.utcnow()
    results.sentence_reviews = [
        SentenceReviewEntry(
            sentence_index=j.sentence_index,
            is_correct=j.is_correct,
            corrected_text=None if j.is_correct else j.corrected_text,
            reviewed_at=reviewed_at,
            reviewed_by=reviewer.id,
        )
        for j in judgments
    ]

    correct_count = sum(1 for j in judgments if j.is_correct)
    score = percentage(correct_count, len(judgments))
    return _save_review(
        session, attempt, drill, reviewer, results, score, correct_count == len(judgments), schedule
    )


def review_grammar(
    session: Session,
    attempt_id: int,
    reviewer_id: int,
    judgments: List[GrammarJudgment],
    schedule: Optional[NotificationScheduler] = None,
) -> DrillAttempt:
    """
    Review a grammar attempt.

    Each judgment targets one sentence by (pattern_index, sentence_index), both
    0-based positions in the submitted results. Scoring and corrections follow
    review_sentence.

    Raises:
        NotFoundError: If the attempt or reviewer does not exist
        ForbiddenError: If the reviewer is not a tutor or admin
        ValidationError: On a wrong drill type, missing results, a repeated review or
            judgments that don't match the written sentences
    """
    attempt, drill, reviewer, results = _load_for_review(
        session, attempt_id, reviewer_id, DrillType.GRAMMAR, GrammarResults, "grammar"
    )
    if not results.patterns:
        raise ValidationError("This attempt does not have grammar pattern results")
    if not judgments:
        raise ValidationError("At least one grammar review is required")

    for judgment in judgments:
        if judgment.pattern_index >= len(results.patterns):
            raise ValidationError(f"Pattern index {judgment.pattern_index} is out of range")
        pattern = results.patterns[judgment.pattern_index]
        if judgment.sentence_index >= len(pattern.sentences):
            raise ValidationError(
                f"Sentence index {judgment.sentence_index} is out of range for pattern {judgment.pattern_index}"
            )
    _check_unique(((j.pattern_index, j.sentence_index) for j in judgments), "pattern/sentence")

    reviewed_at = datetime.utcnow()
    results.pattern_reviews = [
        GrammarReviewEntry(
            pattern_index=j.pattern_index,
            sentence_index=j.sentence_index,
            is_correct=j.is_correct,
            corrected_text=None if j.is_correct else j.corrected_text,
            reviewed_at=reviewed_at,
            reviewed_by=reviewer.id,
        )
        for j in judgments
    ]

    correct_count = sum(1 for j in judgments if j.is_correct)
    score = percentage(correct_count, len(judgments))
    return _save_review(
        session, attempt, drill, reviewer, results, score, correct_count == len(judgments), schedule
    )


def review_summary(
    session: Session,
    attempt_id: int,
    reviewer_id: int,
    judgment: SummaryJudgment,
    schedule: Optional[NotificationScheduler] = None,
) -> DrillAttempt:
    """
    Review a summary attempt with one holistic verdict.

    An acceptable summary scores 100, anything else 0. The corrected version is only
    kept when the summary is not acceptable.
    """
    attempt, drill, reviewer, results = _load_for_review(
        session, attempt_id, reviewer_id, DrillType.SUMMARY, SummaryResults, "summary"
    )
    if judgment is None:
        raise ValidationError("A summary review is required")

    results.review = SummaryReviewEntry(
        feedback=judgment.feedback,
        is_acceptable=judgment.is_acceptable,
        corrected_version=None if judgment.is_acceptable else judgment.corrected_version,
        reviewed_at=datetime.utcnow(),
        reviewed_by=reviewer.id,
    )

    score = 100 if judgment.is_acceptable else 0
    return _save_review(session, attempt, drill, reviewer, results, score, judgment.is_acceptable, schedule)


def schedule_review_notification(
    session: Session,
    attempt: DrillAttempt,
    drill: Optional[Drill],
    reviewer: User,
    score: int,
    all_correct: bool,
    schedule: Optional[NotificationScheduler] = None,
) -> None:
    """Tell the learner their attempt was reviewed. Never raises."""
    try:
        learner = session.get(User, attempt.learner_id)
        if not drill or not learner:
            logger.warning(f"Skipping review notification for attempt {attempt.id}: drill or learner missing")
            return
        notification = build_reviewed_notification(learner, reviewer, drill, attempt.id, score, all_correct)
        dispatch_notifications([notification], schedule)
    except Exception as e:
        logger.error(f"Failed to send review notification for attempt {attempt.id}: {str(e)}")


def list_submissions_for_review(
    session: Session,
    drill_type: DrillType,
    status: str = "pending",
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[DrillAttempt], int]:
    """
    Attempts of a subjective drill type waiting for (or past) review.

    Args:
        session: Database session
        drill_type: sentence_writing, grammar or summary
        status: 'pending', 'reviewed' or 'all'
        page: 1-based page number
        page_size: Attempts per page

    Returns:
        Tuple of (attempts newest first, total matching)

    Raises:
        ValidationError: If the drill type has no review flow or the status is unknown
    """
    drill_type = DrillType(drill_type)
    if drill_type.value not in REVIEWABLE_DRILL_TYPES:
        raise ValidationError(f"Drills of type '{drill_type.value}' are not reviewed")
    if status not in ("pending", "reviewed", "all"):
        raise ValidationError(f"Unknown review status: {status}")
    if page < 1 or page_size < 1:
        raise ValidationError("Page and page size must be positive")

    filters = [Drill.type == drill_type.value]
    if status != "all":
        filters.append(DrillAttempt.review_status == status)

    total = session.exec(
        select(func.count(DrillAttempt.id)).join(Drill, Drill.id == DrillAttempt.drill_id).where(*filters)
    ).one()
    attempts = session.exec(
        select(DrillAttempt)
        .join(Drill, Drill.id == DrillAttempt.drill_id)
        .where(*filters)
        .order_by(DrillAttempt.completed_at.desc(), DrillAttempt.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(attempts), total
