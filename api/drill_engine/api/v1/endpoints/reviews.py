"""
Drill attempt and review endpoints.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlmodel import Session
from typing import Literal
import logging

from drill_engine.core.database import get_session
from drill_engine.models.enums import DrillType
from drill_engine.schemas.attempt import AttemptListResponse, AttemptResponse
from drill_engine.schemas.review import (
    ReviewGrammarRequest,
    ReviewSentenceRequest,
    ReviewSummaryRequest,
    SubmissionListResponse,
)
from drill_engine.services import attempt_service, review_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drill-attempts", tags=["drill-attempts"])


@router.get("", response_model=AttemptListResponse)
async def list_learner_attempts(
    learner_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session)
):
    """Attempt history of a learner, latest first."""
    attempts, total = attempt_service.list_attempts_for_learner(session, learner_id, page, page_size)
    return AttemptListResponse(
        attempts=[AttemptResponse.model_validate(a) for a in attempts],
        total=total,
    )


@router.get("/submissions", response_model=SubmissionListResponse)
async def list_submissions(
    drill_type: DrillType,
    status: Literal["pending", "reviewed", "all"] = "pending",
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session)
):
    """
    Review queue for a subjective drill type.

    Args:
        drill_type: sentence_writing, grammar or summary
        status: pending (default), reviewed or all
    """
    attempts, total = review_service.list_submissions_for_review(session, drill_type, status, page, page_size)
    return SubmissionListResponse(
        attempts=[AttemptResponse.model_validate(a) for a in attempts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{attempt_id}", response_model=AttemptResponse)
async def get_attempt(
    attempt_id: int,
    session: Session = Depends(get_session)
):
    attempt = attempt_service.get_attempt(session, attempt_id)
    return AttemptResponse.model_validate(attempt)


@router.post("/{attempt_id}/sentence-review", response_model=AttemptResponse)
async def review_sentence_attempt(
    attempt_id: int,
    request: ReviewSentenceRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session)
):
    """Review a sentence writing attempt. An attempt can only be reviewed once."""
    attempt = review_service.review_sentence(
        session, attempt_id, request.reviewer_id, request.reviews, schedule=background_tasks.add_task
    )
    return AttemptResponse.model_validate(attempt)


@router.post("/{attempt_id}/grammar-review", response_model=AttemptResponse)
async def review_grammar_attempt(
    attempt_id: int,
    request: ReviewGrammarRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session)
):
    """Review a grammar attempt. An attempt can only be reviewed once."""
    attempt = review_service.review_grammar(
        session, attempt_id, request.reviewer_id, request.reviews, schedule=background_tasks.add_task
    )
    return AttemptResponse.model_validate(attempt)


@router.post("/{attempt_id}/summary-review", response_model=AttemptResponse)
async def review_summary_attempt(
    attempt_id: int,
    request: ReviewSummaryRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session)
):
    """Review a summary attempt. An attempt can only be reviewed once."""
    attempt = review_service.review_summary(
        session, attempt_id, request.reviewer_id, request.review, schedule=background_tasks.add_task
    )
    return AttemptResponse.model_validate(attempt)
