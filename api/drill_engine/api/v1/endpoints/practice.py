"""
Practice session endpoints.

Sessions live in process memory only. Submitting a session creates the attempt;
abandoning it leaves nothing behind.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlmodel import Session
from datetime import datetime, timedelta
from typing import Dict, Optional
from threading import Lock
import base64
import binascii
import logging
import uuid

from drill_engine.core.config import settings
from drill_engine.core.database import get_session
from drill_engine.core.exceptions import ValidationError
from drill_engine.schemas.attempt import AttemptResponse
from drill_engine.schemas.practice import (
    ChoiceAnswerRequest,
    GateOutcomeResponse,
    PracticeSessionResponse,
    RecordingRequest,
    StartPracticeRequest,
    SubmitPracticeRequest,
    TextAnswerRequest,
)
from drill_engine.services import attempt_service, drill_service
from drill_engine.services.progression_service import GateOutcome, ProgressionSession, SessionState, start_session
from drill_engine.services.pronunciation_service import PronunciationOracle, SpeechaceOracle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/practice", tags=["practice"])

# Active practice sessions by session id, with the time each was last touched
practice_sessions: Dict[str, ProgressionSession] = {}
last_activity: Dict[str, datetime] = {}
session_lock = Lock()


def get_oracle() -> PronunciationOracle:
    """Dependency providing the pronunciation oracle."""
    return SpeechaceOracle()


def _get_practice_session(session_id: str) -> ProgressionSession:
    with session_lock:
        practice = practice_sessions.get(session_id)
        if practice is not None:
            last_activity[session_id] = datetime.utcnow()
    if practice is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Practice session {session_id} not found"
        )
    return practice


def _drop_practice_session(session_id: str) -> None:
    with session_lock:
        practice_sessions.pop(session_id, None)
        last_activity.pop(session_id, None)


def evict_idle_sessions(now: Optional[datetime] = None) -> int:
    """
    Abandon and forget practice sessions left idle longer than the configured TTL.

    Args:
        now: Reference time, defaults to the current UTC time

    Returns:
        Number of sessions evicted
    """
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=settings.practice_session_ttl_minutes)
    with session_lock:
        expired = [sid for sid, touched in last_activity.items() if touched < cutoff]
        for sid in expired:
            del last_activity[sid]
        evicted = [practice_sessions.pop(sid, None) for sid in expired]

    for practice in evicted:
        if practice is not None and practice.state != SessionState.SUBMITTED:
            practice.abandon()
    if expired:
        logger.info(f"Evicted {len(expired)} idle practice session(s)")
    return len(expired)


def _session_response(session_id: str, practice: ProgressionSession) -> PracticeSessionResponse:
    return PracticeSessionResponse(session_id=session_id, **practice.snapshot())


def _outcome_response(session_id: str, practice: ProgressionSession, outcome: Optional[GateOutcome]) -> GateOutcomeResponse:
    session_view = _session_response(session_id, practice)
    if outcome is None:
        return GateOutcomeResponse(discarded=True, session=session_view)
    return GateOutcomeResponse(
        passed=outcome.passed,
        attempts=outcome.attempts,
        score=outcome.score,
        item_passed=outcome.item_passed,
        session=session_view,
    )


@router.post("/sessions", response_model=PracticeSessionResponse, status_code=status.HTTP_201_CREATED)
async def start_practice(
    request: StartPracticeRequest,
    session: Session = Depends(get_session),
    oracle: PronunciationOracle = Depends(get_oracle)
):
    """
    Start practicing an assigned drill.

    The assignment must belong to the learner and the drill. Listening drills have
    no guided practice and are completed directly.
    """
    evict_idle_sessions()
    drill, assignment = drill_service.get_drill_for_user(
        session, request.drill_id, request.learner_id, request.assignment_id
    )
    practice = start_session(drill, oracle=oracle, assignment_id=assignment.id, learner_id=request.learner_id)

    session_id = str(uuid.uuid4())
    with session_lock:
        practice_sessions[session_id] = practice
        last_activity[session_id] = datetime.utcnow()

    logger.info(f"Practice session {session_id} started for drill {drill.id}, learner {request.learner_id}")
    return _session_response(session_id, practice)


@router.get("/sessions/{session_id}", response_model=PracticeSessionResponse)
async def get_practice(session_id: str):
    return _session_response(session_id, _get_practice_session(session_id))


@router.post("/sessions/{session_id}/recording/start", response_model=PracticeSessionResponse)
async def start_recording(session_id: str):
    """Start recording the current spoken step (stops playback)."""
    practice = _get_practice_session(session_id)
    practice.start_recording()
    return _session_response(session_id, practice)


@router.post("/sessions/{session_id}/recording/stop", response_model=PracticeSessionResponse)
async def stop_recording(session_id: str):
    """Drop the recording in progress without scoring it."""
    practice = _get_practice_session(session_id)
    practice.stop_recording()
    return _session_response(session_id, practice)


@router.post("/sessions/{session_id}/recording", response_model=GateOutcomeResponse)
async def submit_recording(session_id: str, request: RecordingRequest):
    """
    Score a recording of the current spoken step.

    A score at or above the pass threshold passes the step; anything lower can be
    retried. While scoring is pending every other action on the session is refused.
    """
    practice = _get_practice_session(session_id)
    try:
        audio = base64.b64decode(request.audio_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("audio_base64 is not valid base64")

    outcome = await practice.submit_recording(audio)
    return _outcome_response(session_id, practice, outcome)


@router.post("/sessions/{session_id}/playback/start", response_model=PracticeSessionResponse)
async def start_playback(session_id: str):
    """Play the reference audio or the other side's line (stops recording)."""
    practice = _get_practice_session(session_id)
    practice.play_reference()
    return _session_response(session_id, practice)


@router.post("/sessions/{session_id}/playback/finish", response_model=GateOutcomeResponse)
async def finish_playback(session_id: str):
    """Playback ended; a line spoken by the other side passes here."""
    practice = _get_practice_session(session_id)
    outcome = practice.finish_playback()
    if outcome is None:
        return GateOutcomeResponse(session=_session_response(session_id, practice))
    return _outcome_response(session_id, practice, outcome)


@router.post("/sessions/{session_id}/text", response_model=GateOutcomeResponse)
async def submit_text(session_id: str, request: TextAnswerRequest):
    """Save a written answer for the current step."""
    practice = _get_practice_session(session_id)
    outcome = practice.submit_text(request.text)
    return _outcome_response(session_id, practice, outcome)


@router.post("/sessions/{session_id}/choice", response_model=GateOutcomeResponse)
async def submit_choice(session_id: str, request: ChoiceAnswerRequest):
    """Check a matching or fill-in answer for the current step."""
    practice = _get_practice_session(session_id)
    outcome = practice.submit_choice(request.answer)
    return _outcome_response(session_id, practice, outcome)


@router.post("/sessions/{session_id}/advance", response_model=PracticeSessionResponse)
async def advance(session_id: str):
    """Continue to the next item once the current one is passed."""
    practice = _get_practice_session(session_id)
    practice.advance()
    return _session_response(session_id, practice)


@router.post("/sessions/{session_id}/submit", response_model=AttemptResponse, status_code=status.HTTP_201_CREATED)
async def submit_practice(
    session_id: str,
    request: SubmitPracticeRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session)
):
    """
    Submit a finished session as an attempt.

    Only a session with every item passed can be submitted. If recording the attempt
    fails the session is kept and can be submitted again.
    """
    practice = _get_practice_session(session_id)

    def complete(score, time_spent, results):
        return attempt_service.complete_drill(
            session,
            practice.drill_id,
            practice.assignment_id,
            practice.learner_id,
            score,
            time_spent,
            results,
            platform=request.platform,
            device_info=request.device_info,
            schedule=background_tasks.add_task,
        )

    attempt = practice.submit(complete, time_spent=request.time_spent)

    _drop_practice_session(session_id)
    return AttemptResponse.model_validate(attempt)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abandon_practice(session_id: str):
    """Abandon a session; nothing is saved."""
    practice = _get_practice_session(session_id)
    practice.abandon()
    _drop_practice_session(session_id)
    logger.info(f"Practice session {session_id} abandoned")
