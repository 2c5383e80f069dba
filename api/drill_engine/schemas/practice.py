"""
Practice session schemas.
"""
from pydantic import BaseModel, Field
from typing import Optional

from drill_engine.models.enums import Platform


class StartPracticeRequest(BaseModel):
    """Start practicing an assigned drill."""
    drill_id: int
    assignment_id: int
    learner_id: int


class RecordingRequest(BaseModel):
    """A finished recording of the current spoken step."""
    audio_base64: str = Field(..., min_length=1, description="Base64 encoded audio (wav or webm)")


class TextAnswerRequest(BaseModel):
    text: str


class ChoiceAnswerRequest(BaseModel):
    answer: str


class SubmitPracticeRequest(BaseModel):
    time_spent: Optional[int] = Field(None, ge=0, description="Seconds spent; measured by the server when omitted")
    platform: Platform = Platform.WEB
    device_info: Optional[str] = Field(None, max_length=500)


class GateView(BaseModel):
    kind: str
    label: str
    reference_text: str
    state: str
    attempts: int
    best_score: float
    last_score: Optional[float] = None


class PracticeSessionResponse(BaseModel):
    session_id: str
    drill_id: int
    drill_type: str
    assignment_id: Optional[int] = None
    state: str
    oracle_state: str
    audio_mode: str
    current_index: int
    total_items: int
    passed_items: int
    current_item: Optional[str] = None
    current_phase: Optional[int] = None
    current_gate: Optional[GateView] = None
    last_error: Optional[str] = None


class GateOutcomeResponse(BaseModel):
    """Verdict on an answer, with the session after applying it."""
    discarded: bool = Field(False, description="True when the result arrived after the learner moved on")
    passed: bool = False
    attempts: int = 0
    score: Optional[float] = None
    item_passed: bool = False
    session: PracticeSessionResponse
