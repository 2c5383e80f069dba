"""
Attempt schemas.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from drill_engine.models.enums import Platform
from drill_engine.schemas.results import DrillResults


class CompleteDrillRequest(BaseModel):
    """Request to record a finished drill against its assignment."""
    assignment_id: int = Field(..., description="Assignment being completed")
    learner_id: int = Field(..., description="Learner submitting the attempt")
    score: int = Field(..., ge=0, le=100)
    time_spent: int = Field(..., ge=0, description="Seconds spent on the drill")
    results: DrillResults
    platform: Platform = Platform.WEB
    device_info: Optional[str] = Field(None, max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "assignment_id": 10,
                "learner_id": 2,
                "score": 100,
                "time_spent": 120,
                "results": {
                    "kind": "vocabulary",
                    "word_scores": [
                        {"word": "boarding pass", "score": 80, "attempts": 1, "passed": True}
                    ]
                },
                "platform": "web"
            }
        }


class AttemptResponse(BaseModel):
    id: int
    assignment_id: int
    learner_id: int
    drill_id: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    time_spent: int
    score: Optional[int] = None
    max_score: int
    results_kind: Optional[str] = None
    results: Optional[dict] = None
    review_status: Optional[str] = None
    platform: str
    created_at: datetime

    class Config:
        from_attributes = True


class LatestAttemptInfo(BaseModel):
    """Summary of the latest attempt of one assignment."""
    attempt_id: int
    score: Optional[int] = None
    time_spent: int
    completed_at: Optional[datetime] = None
    review_status: Optional[str] = None
    correct_count: Optional[int] = None
    total_count: Optional[int] = None


class AttemptListResponse(BaseModel):
    attempts: List[AttemptResponse]
    total: int
