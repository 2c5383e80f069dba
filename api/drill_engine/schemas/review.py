"""
Review pipeline schemas.
"""
from pydantic import BaseModel, Field
from typing import List, Literal, Optional

from drill_engine.schemas.attempt import AttemptResponse


class SentenceJudgment(BaseModel):
    """Reviewer verdict on one written sentence."""
    sentence_index: int = Field(..., ge=0)
    is_correct: bool
    corrected_text: Optional[str] = None


class GrammarJudgment(BaseModel):
    """Reviewer verdict on one sentence written for a grammar pattern."""
    pattern_index: int = Field(..., ge=0)
    sentence_index: int = Field(..., ge=0)
    is_correct: bool
    corrected_text: Optional[str] = None


class SummaryJudgment(BaseModel):
    """Holistic reviewer verdict on a summary."""
    feedback: Optional[str] = None
    is_acceptable: bool
    corrected_version: Optional[str] = None


class ReviewSentenceRequest(BaseModel):
    reviewer_id: int
    reviews: List[SentenceJudgment] = Field(..., min_length=1)


class ReviewGrammarRequest(BaseModel):
    reviewer_id: int
    reviews: List[GrammarJudgment] = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "reviewer_id": 1,
                "reviews": [
                    {"pattern_index": 0, "sentence_index": 0, "is_correct": True},
                    {"pattern_index": 0, "sentence_index": 1, "is_correct": False,
                     "corrected_text": "If I had known, I would have come."}
                ]
            }
        }


class ReviewSummaryRequest(BaseModel):
    reviewer_id: int
    review: SummaryJudgment


ReviewQueueStatus = Literal["pending", "reviewed", "all"]


class SubmissionListResponse(BaseModel):
    attempts: List[AttemptResponse]
    total: int
    page: int
    page_size: int
