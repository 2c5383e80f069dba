"""
DrillAttempt model.
"""
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON
from typing import Optional, Dict, Any, TYPE_CHECKING
from datetime import datetime

from drill_engine.models.enums import Platform
from drill_engine.schemas.results import DrillResults, parse_results

if TYPE_CHECKING:
    from drill_engine.models.assignment import DrillAssignment


class DrillAttempt(SQLModel, table=True):
    """DrillAttempt table - one learner submission against one assignment."""
    __tablename__ = "drill_attempt"

    id: Optional[int] = Field(default=None, primary_key=True)
    assignment_id: int = Field(foreign_key="drill_assignment.id", index=True)
    learner_id: int = Field(foreign_key="user.id", index=True)
    drill_id: int = Field(foreign_key="drill.id", index=True)
    started_at: datetime
    completed_at: Optional[datetime] = Field(default=None, index=True)
    time_spent: int = Field(default=0)  # Seconds
    score: Optional[int] = Field(default=None)  # 0-100
    max_score: int = Field(default=100)
    results_kind: Optional[str] = Field(default=None, index=True)  # Tag of the results union
    results: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    review_status: Optional[str] = Field(default=None, index=True)  # Only set for subjective results
    platform: str = Field(default=Platform.WEB.value)
    device_info: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    assignment: "DrillAssignment" = Relationship(back_populates="attempts")

    @property
    def results_payload(self) -> Optional[DrillResults]:
        """Typed view of the stored results, or None when nothing was stored."""
        if not self.results:
            return None
        return parse_results(self.results)
