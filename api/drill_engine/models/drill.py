"""
Drill model.
"""
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON
from typing import Optional, List, Dict, Any, TYPE_CHECKING
from datetime import datetime

from drill_engine.models.enums import Difficulty

if TYPE_CHECKING:
    from drill_engine.models.assignment import DrillAssignment


class Drill(SQLModel, table=True):
    """Drill table - exercise content and schedule."""
    __tablename__ = "drill"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    type: str = Field(index=True)  # One of DrillType
    difficulty: str = Field(default=Difficulty.BEGINNER.value)
    due_date: Optional[datetime] = Field(default=None)
    duration_days: int = Field(default=1)
    context: Optional[str] = Field(default=None)
    # Type-specific content: target_sentences, roleplay_scenes, matching_pairs, ...
    content: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_by_id: int = Field(foreign_key="user.id", index=True)
    is_active: bool = Field(default=True)
    total_assignments: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    assignments: List["DrillAssignment"] = Relationship(back_populates="drill")
