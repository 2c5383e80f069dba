"""
DrillAssignment model.
"""
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime

from drill_engine.models.enums import AssignmentStatus

if TYPE_CHECKING:
    from drill_engine.models.drill import Drill
    from drill_engine.models.attempt import DrillAttempt


class DrillAssignment(SQLModel, table=True):
    """DrillAssignment table - binds one drill to one learner."""
    __tablename__ = "drill_assignment"
    __table_args__ = (
        # At most one assignment per (drill, learner), enforced by the database
        UniqueConstraint("drill_id", "learner_id", name="uq_drill_assignment_drill_learner"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    drill_id: int = Field(foreign_key="drill.id", index=True)
    learner_id: int = Field(foreign_key="user.id", index=True)
    assigned_by_id: int = Field(foreign_key="user.id", index=True)
    assigned_at: datetime = Field(default_factory=datetime.utcnow)
    due_date: Optional[datetime] = Field(default=None)
    status: str = Field(default=AssignmentStatus.PENDING.value, index=True)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    drill: "Drill" = Relationship(back_populates="assignments")
    attempts: List["DrillAttempt"] = Relationship(back_populates="assignment")
