"""
Models package - imports all models so SQLModel registers every table.
"""
from drill_engine.models.enums import (
    UserRole,
    DrillType,
    Difficulty,
    AssignmentStatus,
    ReviewStatus,
    Platform,
)
from drill_engine.models.user import User
from drill_engine.models.drill import Drill
from drill_engine.models.assignment import DrillAssignment
from drill_engine.models.attempt import DrillAttempt

__all__ = [
    'UserRole',
    'DrillType',
    'Difficulty',
    'AssignmentStatus',
    'ReviewStatus',
    'Platform',
    'User',
    'Drill',
    'DrillAssignment',
    'DrillAttempt',
]
