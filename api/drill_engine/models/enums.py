"""
Model enums.
"""
from enum import Enum


class UserRole(str, Enum):
    """Roles known to the user directory."""
    LEARNER = "learner"
    TUTOR = "tutor"
    ADMIN = "admin"


class DrillType(str, Enum):
    """Exercise types a drill can have."""
    VOCABULARY = "vocabulary"
    ROLEPLAY = "roleplay"
    MATCHING = "matching"
    DEFINITION = "definition"
    GRAMMAR = "grammar"
    SENTENCE_WRITING = "sentence_writing"
    SUMMARY = "summary"
    LISTENING = "listening"
    FILL_BLANK = "fill_blank"


class Difficulty(str, Enum):
    """Difficulty levels for drills."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class AssignmentStatus(str, Enum):
    """Lifecycle status of a drill assignment."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    SKIPPED = "skipped"


class ReviewStatus(str, Enum):
    """Review state of a subjective attempt."""
    PENDING = "pending"
    REVIEWED = "reviewed"


class Platform(str, Enum):
    """Client platform an attempt was submitted from."""
    WEB = "web"
    IOS = "ios"
    ANDROID = "android"
