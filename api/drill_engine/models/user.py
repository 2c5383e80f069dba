"""
User model.
"""
from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from drill_engine.models.enums import UserRole


class User(SQLModel, table=True):
    """User table - learners, tutors and admins."""
    __tablename__ = "user"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)  # Email address
    first_name: Optional[str] = Field(default=None)
    last_name: Optional[str] = Field(default=None)
    role: str = Field(default=UserRole.LEARNER.value, index=True)  # 'learner', 'tutor' or 'admin'
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def display_name(self) -> str:
        """Full name when both parts are known, else the email local part."""
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        if self.email:
            return self.email.split("@")[0]
        return "User"
