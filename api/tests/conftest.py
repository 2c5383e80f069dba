import os
from datetime import datetime

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

import drill_engine.models  # noqa: F401
from drill_engine.core.database import engine, get_session
from drill_engine.models import Drill, DrillAssignment, User
from drill_engine.services.pronunciation_service import PronunciationScore


class RecordingScheduler:
    """Stands in for BackgroundTasks.add_task and remembers what was scheduled."""

    def __init__(self):
        self.calls = []

    def __call__(self, func, *args, **kwargs):
        self.calls.append((func, args, kwargs))

    @property
    def notifications(self):
        return [args[0] for _, args, _ in self.calls if args]


class FakeOracle:
    """Pronunciation oracle returning scripted scores in order."""

    def __init__(self, scores=None):
        self.scores = list(scores or [])
        self.calls = []

    async def score(self, reference_text, audio, user_id=None):
        self.calls.append((reference_text, audio, user_id))
        if not self.scores:
            raise AssertionError(f"No scripted score left for '{reference_text}'")
        next_score = self.scores.pop(0)
        if isinstance(next_score, Exception):
            raise next_score
        return PronunciationScore(pronunciation=next_score)


@pytest.fixture
def session():
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def fake_oracle():
    return FakeOracle()


def _add_user(session, email, role, first_name=None, last_name=None):
    user = User(email=email, role=role, first_name=first_name, last_name=last_name)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def tutor(session):
    return _add_user(session, "tutor@example.com", "tutor", "Tina", "Tutor")


@pytest.fixture
def admin(session):
    return _add_user(session, "admin@example.com", "admin")


@pytest.fixture
def learner(session):
    return _add_user(session, "lea@example.com", "learner", "Lea", "Learner")


@pytest.fixture
def other_learner(session):
    return _add_user(session, "leo@example.com", "learner")


@pytest.fixture
def make_drill(session, tutor):
    def _make_drill(drill_type="vocabulary", content=None, **kwargs):
        drill = Drill(
            title=kwargs.pop("title", f"{drill_type} drill"),
            type=drill_type,
            content=content or {},
            created_by_id=kwargs.pop("created_by_id", tutor.id),
            **kwargs,
        )
        session.add(drill)
        session.commit()
        session.refresh(drill)
        return drill
    return _make_drill


@pytest.fixture
def make_assignment(session, tutor):
    def _make_assignment(drill, learner, assigned_by=None):
        assignment = DrillAssignment(
            drill_id=drill.id,
            learner_id=learner.id,
            assigned_by_id=(assigned_by or tutor).id,
            assigned_at=datetime.utcnow(),
            status="pending",
        )
        session.add(assignment)
        session.commit()
        session.refresh(assignment)
        return assignment
    return _make_assignment


@pytest.fixture
def client(session, fake_oracle):
    from drill_engine.main import app
    from drill_engine.api.v1.endpoints.practice import get_oracle

    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_oracle] = lambda: fake_oracle
    yield TestClient(app)
    app.dependency_overrides.clear()
