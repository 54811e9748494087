import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from curabot.auth.dependencies import CurrentUser  # noqa: E402
from curabot.core.errors import UpstreamError  # noqa: E402
from curabot.database import Base  # noqa: E402
from curabot.models import appointment, chat, doctor, schedule, user  # noqa: E402,F401
from curabot.models.doctor import Doctor  # noqa: E402
from curabot.models.user import User  # noqa: E402
from curabot.services.schedule import set_availability  # noqa: E402

SCENARIO_DAY = date(2025, 1, 10)


class FakeLLM:
    """Stands in for LLMClient and replays canned replies in order."""

    def __init__(self, *replies: str, error: Exception | None = None) -> None:
        self.replies = list(replies)
        self.error = error
        self.prompts: list[str] = []

    @property
    def is_configured(self) -> bool:
        return True

    def complete_json(self, prompt: str, *, model: str, temperature: float = 0.3, max_tokens: int = 1024) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if not self.replies:
            raise UpstreamError('No canned reply left.')
        return self.replies.pop(0)


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def make_user(db, role: str = 'patient', email: str | None = None, name: str = 'Test User') -> User:
    user = User(
        name=name,
        email=email or f'{role}-{db.query(User).count() + 1}@example.com',
        hashed_password='not-a-hash',
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_doctor(db, name: str = 'Dr. Rao', speciality: str = 'Cardiology', **fields) -> Doctor:
    doctor_user = make_user(db, role='doctor', name=name)
    doctor = Doctor(
        user_id=doctor_user.id,
        name=name,
        speciality=speciality,
        qualification=fields.pop('qualification', 'MBBS, MD'),
        overview=fields.pop('overview', 'Experienced specialist.'),
        expertise=fields.pop('expertise', ['general']),
    )
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


def as_actor(user: User) -> CurrentUser:
    return CurrentUser(id=user.id, role=user.role, email=user.email, name=user.name)


@pytest.fixture
def scenario(db):
    """Doctor with 09:00 and 09:30 open on 2025-01-10 and two patients."""
    doctor_profile = make_doctor(db)
    set_availability(db, doctor_profile.id, SCENARIO_DAY, '09:00', '10:00', 30)
    return {
        'doctor': doctor_profile,
        'patient': make_user(db, email='alice@example.com', name='Alice'),
        'other_patient': make_user(db, email='bob@example.com', name='Bob'),
        'admin': make_user(db, role='admin', email='admin@example.com', name='Admin'),
    }
