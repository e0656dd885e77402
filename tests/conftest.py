from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campusverse.db.base import Base
from campusverse.db.session import get_db
from campusverse.main import app
from campusverse.models.course import Course
from campusverse.models.quiz import Quiz, QuizQuestion
from campusverse.models.user import User


@pytest.fixture()
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    def _make(user_id: int, role: str = "student", **extra) -> User:
        user = User(
            id=user_id,
            email=f"{role}{user_id}@test.local",
            full_name=f"{role.title()} {user_id}",
            role=role,
            **extra,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def course(db, make_user):
    faculty = make_user(1, "faculty")
    row = Course(id=1, name="Data Structures", code="CS201", faculty_id=faculty.id)
    db.add(row)
    db.commit()
    return row


@pytest.fixture()
def make_quiz(db, course):
    """Insert a quiz directly, bypassing create-time validation."""
    counter = {"n": 0}

    def _make(
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        marks=(5, 5),
        correct=(0, 1),
        passing_marks: int = 5,
        duration_minutes: int = 30,
        is_active: bool = True,
        faculty_id: int = 1,
        branch: str = "CSE",
        section: str = "A",
        code: str | None = None,
    ) -> Quiz:
        now = datetime.now(timezone.utc)
        counter["n"] += 1
        quiz = Quiz(
            title=f"Quiz {counter['n']}",
            description="",
            course_id=course.id,
            faculty_id=faculty_id,
            branch=branch,
            section=section,
            duration_minutes=duration_minutes,
            total_marks=sum(marks),
            passing_marks=passing_marks,
            start_date=start or now - timedelta(hours=1),
            end_date=end or now + timedelta(hours=1),
            is_active=is_active,
            code=code or f"QZ{counter['n']:04d}",
        )
        quiz.questions = [
            QuizQuestion(order_no=i, prompt=f"Question {i + 1}", options=["a", "b", "c", "d"], correct_option=c, marks=m)
            for i, (m, c) in enumerate(zip(marks, correct))
        ]
        db.add(quiz)
        db.commit()
        return quiz

    return _make
