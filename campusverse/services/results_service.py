from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from campusverse.core.clock import as_utc
from campusverse.core.errors import ForbiddenError
from campusverse.models.course import Course
from campusverse.models.quiz import Quiz
from campusverse.models.quiz_attempt import QuizAttempt
from campusverse.models.user import User
from campusverse.services.quiz_service import get_quiz
from campusverse.services.user_service import is_admin, is_staff

logger = logging.getLogger(__name__)


def _iso(value):
    return as_utc(value).isoformat() if value else None


def quiz_results(db: Session, quiz_id: int, actor: User) -> List[Dict[str, Any]]:
    """All attempts for a quiz, newest submission first."""
    quiz = get_quiz(db, quiz_id)
    if not is_admin(actor) and not (is_staff(actor) and int(quiz.faculty_id) == int(actor.id)):
        raise ForbiddenError("Only the quiz owner or an admin may view results")

    rows = (
        db.query(QuizAttempt, User)
        .join(User, User.id == QuizAttempt.student_id)
        .filter(QuizAttempt.quiz_id == quiz.id)
        .order_by(QuizAttempt.submitted_at.desc(), QuizAttempt.id.desc())
        .all()
    )

    out: List[Dict[str, Any]] = []
    for attempt, student in rows:
        out.append(
            {
                "attempt_id": attempt.id,
                "student": {
                    "id": student.id,
                    "name": student.full_name,
                    "email": student.email,
                    "admission_number": student.admission_number,
                },
                "score": int(attempt.score),
                "total_marks": int(quiz.total_marks),
                "percentage": int(attempt.percentage),
                "passed": bool(attempt.passed),
                "submitted_at": _iso(attempt.submitted_at),
                "duration_seconds": int(attempt.duration_seconds or 0),
                "is_late": bool(attempt.is_late),
            }
        )
    return out


def student_attempts(db: Session, student_id: int, viewer: User) -> List[Dict[str, Any]]:
    if not is_staff(viewer) and int(viewer.id) != int(student_id):
        raise ForbiddenError("Students may only view their own attempts")

    rows = (
        db.query(QuizAttempt, Quiz, Course)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .outerjoin(Course, Course.id == Quiz.course_id)
        .filter(QuizAttempt.student_id == int(student_id))
        .order_by(QuizAttempt.submitted_at.desc(), QuizAttempt.id.desc())
        .all()
    )

    return [
        {
            "attempt_id": attempt.id,
            "quiz": {
                "id": quiz.id,
                "title": quiz.title,
                "total_marks": int(quiz.total_marks),
                "passing_marks": int(quiz.passing_marks),
                "course": {"id": course.id, "name": course.name, "code": course.code} if course else None,
            },
            "score": int(attempt.score),
            "percentage": int(attempt.percentage),
            "passed": bool(attempt.passed),
            "submitted_at": _iso(attempt.submitted_at),
            "duration_seconds": int(attempt.duration_seconds or 0),
        }
        for attempt, quiz, course in rows
    ]
