from __future__ import annotations

import logging
import re
import secrets
import string
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from campusverse.core.clock import as_utc, utcnow
from campusverse.core.config import settings
from campusverse.core.errors import (
    ForbiddenError,
    InternalError,
    NotFoundError,
    QuizHasAttempts,
    QuizLocked,
    ValidationError,
)
from campusverse.models.course import Course
from campusverse.models.quiz import Quiz, QuizQuestion
from campusverse.models.quiz_attempt import QuizAttempt
from campusverse.models.quiz_session import QuizSession
from campusverse.models.user import User
from campusverse.schemas.quiz import QuestionIn, QuizCreate, QuizFilters, QuizUpdate
from campusverse.services.attempt_service import AttemptState, describe_state, has_attempted, resolve_state
from campusverse.services.user_service import is_admin, is_staff

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_MAX_INPUT_LEN = 32
_CODE_RE = re.compile(r"^[A-Z0-9]+$")

INVALID_CODE_MESSAGE = "Invalid or expired quiz code"

# Fields frozen once any attempt exists
_LOCKED_FIELDS = ("duration_minutes", "total_marks", "passing_marks", "start_date", "end_date", "questions")


# ---------------------------------------------------------------------------
# Access codes
# ---------------------------------------------------------------------------


def generate_access_code(db: Session) -> str:
    length = int(settings.QUIZ_CODE_LENGTH)
    for _ in range(int(settings.QUIZ_CODE_MAX_TRIES)):
        code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
        if not db.query(Quiz.id).filter(Quiz.code == code).first():
            return code

    logger.error("Could not allocate a unique quiz code after %s tries", settings.QUIZ_CODE_MAX_TRIES)
    raise InternalError("Could not allocate a unique quiz code")


def normalize_code(raw: Any) -> str:
    code = str(raw or "").strip().upper()
    if not code or len(code) > CODE_MAX_INPUT_LEN or not _CODE_RE.match(code):
        raise ValidationError("Quiz code must be 1-32 letters or digits")
    return code


def verify_code(db: Session, code: Any, student: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Resolve an access code to an open quiz.

    Unknown, cancelled, scheduled and expired codes all get the same answer.
    """
    now = now or utcnow()
    normalized = normalize_code(code)

    quiz = db.query(Quiz).filter(Quiz.code == normalized).first()
    if quiz is None or resolve_state(quiz, False, now) != AttemptState.open:
        logger.info("Quiz code rejected code=%s student_id=%s", normalized, student.id)
        return {"valid": False, "message": INVALID_CODE_MESSAGE}

    attempted = has_attempted(db, quiz.id, student.id)
    return {
        "valid": True,
        "quiz_id": quiz.id,
        "quiz": quiz_summary(quiz),
        "has_attempted": attempted,
        "message": "You have already attempted this quiz" if attempted else "Quiz code verified",
    }


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


def _check_invariants(
    *,
    start_date: datetime,
    end_date: datetime,
    questions: List[Any],
    total_marks: Optional[int],
    passing_marks: int,
) -> int:
    """Return the effective total marks or raise ValidationError."""
    if as_utc(start_date) >= as_utc(end_date):
        raise ValidationError("start_date must be before end_date")
    if not questions:
        raise ValidationError("A quiz needs at least one question")

    computed = sum(int(q.marks) for q in questions)
    if total_marks is not None and int(total_marks) != computed:
        raise ValidationError(
            "total_marks does not match the sum of question marks",
            details={"total_marks": int(total_marks), "sum_of_marks": computed},
        )
    if not 1 <= int(passing_marks) <= computed:
        raise ValidationError(
            "passing_marks must be between 1 and total_marks",
            details={"passing_marks": int(passing_marks), "total_marks": computed},
        )
    return computed


def _build_questions(items: List[QuestionIn]) -> List[QuizQuestion]:
    return [
        QuizQuestion(
            order_no=i,
            prompt=q.prompt.strip(),
            options=list(q.options),
            correct_option=int(q.correct_option),
            marks=int(q.marks),
        )
        for i, q in enumerate(items)
    ]


def _ensure_owner(quiz: Quiz, actor: User) -> None:
    if is_admin(actor):
        return
    if not is_staff(actor) or int(quiz.faculty_id) != int(actor.id):
        raise ForbiddenError("Only the quiz owner or an admin may change this quiz")


def count_attempts(db: Session, quiz_id: int) -> int:
    return int(db.query(func.count(QuizAttempt.id)).filter(QuizAttempt.quiz_id == int(quiz_id)).scalar() or 0)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


def create_quiz(db: Session, payload: QuizCreate, faculty: User) -> Quiz:
    total = _check_invariants(
        start_date=payload.start_date,
        end_date=payload.end_date,
        questions=payload.questions,
        total_marks=payload.total_marks,
        passing_marks=payload.passing_marks,
    )
    if not db.get(Course, int(payload.course_id)):
        raise NotFoundError("Course not found")

    quiz = Quiz(
        title=payload.title.strip(),
        description=(payload.description or "").strip(),
        course_id=int(payload.course_id),
        faculty_id=int(faculty.id),
        branch=payload.branch.strip(),
        section=payload.section.strip(),
        duration_minutes=int(payload.duration_minutes),
        total_marks=total,
        passing_marks=int(payload.passing_marks),
        start_date=as_utc(payload.start_date),
        end_date=as_utc(payload.end_date),
        is_active=True,
        code=generate_access_code(db),
    )
    quiz.questions = _build_questions(payload.questions)
    db.add(quiz)
    db.commit()
    db.refresh(quiz)

    logger.info("Quiz created id=%s code=%s faculty_id=%s", quiz.id, quiz.code, faculty.id)
    return quiz


def get_quiz(db: Session, quiz_id: int) -> Quiz:
    quiz = db.get(Quiz, int(quiz_id))
    if not quiz:
        raise NotFoundError("Quiz not found")
    return quiz


def list_quizzes(
    db: Session,
    filters: QuizFilters,
    viewer: User,
    now: Optional[datetime] = None,
) -> Tuple[List[Quiz], int]:
    now = now or utcnow()
    q = db.query(Quiz)

    if filters.course_id is not None:
        q = q.filter(Quiz.course_id == int(filters.course_id))
    if filters.branch:
        q = q.filter(Quiz.branch == filters.branch)
    if filters.section:
        q = q.filter(Quiz.section == filters.section)
    if filters.faculty_id is not None:
        q = q.filter(Quiz.faculty_id == int(filters.faculty_id))
    if filters.active_only:
        q = q.filter(Quiz.is_active.is_(True))

    role = (viewer.role or "student")
    if role == "faculty":
        q = q.filter(Quiz.faculty_id == int(viewer.id))
    elif role == "student":
        if viewer.branch:
            q = q.filter(Quiz.branch == viewer.branch)
        if viewer.section:
            q = q.filter(Quiz.section == viewer.section)
        attempted = db.query(QuizAttempt.quiz_id).filter(QuizAttempt.student_id == int(viewer.id))
        q = q.filter(Quiz.is_active.is_(True), Quiz.end_date >= now, ~Quiz.id.in_(attempted))

    total = q.count()
    limit = min(int(filters.limit), int(settings.MAX_PAGE_SIZE))
    items = (
        q.order_by(Quiz.created_at.desc(), Quiz.id.desc())
        .offset((int(filters.page) - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def update_quiz(db: Session, quiz_id: int, payload: QuizUpdate, actor: User) -> Quiz:
    quiz = get_quiz(db, quiz_id)
    _ensure_owner(quiz, actor)

    changes = payload.model_dump(exclude_unset=True)
    locked = [f for f in _LOCKED_FIELDS if f in changes]
    if locked and count_attempts(db, quiz.id) > 0:
        raise QuizLocked(details={"fields": locked})

    questions = payload.questions if "questions" in changes else list(quiz.questions)
    total = _check_invariants(
        start_date=changes.get("start_date") or quiz.start_date,
        end_date=changes.get("end_date") or quiz.end_date,
        questions=questions,
        total_marks=changes.get("total_marks", quiz.total_marks if "questions" not in changes else None),
        passing_marks=changes.get("passing_marks") or quiz.passing_marks,
    )

    for key in ("title", "description"):
        if changes.get(key) is not None:
            setattr(quiz, key, str(changes[key]).strip())
    for key in ("duration_minutes", "passing_marks"):
        if changes.get(key) is not None:
            setattr(quiz, key, changes[key])
    for key in ("start_date", "end_date"):
        if changes.get(key) is not None:
            setattr(quiz, key, as_utc(changes[key]))
    if "questions" in changes:
        quiz.questions = _build_questions(payload.questions)
    quiz.total_marks = total

    db.commit()
    db.refresh(quiz)
    logger.info("Quiz updated id=%s fields=%s", quiz.id, sorted(changes))
    return quiz


def cancel_quiz(db: Session, quiz_id: int, actor: User) -> Quiz:
    quiz = get_quiz(db, quiz_id)
    _ensure_owner(quiz, actor)
    if quiz.is_active:
        quiz.is_active = False
        db.commit()
        db.refresh(quiz)
        logger.info("Quiz cancelled id=%s by user_id=%s", quiz.id, actor.id)
    return quiz


def delete_quiz(db: Session, quiz_id: int, actor: User) -> None:
    quiz = get_quiz(db, quiz_id)
    _ensure_owner(quiz, actor)
    attempts = count_attempts(db, quiz.id)
    if attempts > 0:
        raise QuizHasAttempts(details={"attempts": attempts})

    # Sessions opened without a submission do not block deletion
    db.query(QuizSession).filter(QuizSession.quiz_id == quiz.id).delete(synchronize_session=False)
    db.delete(quiz)
    db.commit()
    logger.info("Quiz deleted id=%s by user_id=%s", quiz_id, actor.id)


def regenerate_code(db: Session, quiz_id: int, actor: User) -> str:
    quiz = get_quiz(db, quiz_id)
    _ensure_owner(quiz, actor)
    quiz.code = generate_access_code(db)
    db.commit()
    logger.info("Quiz code regenerated id=%s", quiz.id)
    return quiz.code


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def quiz_summary(quiz: Quiz) -> Dict[str, Any]:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "course_id": quiz.course_id,
        "faculty_id": quiz.faculty_id,
        "branch": quiz.branch,
        "section": quiz.section,
        "duration_minutes": int(quiz.duration_minutes),
        "total_marks": int(quiz.total_marks),
        "passing_marks": int(quiz.passing_marks),
        "start_date": as_utc(quiz.start_date).isoformat(),
        "end_date": as_utc(quiz.end_date).isoformat(),
        "is_active": bool(quiz.is_active),
        "question_count": len(quiz.questions),
    }


def quiz_to_dict(quiz: Quiz, *, include_answers: bool) -> Dict[str, Any]:
    """Full quiz payload. Students get ``include_answers=False``."""
    data = quiz_summary(quiz)
    if include_answers:
        data["code"] = quiz.code
    questions = []
    for i, q in enumerate(quiz.questions):
        item = {"index": i, "prompt": q.prompt, "options": list(q.options or []), "marks": int(q.marks)}
        if include_answers:
            item["correct_option"] = int(q.correct_option)
        questions.append(item)
    data["questions"] = questions
    return data


def student_quiz_view(db: Session, quiz: Quiz, student: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    data = quiz_to_dict(quiz, include_answers=False)
    data["status"] = describe_state(quiz, has_attempted(db, quiz.id, student.id), now)
    return data
