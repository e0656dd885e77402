"""Quiz attempt lifecycle.

Every decision about whether a student may open or submit a quiz is made here,
against the server clock. Routes and the client only consume the resolved
state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from campusverse.core.clock import as_utc, utcnow
from campusverse.core.config import settings
from campusverse.core.errors import (
    AlreadyAttempted,
    ForbiddenError,
    NotFoundError,
    NotStarted,
    QuizCancelled,
    TransientStorageError,
    ValidationError,
    WindowClosed,
)
from campusverse.models.quiz import Quiz
from campusverse.models.quiz_attempt import QuizAttempt
from campusverse.models.quiz_session import QuizSession
from campusverse.models.user import User
from campusverse.schemas.quiz import AttemptSubmitIn
from campusverse.services.scoring_service import normalize_answers, score_answers

logger = logging.getLogger(__name__)


class AttemptState(str, Enum):
    scheduled = "scheduled"
    open = "open"
    expired = "expired"
    completed = "completed"
    cancelled = "cancelled"


STATE_LABELS = {
    AttemptState.scheduled: "Not started",
    AttemptState.open: "Start",
    AttemptState.expired: "Closed",
    AttemptState.completed: "Attempted",
    AttemptState.cancelled: "Cancelled",
}


def resolve_state(quiz: Any, has_attempt: bool, now: datetime) -> AttemptState:
    """Completed > Cancelled > Scheduled > Expired > Open; both window bounds inclusive."""
    if has_attempt:
        return AttemptState.completed
    if not bool(getattr(quiz, "is_active", True)):
        return AttemptState.cancelled

    now = as_utc(now)
    if now < as_utc(quiz.start_date):
        return AttemptState.scheduled
    if now > as_utc(quiz.end_date):
        return AttemptState.expired
    return AttemptState.open


def describe_state(quiz: Any, has_attempt: bool, now: datetime) -> Dict[str, Any]:
    state = resolve_state(quiz, has_attempt, now)
    now = as_utc(now)
    until_start = int((as_utc(quiz.start_date) - now).total_seconds())
    until_end = int((as_utc(quiz.end_date) - now).total_seconds())
    return {
        "state": state.value,
        "label": STATE_LABELS[state],
        "can_attempt": state == AttemptState.open,
        "seconds_until_start": max(0, until_start),
        "seconds_until_end": max(0, until_end),
    }


def ensure_submittable(state: AttemptState) -> None:
    if state == AttemptState.completed:
        raise AlreadyAttempted()
    if state == AttemptState.cancelled:
        raise QuizCancelled()
    if state == AttemptState.scheduled:
        raise NotStarted()
    if state == AttemptState.expired:
        raise WindowClosed()


def load_quiz(db: Session, quiz_id: int) -> Quiz:
    quiz = db.get(Quiz, int(quiz_id))
    if not quiz:
        raise NotFoundError("Quiz not found")
    return quiz


def has_attempted(db: Session, quiz_id: int, student_id: int) -> bool:
    row = (
        db.query(QuizAttempt.id)
        .filter(QuizAttempt.quiz_id == int(quiz_id), QuizAttempt.student_id == int(student_id))
        .first()
    )
    return row is not None


def get_session(db: Session, quiz_id: int, student_id: int) -> Optional[QuizSession]:
    return (
        db.query(QuizSession)
        .filter(QuizSession.quiz_id == int(quiz_id), QuizSession.student_id == int(student_id))
        .first()
    )


def _ensure_in_audience(quiz: Quiz, student: User) -> None:
    # Students without branch/section on file are not scoped
    if student.branch and quiz.branch and student.branch != quiz.branch:
        raise ForbiddenError("This quiz is not assigned to your branch")
    if student.section and quiz.section and student.section != quiz.section:
        raise ForbiddenError("This quiz is not assigned to your section")


def quiz_status(db: Session, quiz_id: int, student: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    quiz = load_quiz(db, quiz_id)
    info = describe_state(quiz, has_attempted(db, quiz.id, student.id), now)
    info["quiz_id"] = quiz.id

    session = get_session(db, quiz.id, student.id)
    if session is not None:
        info["started_at"] = as_utc(session.started_at).isoformat()
        info["time_left_seconds"] = time_left_seconds(session, now)
    return info


def time_left_seconds(session: QuizSession, now: datetime) -> int:
    return max(0, int((as_utc(session.deadline_at) - as_utc(now)).total_seconds()))


def start_attempt(db: Session, quiz_id: int, student: User, now: Optional[datetime] = None) -> QuizSession:
    """Open (or re-open) the quiz for ``student``.

    Re-opening returns the existing session unchanged; the clock is never
    reset.
    """
    now = now or utcnow()
    quiz = load_quiz(db, quiz_id)
    _ensure_in_audience(quiz, student)
    ensure_submittable(resolve_state(quiz, has_attempted(db, quiz.id, student.id), now))

    existing = get_session(db, quiz.id, student.id)
    if existing is not None:
        return existing

    deadline = min(as_utc(now) + timedelta(minutes=int(quiz.duration_minutes)), as_utc(quiz.end_date))
    session = QuizSession(quiz_id=quiz.id, student_id=student.id, started_at=as_utc(now), deadline_at=deadline)
    db.add(session)
    try:
        db.commit()
    except IntegrityError:
        # Opened concurrently from another tab
        db.rollback()
        existing = get_session(db, quiz.id, student.id)
        if existing is None:
            raise
        return existing

    db.refresh(session)
    logger.info("Quiz session opened quiz_id=%s student_id=%s deadline=%s", quiz.id, student.id, deadline.isoformat())
    return session


def validate_answers(question_count: int, answers: List[Any]) -> None:
    seen: set[int] = set()
    errors: List[Dict[str, Any]] = []
    for pos, a in enumerate(answers):
        q = int(a.question)
        if q < 0 or q >= question_count:
            errors.append({"index": pos, "reason": f"question {q} is out of range 0..{question_count - 1}"})
            continue
        if q in seen:
            errors.append({"index": pos, "reason": f"duplicate answer for question {q}"})
        seen.add(q)
        if a.selected_option is not None and not 0 <= int(a.selected_option) <= 3:
            errors.append({"index": pos, "reason": f"selected_option {a.selected_option} is out of range 0..3"})

    if errors:
        raise ValidationError("Invalid answers", details={"errors": errors})


def record_attempt(
    db: Session,
    quiz_id: int,
    student: User,
    payload: AttemptSubmitIn,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = as_utc(now or utcnow())
    quiz = load_quiz(db, quiz_id)
    questions = list(quiz.questions)
    validate_answers(len(questions), payload.answers)
    _ensure_in_audience(quiz, student)

    state = resolve_state(quiz, has_attempted(db, quiz.id, student.id), now)
    if state != AttemptState.open:
        logger.warning(
            "Rejected submission quiz_id=%s student_id=%s state=%s", quiz.id, student.id, state.value
        )
    ensure_submittable(state)

    result = score_answers(questions, payload.answers, quiz.passing_marks)

    session = get_session(db, quiz.id, student.id)
    duration_seconds = 0
    is_late = False
    late_by = 0
    if session is not None:
        duration_seconds = max(0, int((now - as_utc(session.started_at)).total_seconds()))
        overdue = int((now - as_utc(session.deadline_at)).total_seconds())
        if overdue > int(settings.QUIZ_SUBMIT_GRACE_SECONDS):
            is_late = True
            late_by = overdue
    elif payload.start_time and payload.end_time:
        duration_seconds = max(0, int((as_utc(payload.end_time) - as_utc(payload.start_time)).total_seconds()))

    attempt = QuizAttempt(
        quiz_id=quiz.id,
        student_id=student.id,
        answers_json=normalize_answers(len(questions), payload.answers),
        score=result.score,
        percentage=result.percentage,
        passed=result.passed,
        start_time=as_utc(payload.start_time),
        end_time=as_utc(payload.end_time),
        submitted_at=now,
        duration_seconds=duration_seconds,
        is_late=is_late,
        late_by_seconds=late_by,
    )
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Duplicate submission lost the race quiz_id=%s student_id=%s", quiz.id, student.id)
        raise AlreadyAttempted()
    except OperationalError:
        db.rollback()
        logger.exception("Storage failure while recording attempt quiz_id=%s student_id=%s", quiz.id, student.id)
        raise TransientStorageError()

    db.refresh(attempt)
    logger.info(
        "Attempt recorded quiz_id=%s student_id=%s score=%s/%s late=%s",
        quiz.id,
        student.id,
        result.score,
        result.total_marks,
        is_late,
    )

    data = attempt_to_dict(attempt, total_marks=result.total_marks)
    data["breakdown"] = result.breakdown
    return data


def attempt_to_dict(attempt: QuizAttempt, *, total_marks: int) -> Dict[str, Any]:
    return {
        "attempt_id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "student_id": attempt.student_id,
        "score": int(attempt.score),
        "total_marks": int(total_marks),
        "percentage": int(attempt.percentage),
        "passed": bool(attempt.passed),
        "answers": attempt.answers_json or [],
        "start_time": as_utc(attempt.start_time).isoformat() if attempt.start_time else None,
        "end_time": as_utc(attempt.end_time).isoformat() if attempt.end_time else None,
        "submitted_at": as_utc(attempt.submitted_at).isoformat() if attempt.submitted_at else None,
        "duration_seconds": int(attempt.duration_seconds or 0),
        "is_late": bool(attempt.is_late),
        "late_by_seconds": int(attempt.late_by_seconds or 0),
    }
