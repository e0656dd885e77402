from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from campusverse.api.deps import require_staff, require_student, require_user
from campusverse.core.clock import as_utc, utcnow
from campusverse.core.config import settings
from campusverse.db.session import get_db
from campusverse.models.user import User
from campusverse.schemas.quiz import AttemptSubmitIn, QuizCreate, QuizFilters, QuizUpdate, VerifyCodeIn
from campusverse.services import attempt_service, quiz_service, results_service
from campusverse.services.user_service import is_admin

router = APIRouter(tags=["quizzes"])


def _ok(request: Request, data):
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/quizzes")
def list_quizzes(
    request: Request,
    course_id: Optional[int] = Query(default=None, ge=1),
    branch: Optional[str] = Query(default=None),
    section: Optional[str] = Query(default=None),
    faculty_id: Optional[int] = Query(default=None, ge=1),
    active_only: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    filters = QuizFilters(
        course_id=course_id,
        branch=branch,
        section=section,
        faculty_id=faculty_id,
        active_only=active_only,
        page=page,
        limit=limit,
    )
    quizzes, total = quiz_service.list_quizzes(db, filters, user)

    if user.role == "student":
        items = [quiz_service.student_quiz_view(db, q, user) for q in quizzes]
        for item in items:
            # Listing only needs the summary and the countdown state
            item.pop("questions", None)
    else:
        items = []
        for q in quizzes:
            row = quiz_service.quiz_summary(q)
            row["code"] = q.code
            row["attempt_count"] = quiz_service.count_attempts(db, q.id)
            items.append(row)

    size = min(limit, settings.MAX_PAGE_SIZE)
    return _ok(
        request,
        {
            "items": items,
            "pagination": {"page": page, "limit": size, "total": total, "pages": (total + size - 1) // size},
        },
    )


@router.post("/quizzes", status_code=201)
def create_quiz(
    request: Request,
    payload: QuizCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    quiz = quiz_service.create_quiz(db, payload, user)
    return _ok(request, quiz_service.quiz_to_dict(quiz, include_answers=True))


@router.post("/quizzes/verify-code")
def verify_code(
    request: Request,
    payload: VerifyCodeIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_student),
):
    return _ok(request, quiz_service.verify_code(db, payload.code, user))


@router.get("/quizzes/{quiz_id}")
def get_quiz(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    quiz = quiz_service.get_quiz(db, quiz_id)
    if user.role == "student":
        return _ok(request, quiz_service.student_quiz_view(db, quiz, user))

    owner = is_admin(user) or int(quiz.faculty_id) == int(user.id)
    return _ok(request, quiz_service.quiz_to_dict(quiz, include_answers=owner))


@router.put("/quizzes/{quiz_id}")
def update_quiz(
    request: Request,
    quiz_id: int,
    payload: QuizUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    quiz = quiz_service.update_quiz(db, quiz_id, payload, user)
    return _ok(request, quiz_service.quiz_to_dict(quiz, include_answers=True))


@router.delete("/quizzes/{quiz_id}")
def delete_quiz(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    quiz_service.delete_quiz(db, quiz_id, user)
    return _ok(request, {"deleted": True, "quiz_id": quiz_id})


@router.get("/quizzes/{quiz_id}/status")
def quiz_status(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_student),
):
    return _ok(request, attempt_service.quiz_status(db, quiz_id, user))


@router.post("/quizzes/{quiz_id}/start")
def start_quiz(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_student),
):
    session = attempt_service.start_attempt(db, quiz_id, user)
    return _ok(
        request,
        {
            "quiz_id": session.quiz_id,
            "started_at": as_utc(session.started_at).isoformat(),
            "deadline_at": as_utc(session.deadline_at).isoformat(),
            "time_left_seconds": attempt_service.time_left_seconds(session, utcnow()),
        },
    )


@router.post("/quizzes/{quiz_id}/attempt", status_code=201)
def submit_attempt(
    request: Request,
    quiz_id: int,
    payload: AttemptSubmitIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_student),
):
    return _ok(request, attempt_service.record_attempt(db, quiz_id, user, payload))


@router.get("/quizzes/{quiz_id}/results")
def quiz_results(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return _ok(request, results_service.quiz_results(db, quiz_id, user))


@router.post("/quizzes/{quiz_id}/cancel")
def cancel_quiz(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    quiz = quiz_service.cancel_quiz(db, quiz_id, user)
    return _ok(request, {"quiz_id": quiz.id, "is_active": bool(quiz.is_active)})


@router.post("/quizzes/{quiz_id}/generate-code")
def generate_code(
    request: Request,
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return _ok(request, {"quiz_id": quiz_id, "code": quiz_service.regenerate_code(db, quiz_id, user)})
