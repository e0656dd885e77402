from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from campusverse.api.deps import require_user
from campusverse.db.session import get_db
from campusverse.models.user import User
from campusverse.services.results_service import student_attempts

router = APIRouter(tags=["students"])


@router.get("/students/{student_id}/quiz-attempts")
def list_student_attempts(
    request: Request,
    student_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    data = student_attempts(db, student_id, user)
    return {"request_id": request.state.request_id, "data": data, "error": None}
