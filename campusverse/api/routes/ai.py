from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from campusverse.api.deps import require_admin, require_user
from campusverse.core.errors import ForbiddenError
from campusverse.db.session import get_db
from campusverse.models.user import User
from campusverse.schemas.ai import BulkAllocateRequest, CreditAllocateRequest, RoadmapGenerateRequest
from campusverse.services import ai_credit_service, roadmap_service
from campusverse.services.user_service import is_admin

router = APIRouter(prefix="/ai", tags=["ai"])


def _ensure_self_or_admin(user: User, user_id: int) -> None:
    if not is_admin(user) and int(user.id) != int(user_id):
        raise ForbiddenError("You may only access your own AI data")


@router.get("/credits/{user_id}")
def get_credits(request: Request, user_id: int, db: Session = Depends(get_db), user: User = Depends(require_user)):
    _ensure_self_or_admin(user, user_id)
    account = ai_credit_service.get_or_create_account(db, user_id)
    return {"request_id": request.state.request_id, "data": ai_credit_service.account_to_dict(account), "error": None}


@router.put("/credits/{user_id}")
def allocate_credits(
    request: Request,
    user_id: int,
    payload: CreditAllocateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    account = ai_credit_service.allocate(db, user_id, payload.credits_to_add)
    return {"request_id": request.state.request_id, "data": ai_credit_service.account_to_dict(account), "error": None}


@router.get("/credits/{user_id}/history")
def credit_history(
    request: Request,
    user_id: int,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    _ensure_self_or_admin(user, user_id)
    data = ai_credit_service.history(db, user_id, page=page, limit=limit)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/credits/bulk-allocate")
def bulk_allocate(
    request: Request,
    payload: BulkAllocateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    results = ai_credit_service.bulk_allocate(db, payload.user_ids, payload.credits_to_add)
    data = {
        "results": results,
        "succeeded": sum(1 for r in results if r["success"]),
        "failed": sum(1 for r in results if not r["success"]),
    }
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.post("/roadmap/generate", status_code=201)
def generate_roadmap(
    request: Request,
    payload: RoadmapGenerateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    _ensure_self_or_admin(user, payload.user_id)
    roadmap = roadmap_service.generate_roadmap(
        db,
        payload.user_id,
        payload.target_role,
        payload.current_level,
        payload.duration,
    )
    account = ai_credit_service.get_or_create_account(db, payload.user_id)
    data = roadmap_service.roadmap_to_dict(roadmap)
    data["remaining_credits"] = account.remaining_credits
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/roadmaps/{user_id}")
def list_roadmaps(request: Request, user_id: int, db: Session = Depends(get_db), user: User = Depends(require_user)):
    _ensure_self_or_admin(user, user_id)
    data = [roadmap_service.roadmap_to_dict(r) for r in roadmap_service.list_roadmaps(db, user_id)]
    return {"request_id": request.state.request_id, "data": data, "error": None}
