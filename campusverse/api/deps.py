"""Common FastAPI dependencies.

Two ways to identify the caller:
  - default: demo headers ``X-User-Id`` / ``X-User-Role`` (a minimal user row
    is auto-created so foreign keys hold)
  - ``AUTH_ENABLED=true``: ``Authorization: Bearer <jwt>`` with ``sub`` and
    ``role`` claims
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from campusverse.core.config import settings
from campusverse.core.errors import ForbiddenError, NotAuthenticated
from campusverse.core.security import safe_decode_token
from campusverse.db.session import get_db
from campusverse.models.user import User
from campusverse.services.user_service import ensure_user_exists, normalize_role


def _parse_user_id(raw: Optional[str]) -> Optional[int]:
    try:
        uid = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return uid if uid > 0 else None


def _user_from_bearer(db: Session, authorization: Optional[str]) -> Optional[User]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    claims = safe_decode_token(authorization.split(" ", 1)[1].strip())
    if not claims:
        return None
    uid = _parse_user_id(claims.get("sub"))
    if uid is None:
        return None
    user = db.get(User, uid)
    if user is None:
        user = ensure_user_exists(db, uid, role=normalize_role(claims.get("role")))
    return user


def get_current_user_optional(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> Optional[User]:
    if settings.AUTH_ENABLED:
        return _user_from_bearer(db, authorization)

    if not x_user_id:
        return None
    uid = _parse_user_id(x_user_id)
    if uid is None:
        return None
    role = normalize_role(x_user_role) or "student"
    return ensure_user_exists(db, uid, role=role)


def require_user(user: Optional[User] = Depends(get_current_user_optional)) -> User:
    if not user:
        raise NotAuthenticated()
    if not user.is_active:
        raise ForbiddenError("Account is disabled")
    return user


def require_student(user: User = Depends(require_user)) -> User:
    if user.role != "student":
        raise ForbiddenError("Student role required")
    return user


def require_staff(user: User = Depends(require_user)) -> User:
    if user.role not in {"faculty", "admin"}:
        raise ForbiddenError("Faculty or admin role required")
    return user


def require_admin(user: User = Depends(require_user)) -> User:
    if user.role != "admin":
        raise ForbiddenError("Admin role required")
    return user
