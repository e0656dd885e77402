"""AI credit ledger.

Balances only move through a single conditional UPDATE so concurrent
consumers can never overdraw an account.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campusverse.core.clock import as_utc
from campusverse.core.config import settings
from campusverse.core.errors import DomainError, InsufficientCredits, NotFoundError, ValidationError
from campusverse.models.ai_credit import AICreditAccount, AICreditTransaction, CreditAction
from campusverse.models.user import User

logger = logging.getLogger(__name__)


def _find_account(db: Session, user_id: int) -> Optional[AICreditAccount]:
    return db.query(AICreditAccount).filter(AICreditAccount.user_id == int(user_id)).first()


def get_or_create_account(db: Session, user_id: int) -> AICreditAccount:
    account = _find_account(db, user_id)
    if account:
        return account

    if db.get(User, int(user_id)) is None:
        raise NotFoundError("User not found")
    account = AICreditAccount(user_id=int(user_id), total_credits=int(settings.AI_DEFAULT_CREDITS), used_credits=0)
    db.add(account)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        account = _find_account(db, user_id)
        if account is None:
            raise
        return account

    db.refresh(account)
    logger.info("AI credit account created user_id=%s credits=%s", user_id, account.total_credits)
    return account


def account_to_dict(account: AICreditAccount) -> Dict[str, Any]:
    return {
        "user_id": account.user_id,
        "total_credits": int(account.total_credits),
        "used_credits": int(account.used_credits),
        "remaining_credits": account.remaining_credits,
        "last_reset": as_utc(account.last_reset).isoformat() if account.last_reset else None,
    }


def allocate(db: Session, user_id: int, credits: int) -> AICreditAccount:
    if int(credits) <= 0:
        raise ValidationError("credits must be positive")

    account = get_or_create_account(db, user_id)
    db.execute(
        update(AICreditAccount)
        .where(AICreditAccount.id == account.id)
        .values(total_credits=AICreditAccount.total_credits + int(credits))
    )
    db.add(
        AICreditTransaction(
            account_id=account.id,
            action=CreditAction.credit_allocation,
            credits_delta=-int(credits),
            details=f"Allocated {int(credits)} credits",
        )
    )
    db.commit()
    db.refresh(account)
    logger.info("Allocated %s AI credits to user_id=%s", credits, user_id)
    return account


def bulk_allocate(db: Session, user_ids: List[int], credits: int) -> List[Dict[str, Any]]:
    results: List[Dict[str, Any]] = []
    for uid in user_ids:
        try:
            account = allocate(db, uid, credits)
        except DomainError as exc:
            db.rollback()
            logger.warning("Bulk allocation failed for user_id=%s: %s", uid, exc.message)
            results.append({"user_id": uid, "success": False, "error": exc.to_error()})
            continue
        results.append({"user_id": uid, "success": True, "remaining_credits": account.remaining_credits})
    return results


def consume(
    db: Session,
    user_id: int,
    cost: int,
    action: CreditAction,
    details: str | None = None,
    *,
    commit: bool = True,
) -> AICreditAccount:
    """Spend ``cost`` credits or raise InsufficientCredits.

    With ``commit=False`` the debit stays in the caller's transaction.
    """
    account = get_or_create_account(db, user_id)
    res = db.execute(
        update(AICreditAccount)
        .where(
            AICreditAccount.id == account.id,
            AICreditAccount.total_credits - AICreditAccount.used_credits >= int(cost),
        )
        .values(used_credits=AICreditAccount.used_credits + int(cost))
    )
    if res.rowcount == 0:
        db.rollback()
        db.refresh(account)
        logger.warning(
            "AI credits refused user_id=%s action=%s cost=%s remaining=%s",
            user_id,
            getattr(action, "value", action),
            cost,
            account.remaining_credits,
        )
        raise InsufficientCredits(details={"required": int(cost), "remaining": account.remaining_credits})

    db.add(AICreditTransaction(account_id=account.id, action=action, credits_delta=int(cost), details=details))
    if commit:
        db.commit()
    else:
        db.flush()
    db.refresh(account)
    logger.info("AI credits consumed user_id=%s action=%s cost=%s", user_id, getattr(action, "value", action), cost)
    return account


def history(db: Session, user_id: int, page: int = 1, limit: int | None = None) -> Dict[str, Any]:
    account = _find_account(db, user_id)
    if account is None:
        raise NotFoundError("No AI credit account for this user")

    limit = min(int(limit or settings.DEFAULT_PAGE_SIZE), int(settings.MAX_PAGE_SIZE))
    page = max(1, int(page))
    q = db.query(AICreditTransaction).filter(AICreditTransaction.account_id == account.id)
    total = q.count()
    rows = (
        q.order_by(AICreditTransaction.created_at.desc(), AICreditTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "account": account_to_dict(account),
        "transactions": [
            {
                "id": t.id,
                "action": getattr(t.action, "value", t.action),
                "credits_delta": int(t.credits_delta),
                "details": t.details,
                "created_at": as_utc(t.created_at).isoformat() if t.created_at else None,
            }
            for t in rows
        ],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    }
