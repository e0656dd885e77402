from __future__ import annotations

import pytest

from campusverse.core.config import settings
from campusverse.core.errors import InsufficientCredits, NotFoundError
from campusverse.models.ai_credit import AICreditAccount, AICreditTransaction, CreditAction
from campusverse.models.user import User
from campusverse.services import ai_credit_service


def _h(user_id: int, role: str = "student") -> dict:
    return {"X-User-Id": str(user_id), "X-User-Role": role}


def test_new_account_starts_with_default_credits(db, make_user):
    make_user(2)
    account = ai_credit_service.get_or_create_account(db, 2)

    assert account.total_credits == settings.AI_DEFAULT_CREDITS
    assert account.remaining_credits == settings.AI_DEFAULT_CREDITS
    assert ai_credit_service.get_or_create_account(db, 2).id == account.id


def test_consume_debits_and_records_transaction(db, make_user):
    make_user(2)
    account = ai_credit_service.consume(db, 2, 15, CreditAction.roadmap_generate, "test")

    assert (account.used_credits, account.remaining_credits) == (15, settings.AI_DEFAULT_CREDITS - 15)
    tx = db.query(AICreditTransaction).one()
    assert (tx.action, tx.credits_delta) == (CreditAction.roadmap_generate, 15)


def test_consume_refuses_to_overdraw(db, make_user):
    make_user(2)
    ai_credit_service.consume(db, 2, settings.AI_DEFAULT_CREDITS - 10, CreditAction.ats_check)

    with pytest.raises(InsufficientCredits) as exc:
        ai_credit_service.consume(db, 2, 15, CreditAction.roadmap_generate)

    assert exc.value.status_code == 402
    assert exc.value.details == {"required": 15, "remaining": 10}
    account = db.query(AICreditAccount).filter(AICreditAccount.user_id == 2).one()
    assert account.remaining_credits == 10
    assert db.query(AICreditTransaction).count() == 1


def test_repeated_consumption_never_goes_negative(db, make_user):
    make_user(2)
    refused = 0
    for _ in range(10):
        try:
            ai_credit_service.consume(db, 2, 15, CreditAction.roadmap_generate)
        except InsufficientCredits:
            refused += 1

    account = ai_credit_service.get_or_create_account(db, 2)
    assert account.remaining_credits == settings.AI_DEFAULT_CREDITS % 15
    assert refused == 10 - settings.AI_DEFAULT_CREDITS // 15
    assert account.used_credits <= account.total_credits


def test_allocate_adds_to_total_with_negative_delta(db, make_user):
    make_user(2)
    account = ai_credit_service.allocate(db, 2, 50)

    assert account.total_credits == settings.AI_DEFAULT_CREDITS + 50
    tx = db.query(AICreditTransaction).one()
    assert (tx.action, tx.credits_delta) == (CreditAction.credit_allocation, -50)


def test_history_is_paginated_newest_first(db, make_user):
    make_user(2)
    ai_credit_service.allocate(db, 2, 5)
    ai_credit_service.consume(db, 2, 1, CreditAction.ats_check, "first")
    ai_credit_service.consume(db, 2, 2, CreditAction.ats_check, "second")

    data = ai_credit_service.history(db, 2, page=1, limit=2)

    assert [t["details"] for t in data["transactions"]] == ["second", "first"]
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert data["account"]["remaining_credits"] == settings.AI_DEFAULT_CREDITS + 5 - 3


def test_history_without_account_is_404(db):
    with pytest.raises(NotFoundError):
        ai_credit_service.history(db, 404)


def test_credit_routes(client, make_user):
    make_user(9, "admin")

    r = client.get("/api/ai/credits/2", headers=_h(2))
    assert r.status_code == 200
    assert r.json()["data"]["remaining_credits"] == settings.AI_DEFAULT_CREDITS

    r = client.get("/api/ai/credits/2", headers=_h(3))
    assert r.status_code == 403

    r = client.get("/api/ai/credits/404", headers=_h(9, "admin"))
    assert r.status_code == 404

    r = client.put("/api/ai/credits/2", json={"credits_to_add": 20}, headers=_h(2))
    assert r.status_code == 403

    r = client.put("/api/ai/credits/2", json={"credits_to_add": 20}, headers=_h(9, "admin"))
    assert r.json()["data"]["total_credits"] == settings.AI_DEFAULT_CREDITS + 20

    r = client.get("/api/ai/credits/2/history", headers=_h(3))
    assert r.status_code == 403

    r = client.get("/api/ai/credits/2/history", headers=_h(2))
    assert r.json()["data"]["pagination"]["total"] == 1


def test_bulk_allocate_reports_each_user(client, make_user):
    make_user(9, "admin")
    make_user(2)
    make_user(3)

    r = client.post(
        "/api/ai/credits/bulk-allocate",
        json={"user_ids": [2, 3, 404], "credits_to_add": 10},
        headers=_h(9, "admin"),
    )

    data = r.json()["data"]
    assert r.status_code == 200
    assert (data["succeeded"], data["failed"]) == (2, 1)
    assert data["results"][2]["error"]["code"] == "NOT_FOUND"
    assert all(row["remaining_credits"] == settings.AI_DEFAULT_CREDITS + 10 for row in data["results"][:2])


def test_bulk_allocate_continues_past_a_failure(db, make_user, monkeypatch):
    make_user(2)
    make_user(3)
    real_allocate = ai_credit_service.allocate

    def _flaky(db_, user_id, credits):
        if user_id == 2:
            raise NotFoundError("User not found")
        return real_allocate(db_, user_id, credits)

    monkeypatch.setattr(ai_credit_service, "allocate", _flaky)
    results = ai_credit_service.bulk_allocate(db, [2, 3], 5)

    assert [r["success"] for r in results] == [False, True]
    assert results[0]["error"]["code"] == "NOT_FOUND"


@pytest.mark.parametrize("role", ["faculty", "admin"])
def test_account_creation_keeps_staff_role(db, make_user, role):
    make_user(50, role)

    ai_credit_service.get_or_create_account(db, 50)
    ai_credit_service.allocate(db, 50, 5)

    assert db.get(User, 50).role == role


def test_account_for_unknown_user_is_404(db):
    with pytest.raises(NotFoundError):
        ai_credit_service.get_or_create_account(db, 404)
    assert db.query(AICreditAccount).count() == 0


def test_admin_allocation_route_keeps_faculty_role(client, db, make_user):
    make_user(9, "admin")
    make_user(51, "faculty")

    r = client.put("/api/ai/credits/51", json={"credits_to_add": 5}, headers=_h(9, "admin"))

    assert r.status_code == 200
    db.expire_all()
    assert db.get(User, 51).role == "faculty"
