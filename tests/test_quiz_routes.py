from __future__ import annotations

from datetime import datetime, timedelta, timezone

from campusverse.models.quiz_attempt import QuizAttempt


def _h(user_id: int, role: str = "student") -> dict:
    return {"X-User-Id": str(user_id), "X-User-Role": role}


def _quiz_body(**overrides):
    now = datetime.now(timezone.utc)
    body = {
        "title": "Sorting",
        "course_id": 1,
        "branch": "CSE",
        "section": "A",
        "duration_minutes": 15,
        "passing_marks": 5,
        "start_date": (now - timedelta(minutes=5)).isoformat(),
        "end_date": (now + timedelta(hours=1)).isoformat(),
        "questions": [
            {"prompt": "Stable sort?", "options": ["quick", "merge", "heap", "shell"], "correct_option": 1, "marks": 5},
            {"prompt": "Best case of insertion sort?", "options": ["n", "n log n", "n^2", "1"], "correct_option": 0, "marks": 5},
        ],
    }
    body.update(overrides)
    return body


def test_health_uses_envelope(client):
    r = client.get("/api/health", headers={"X-Request-ID": "req-1"})
    assert r.status_code == 200
    assert r.json() == {"request_id": "req-1", "data": {"status": "ok"}, "error": None}
    assert r.headers["X-Request-ID"] == "req-1"


def test_missing_identity_is_401(client):
    r = client.get("/api/quizzes")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "NOT_AUTHENTICATED"


def test_create_quiz_and_fetch_as_student_hides_answers(client, course):
    r = client.post("/api/quizzes", json=_quiz_body(), headers=_h(1, "faculty"))
    assert r.status_code == 201, r.text
    created = r.json()["data"]
    assert created["total_marks"] == 10
    assert created["questions"][0]["correct_option"] == 1

    r = client.get(f"/api/quizzes/{created['id']}", headers=_h(2))
    data = r.json()["data"]
    assert r.status_code == 200
    assert "code" not in data
    assert all("correct_option" not in q for q in data["questions"])
    assert data["status"]["state"] == "open"
    assert data["status"]["label"] == "Start"


def test_students_cannot_create_quizzes(client, course):
    r = client.post("/api/quizzes", json=_quiz_body(), headers=_h(2))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"


def test_total_marks_mismatch_is_400(client, course):
    r = client.post("/api/quizzes", json=_quiz_body(total_marks=12), headers=_h(1, "faculty"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_request_shape_errors_are_400(client, course):
    body = _quiz_body()
    del body["questions"]
    r = client.post("/api/quizzes", json=body, headers=_h(1, "faculty"))
    assert r.status_code == 400
    err = r.json()["error"]
    assert err["code"] == "VALIDATION_ERROR"
    assert err["details"]["errors"]


def test_unknown_quiz_is_404(client, course):
    r = client.get("/api/quizzes/999", headers=_h(2))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_full_attempt_flow(client, make_quiz):
    quiz = make_quiz()

    r = client.post(f"/api/quizzes/{quiz.id}/start", headers=_h(2))
    assert r.status_code == 200
    assert 0 < r.json()["data"]["time_left_seconds"] <= 30 * 60

    answers = {"answers": [{"question": 0, "selected_option": 0}, {"question": 1, "selected_option": 0}]}
    r = client.post(f"/api/quizzes/{quiz.id}/attempt", json=answers, headers=_h(2))
    assert r.status_code == 201, r.text
    result = r.json()["data"]
    assert (result["score"], result["percentage"], result["passed"]) == (5, 50, True)

    r = client.post(f"/api/quizzes/{quiz.id}/attempt", json=answers, headers=_h(2))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "ALREADY_ATTEMPTED"

    r = client.get(f"/api/quizzes/{quiz.id}/status", headers=_h(2))
    assert r.json()["data"]["state"] == "completed"


def test_submission_after_window_is_403_and_not_stored(client, db, make_quiz):
    now = datetime.now(timezone.utc)
    quiz = make_quiz(start=now - timedelta(hours=2), end=now - timedelta(minutes=1))

    r = client.post(f"/api/quizzes/{quiz.id}/attempt", json={"answers": []}, headers=_h(2))

    assert r.status_code == 403
    assert r.json()["error"]["code"] == "WINDOW_CLOSED"
    assert db.query(QuizAttempt).count() == 0


def test_submission_to_cancelled_and_scheduled_quizzes(client, make_quiz):
    now = datetime.now(timezone.utc)
    cancelled = make_quiz(is_active=False)
    scheduled = make_quiz(start=now + timedelta(hours=1), end=now + timedelta(hours=2))

    r = client.post(f"/api/quizzes/{cancelled.id}/attempt", json={"answers": []}, headers=_h(2))
    assert (r.status_code, r.json()["error"]["code"]) == (403, "QUIZ_CANCELLED")

    r = client.post(f"/api/quizzes/{scheduled.id}/attempt", json={"answers": []}, headers=_h(2))
    assert (r.status_code, r.json()["error"]["code"]) == (403, "NOT_STARTED")


def test_verify_code_route(client, make_quiz):
    now = datetime.now(timezone.utc)
    make_quiz(code="OPEN42")
    make_quiz(code="PAST42", start=now - timedelta(hours=3), end=now - timedelta(hours=2))

    r = client.post("/api/quizzes/verify-code", json={"code": "open42"}, headers=_h(2))
    assert r.status_code == 200
    assert r.json()["data"]["valid"] is True

    r = client.post("/api/quizzes/verify-code", json={"code": "PAST42"}, headers=_h(2))
    assert r.status_code == 200
    assert r.json()["data"] == {"valid": False, "message": "Invalid or expired quiz code"}

    r = client.post("/api/quizzes/verify-code", json={"code": "??"}, headers=_h(2))
    assert r.status_code == 400


def test_student_listing_excludes_attempted(client, make_quiz):
    done = make_quiz()
    pending = make_quiz()
    client.post(f"/api/quizzes/{done.id}/attempt", json={"answers": []}, headers=_h(2))

    r = client.get("/api/quizzes", headers=_h(2))

    data = r.json()["data"]
    assert [q["id"] for q in data["items"]] == [pending.id]
    assert data["pagination"]["total"] == 1
    assert "questions" not in data["items"][0]


def test_results_are_newest_first_and_owner_only(client, db, make_user, make_quiz):
    make_user(2, admission_number="ADM002")
    make_user(3, admission_number="ADM003")
    quiz = make_quiz()
    client.post(f"/api/quizzes/{quiz.id}/attempt", json={"answers": [{"question": 0, "selected_option": 0}]}, headers=_h(2))
    client.post(f"/api/quizzes/{quiz.id}/attempt", json={"answers": []}, headers=_h(3))

    # Make the ordering independent of clock resolution
    first = db.query(QuizAttempt).filter(QuizAttempt.student_id == 2).one()
    first.submitted_at = first.submitted_at - timedelta(minutes=5)
    db.commit()

    r = client.get(f"/api/quizzes/{quiz.id}/results", headers=_h(1, "faculty"))
    assert r.status_code == 200
    rows = r.json()["data"]
    assert [row["student"]["id"] for row in rows] == [3, 2]
    assert rows[1]["student"]["admission_number"] == "ADM002"
    assert rows[1]["score"] == 5

    make_user(7, "faculty")
    r = client.get(f"/api/quizzes/{quiz.id}/results", headers=_h(7, "faculty"))
    assert r.status_code == 403


def test_student_history_is_private(client, make_quiz):
    quiz = make_quiz()
    client.post(f"/api/quizzes/{quiz.id}/attempt", json={"answers": []}, headers=_h(2))

    r = client.get("/api/students/2/quiz-attempts", headers=_h(2))
    assert r.status_code == 200
    assert r.json()["data"][0]["quiz"]["course"]["code"] == "CS201"

    r = client.get("/api/students/2/quiz-attempts", headers=_h(3))
    assert r.status_code == 403

    r = client.get("/api/students/3/quiz-attempts", headers=_h(3))
    assert r.json()["data"] == []


def test_update_locked_and_delete_refused_after_attempt(client, make_quiz):
    quiz = make_quiz()
    client.post(f"/api/quizzes/{quiz.id}/attempt", json={"answers": []}, headers=_h(2))

    r = client.put(f"/api/quizzes/{quiz.id}", json={"duration_minutes": 90}, headers=_h(1, "faculty"))
    assert (r.status_code, r.json()["error"]["code"]) == (409, "QUIZ_LOCKED")

    r = client.delete(f"/api/quizzes/{quiz.id}", headers=_h(1, "faculty"))
    assert (r.status_code, r.json()["error"]["code"]) == (409, "QUIZ_HAS_ATTEMPTS")

    r = client.post(f"/api/quizzes/{quiz.id}/cancel", headers=_h(1, "faculty"))
    assert r.json()["data"] == {"quiz_id": quiz.id, "is_active": False}


def test_generate_code_route(client, make_quiz):
    quiz = make_quiz(code="KEEP01")
    r = client.post(f"/api/quizzes/{quiz.id}/generate-code", headers=_h(1, "faculty"))
    assert r.status_code == 200
    assert r.json()["data"]["code"] != "KEEP01"


def test_cancelled_quiz_stays_cancelled_after_update(client, make_quiz):
    quiz = make_quiz()
    client.post(f"/api/quizzes/{quiz.id}/cancel", headers=_h(1, "faculty"))

    r = client.put(f"/api/quizzes/{quiz.id}", json={"is_active": True}, headers=_h(1, "faculty"))
    assert r.status_code == 200
    assert r.json()["data"]["is_active"] is False

    r = client.get(f"/api/quizzes/{quiz.id}/status", headers=_h(2))
    assert r.json()["data"]["state"] == "cancelled"
