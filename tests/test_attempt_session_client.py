from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from campusverse.client import ApiError, QuizApiClient, QuizAttemptSession, SubmitOutcome

QUIZ = {
    "id": 5,
    "title": "Graphs",
    "duration_minutes": 10,
    "questions": [
        {"index": 0, "prompt": "q0", "options": ["a", "b", "c", "d"], "marks": 1},
        {"index": 1, "prompt": "q1", "options": ["a", "b", "c", "d"], "marks": 1},
    ],
}


def _envelope(data=None, error=None):
    return {"request_id": "req-test", "data": data, "error": error}


class _Server:
    """Scripted responses for the quiz endpoints."""

    def __init__(self, *, time_left=600, submit_script=None, get_failures=0, status_script=None):
        self.time_left = time_left
        self.submit_script = list(submit_script or ["ok"])
        self.get_failures = get_failures
        self.status_script = list(status_script or [{"state": "open", "label": "Start"}])
        self.status_calls = 0
        self.submits = []
        self.get_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/api/quizzes/5":
            self.get_calls += 1
            if self.get_calls <= self.get_failures:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json=_envelope(QUIZ))
        if path == "/api/quizzes/5/status":
            self.status_calls += 1
            status = self.status_script.pop(0) if len(self.status_script) > 1 else self.status_script[0]
            return httpx.Response(200, json=_envelope(status))
        if path == "/api/quizzes/5/start":
            data = {"quiz_id": 5}
            if self.time_left is not None:
                data["time_left_seconds"] = self.time_left
            return httpx.Response(200, json=_envelope(data))
        if path == "/api/quizzes/5/attempt":
            self.submits.append(json.loads(request.content))
            step = self.submit_script.pop(0) if len(self.submit_script) > 1 else self.submit_script[0]
            if step == "drop":
                raise httpx.ConnectError("connection reset", request=request)
            if step == "ok":
                return httpx.Response(201, json=_envelope({"attempt_id": 1, "score": 1}))
            status, code = step
            return httpx.Response(status, json=_envelope(error={"code": code, "message": code.lower()}))
        return httpx.Response(404, json=_envelope(error={"code": "NOT_FOUND", "message": "no route"}))


async def _no_wait(_seconds):
    await asyncio.sleep(0)


def _client(server):
    return QuizApiClient("http://quiz.test", user_id=2, transport=httpx.MockTransport(server))


def test_timer_forces_exactly_one_submission():
    server = _Server(time_left=3)
    ticks = []

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5, sleep=_no_wait, on_tick=ticks.append)
            await session.open()
            session.select(0, 2)
            await session._timer
            again = await session.submit()
            return session, again

    session, again = asyncio.run(scenario())

    assert ticks == [2, 1, 0]
    assert len(server.submits) == 1
    assert server.submits[0]["answers"] == [
        {"question": 0, "selected_option": 2},
        {"question": 1, "selected_option": None},
    ]
    assert session.result.outcome == SubmitOutcome.submitted
    assert session.result.forced is True
    assert again is session.result


def test_countdown_falls_back_to_duration():
    server = _Server(time_left=None)

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5)
            await session.open()
            left = session.time_left
            await session.close()
            return left

    assert asyncio.run(scenario()) == 10 * 60


def test_manual_submit_stops_timer_and_is_not_repeated():
    server = _Server()

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5)
            await session.open()
            results = await asyncio.gather(session.submit(), session.submit())
            await asyncio.sleep(0)
            return session, results

    session, results = asyncio.run(scenario())

    assert len(server.submits) == 1
    assert results[0] is results[1]
    assert results[0].forced is False
    assert session.running is False


def test_transport_failures_are_retried_a_bounded_number_of_times():
    server = _Server(submit_script=["drop"])

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5, max_submit_retries=2, backoff_sec=0)
            await session.open()
            return await session.submit()

    result = asyncio.run(scenario())

    assert len(server.submits) == 3
    assert result.outcome == SubmitOutcome.failed
    assert isinstance(result.error, httpx.TransportError)


def test_server_failure_is_surfaced_and_retried_only_on_request():
    server = _Server(submit_script=[(503, "TRANSIENT_STORAGE_ERROR"), "ok"])

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5, max_submit_retries=3, backoff_sec=0)
            await session.open()
            first = await session.submit()
            sent_before_retry = len(server.submits)
            second = await session.submit()
            return first, sent_before_retry, second

    first, sent_before_retry, second = asyncio.run(scenario())

    assert first.outcome == SubmitOutcome.failed
    assert (first.error.status, first.error.code) == (503, "TRANSIENT_STORAGE_ERROR")
    assert sent_before_retry == 1
    assert second.outcome == SubmitOutcome.submitted
    assert len(server.submits) == 2


def test_open_counts_down_to_start_and_waits_for_server():
    scheduled = {"state": "scheduled", "label": "Not started", "seconds_until_start": 2}
    # Local countdown can finish a moment before the server clock agrees
    late = {"state": "scheduled", "label": "Not started", "seconds_until_start": 0}
    server = _Server(time_left=600, status_script=[scheduled, late, {"state": "open", "label": "Start"}])
    ticks = []

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5, sleep=_no_wait, on_tick=ticks.append)
            await session.open()
            running = session.running
            await session.close()
            return running

    assert asyncio.run(scenario()) is True
    assert ticks == [1, 0, 0]
    assert server.status_calls == 3
    assert server.submits == []


@pytest.mark.parametrize(
    "state, expected",
    [("cancelled", (403, "QUIZ_CANCELLED")), ("expired", (403, "WINDOW_CLOSED"))],
)
def test_open_reports_quiz_closed_during_wait(state, expected):
    scheduled = {"state": "scheduled", "label": "Not started", "seconds_until_start": 1}
    server = _Server(status_script=[scheduled, {"state": state, "label": state.title()}])

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5, sleep=_no_wait)
            with pytest.raises(ApiError) as exc:
                await session.open()
            return session, exc.value

    session, err = asyncio.run(scenario())

    assert (err.status, err.code) == expected
    assert session.running is False
    assert server.get_calls == 0


def test_already_attempted_after_lost_response_counts_as_recorded():
    server = _Server(submit_script=["drop", (409, "ALREADY_ATTEMPTED")])

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5, backoff_sec=0)
            await session.open()
            return await session.submit()

    result = asyncio.run(scenario())

    assert result.outcome == SubmitOutcome.already_recorded
    assert len(server.submits) == 2


def test_typed_rejection_is_not_retried():
    server = _Server(submit_script=[(403, "WINDOW_CLOSED")])

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5, backoff_sec=0)
            await session.open()
            return await session.submit()

    result = asyncio.run(scenario())

    assert len(server.submits) == 1
    assert result.outcome == SubmitOutcome.rejected
    assert isinstance(result.error, ApiError)
    assert (result.error.status, result.error.code) == (403, "WINDOW_CLOSED")


def test_close_cancels_timer_without_submitting():
    server = _Server(time_left=600)

    async def scenario():
        async with _client(server) as client:
            session = QuizAttemptSession(client, 5)
            await session.open()
            assert session.running
            await session.close()
            await session.close()
            return session

    session = asyncio.run(scenario())

    assert session.running is False
    assert session.result is None
    assert server.submits == []


def test_reads_are_retried_once():
    server = _Server(get_failures=1)

    async def scenario():
        async with _client(server) as client:
            return await client.get_quiz(5)

    assert asyncio.run(scenario())["id"] == 5
    assert server.get_calls == 2


def test_error_envelope_becomes_api_error():
    async def scenario():
        async with _client(_Server()) as client:
            try:
                await client.quiz_status(99)
            except ApiError as exc:
                return exc
        return None

    err = asyncio.run(scenario())
    assert (err.status, err.code, err.retryable) == (404, "NOT_FOUND", False)
