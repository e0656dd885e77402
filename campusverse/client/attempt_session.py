"""Client-side quiz-taking session.

The countdown is advisory: the server re-checks the window on every
submission. What this class guarantees is that one open quiz produces at
most one successful submit call, whether it comes from the student or from
the timer reaching zero.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from campusverse.client.api_client import ApiError, QuizApiClient
from campusverse.core.clock import utcnow
from campusverse.core.config import settings

logger = logging.getLogger(__name__)

# Error the server would give for a submit in each closed state
_UNAVAILABLE = {
    "completed": (409, "ALREADY_ATTEMPTED"),
    "cancelled": (403, "QUIZ_CANCELLED"),
    "expired": (403, "WINDOW_CLOSED"),
}


class SubmitOutcome(str, Enum):
    submitted = "submitted"
    # A retry after a lost response found the attempt already stored
    already_recorded = "already_recorded"
    rejected = "rejected"
    failed = "failed"


@dataclass
class SubmitResult:
    outcome: SubmitOutcome
    forced: bool = False
    data: Optional[Dict[str, Any]] = None
    error: Optional[BaseException] = None


class QuizAttemptSession:
    def __init__(
        self,
        client: QuizApiClient,
        quiz_id: int,
        *,
        max_submit_retries: Optional[int] = None,
        backoff_sec: Optional[float] = None,
        tick_sec: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.quiz_id = int(quiz_id)
        self.max_submit_retries = int(
            settings.CLIENT_SUBMIT_MAX_RETRIES if max_submit_retries is None else max_submit_retries
        )
        self.backoff_sec = float(settings.CLIENT_SUBMIT_BACKOFF_SEC if backoff_sec is None else backoff_sec)
        self.tick_sec = float(tick_sec)
        self.on_tick = on_tick
        self._sleep = sleep

        self.quiz: Optional[Dict[str, Any]] = None
        self.answers: Dict[int, Optional[int]] = {}
        self.time_left: int = 0
        self.start_time = None

        self._timer: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._result: Optional[SubmitResult] = None
        # Survives across sends: an earlier lost response may have been stored
        self._transport_failed = False

    @property
    def result(self) -> Optional[SubmitResult]:
        return self._result

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def wait_for_start(self) -> Dict[str, Any]:
        """Count down to the start time while the quiz is scheduled.

        Each tick goes to ``on_tick``. When the local countdown runs out the
        status is polled again, so the quiz is only treated as open once the
        server says so. Returns the last status seen, which may also be
        cancelled or expired if that happened during the wait.
        """
        while True:
            status = await self.client.quiz_status(self.quiz_id)
            if status.get("state") != "scheduled":
                return status

            remaining = max(1, int(status.get("seconds_until_start") or 0))
            logger.info("Quiz %s not started yet, %s seconds to go", self.quiz_id, remaining)
            while remaining > 0:
                await self._sleep(self.tick_sec)
                remaining -= 1
                if self.on_tick:
                    self.on_tick(remaining)

    async def open(self) -> Dict[str, Any]:
        """Wait for the start, register the server session and start the countdown.

        Raises ``ApiError`` with the server's code when the quiz ends up in a
        state that cannot be attempted.
        """
        status = await self.wait_for_start()
        state = status.get("state")
        if state != "open":
            status_code, code = _UNAVAILABLE.get(state, (403, "NOT_AVAILABLE"))
            raise ApiError(status_code, code, str(status.get("label") or state), details=status)

        self.quiz = await self.client.get_quiz(self.quiz_id)
        started = await self.client.start(self.quiz_id)

        seconds = started.get("time_left_seconds") if isinstance(started, dict) else None
        if seconds is None:
            seconds = int(self.quiz.get("duration_minutes") or 0) * 60
        self.time_left = max(0, int(seconds))
        self.start_time = utcnow()
        self.answers = {int(q["index"]): None for q in self.quiz.get("questions", [])}

        self._timer = asyncio.create_task(self._run_timer())
        logger.info("Quiz %s opened, %s seconds left", self.quiz_id, self.time_left)
        return self.quiz

    def select(self, question: int, option: Optional[int]) -> None:
        if self._result is not None and self._result.outcome != SubmitOutcome.failed:
            raise RuntimeError("Quiz already submitted")
        self.answers[int(question)] = option

    async def _run_timer(self) -> None:
        while self.time_left > 0:
            await self._sleep(self.tick_sec)
            self.time_left -= 1
            if self.on_tick:
                self.on_tick(self.time_left)
        logger.info("Quiz %s timer reached zero, submitting", self.quiz_id)
        await self._submit(forced=True)

    async def submit(self) -> SubmitResult:
        return await self._submit(forced=False)

    async def _submit(self, *, forced: bool) -> SubmitResult:
        async with self._lock:
            # A failed send may be retried by the student; anything else is final
            if self._result is not None and self._result.outcome != SubmitOutcome.failed:
                return self._result

            if not forced:
                self._cancel_timer()

            self._result = await self._send(forced)
            return self._result

    async def _send(self, forced: bool) -> SubmitResult:
        answers = [{"question": q, "selected_option": opt} for q, opt in sorted(self.answers.items())]
        end_time = utcnow()

        last_error: Optional[BaseException] = None
        for attempt in range(self.max_submit_retries + 1):
            try:
                data = await self.client.submit(
                    self.quiz_id, answers, start_time=self.start_time, end_time=end_time
                )
                return SubmitResult(SubmitOutcome.submitted, forced=forced, data=data)
            except httpx.TransportError as exc:
                self._transport_failed = True
                last_error = exc
            except ApiError as exc:
                if exc.code == "ALREADY_ATTEMPTED" and self._transport_failed:
                    return SubmitResult(SubmitOutcome.already_recorded, forced=forced, error=exc)
                if exc.retryable:
                    # Server-side failures are handed back for a manual retry, never resent here
                    logger.error("Quiz %s submission failed on the server: %s", self.quiz_id, exc.code)
                    return SubmitResult(SubmitOutcome.failed, forced=forced, error=exc)
                logger.warning("Quiz %s submission rejected: %s", self.quiz_id, exc.code)
                return SubmitResult(SubmitOutcome.rejected, forced=forced, error=exc)

            if attempt < self.max_submit_retries:
                delay = self.backoff_sec * (2 ** attempt)
                logger.warning("Quiz %s submission failed (%s), retry in %.1fs", self.quiz_id, last_error, delay)
                await self._sleep(delay)

        logger.error("Quiz %s submission failed after %s attempts", self.quiz_id, self.max_submit_retries + 1)
        return SubmitResult(SubmitOutcome.failed, forced=forced, error=last_error)

    def _cancel_timer(self) -> None:
        if self._timer is not None and self._timer is not asyncio.current_task() and not self._timer.done():
            self._timer.cancel()

    async def close(self) -> None:
        """Stop the countdown. Nothing is sent to the server."""
        timer = self._timer
        if timer is None:
            return
        if timer is not asyncio.current_task() and not timer.done():
            timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass
        self._timer = None
