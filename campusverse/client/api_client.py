"""Thin async client for the quiz-taking endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from campusverse.core.config import settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error envelope returned by the server."""

    def __init__(self, status: int, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.status = int(status)
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{status} {code}: {message}")

    @property
    def retryable(self) -> bool:
        return self.status >= 500


class QuizApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        user_id: Optional[int] = None,
        role: str = "student",
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        read_retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers: Dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if user_id is not None:
            headers["X-User-Id"] = str(user_id)
            headers["X-User-Role"] = role

        self.read_retries = max(0, int(read_retries))
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/api",
            headers=headers,
            timeout=timeout or settings.CLIENT_HTTP_TIMEOUT_SEC,
            transport=transport,
        )

    async def __aenter__(self) -> "QuizApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, json: Any = None, retries: int = 0) -> Any:
        for attempt in range(retries + 1):
            try:
                resp = await self._client.request(method, path, json=json)
                break
            except httpx.TransportError as exc:
                if attempt >= retries:
                    raise
                logger.warning("%s %s failed (%s), retrying", method, path, exc)

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            error = (body or {}).get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                raise ApiError(resp.status_code, str(error.get("code")), str(error.get("message")), error.get("details"))
            raise ApiError(resp.status_code, "HTTP_ERROR", resp.text or resp.reason_phrase)

        return body.get("data") if isinstance(body, dict) else body

    # Reads are safe to repeat

    async def get_quiz(self, quiz_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/quizzes/{quiz_id}", retries=self.read_retries)

    async def quiz_status(self, quiz_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/quizzes/{quiz_id}/status", retries=self.read_retries)

    async def verify_code(self, code: str) -> Dict[str, Any]:
        return await self._request("POST", "/quizzes/verify-code", json={"code": code}, retries=self.read_retries)

    # Writes are sent once; callers own the retry policy

    async def start(self, quiz_id: int) -> Dict[str, Any]:
        return await self._request("POST", f"/quizzes/{quiz_id}/start")

    async def submit(
        self,
        quiz_id: int,
        answers: List[Dict[str, Any]],
        *,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        payload = {
            "answers": answers,
            "start_time": start_time.isoformat() if start_time else None,
            "end_time": end_time.isoformat() if end_time else None,
        }
        return await self._request("POST", f"/quizzes/{quiz_id}/attempt", json=payload)
