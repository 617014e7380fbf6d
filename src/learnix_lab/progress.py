from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """Raised when the Learnix API answers with a non-success status.

    Example:
        ```python
        raise ApiError(403, "Not enrolled in this course")
        ```
    """

    def __init__(self, status_code: int, message: str) -> None:
        """Store the status code next to the message.

        Example:
            ```python
            err = ApiError(404, "Lesson not found")
            ```
        """
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class Enrollment:
    """Enrollment and progress of the current user in one course.

    Example:
        ```python
        enrollment = Enrollment(is_enrolled=True, has_access=True, completed_lesson_ids=["l1"])
        ```
    """

    is_enrolled: bool
    has_access: bool
    completed_lesson_ids: list[str] = field(default_factory=list)
    is_instructor: bool = False
    is_admin: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Enrollment":
        """Build an enrollment from the API's camelCase JSON.

        Example:
            ```python
            enrollment = Enrollment.from_payload({"isEnrolled": True, "hasAccess": True, "progress": None})
            ```
        """
        progress = payload.get("progress") or {}
        return cls(
            is_enrolled=bool(payload.get("isEnrolled", False)),
            has_access=bool(payload.get("hasAccess", False)),
            completed_lesson_ids=[str(item) for item in progress.get("completedLessonIds", [])],
            is_instructor=bool(payload.get("isInstructor", False)),
            is_admin=bool(payload.get("isAdmin", False)),
        )


@dataclass(slots=True)
class Quiz:
    """Quiz attached to a lesson, reduced to what the completion gate needs.

    Example:
        ```python
        quiz = Quiz(id="q1", title="Loops", question_ids=["a", "b"])
        ```
    """

    id: str
    title: str
    question_ids: list[str] = field(default_factory=list)

    @property
    def question_count(self) -> int:
        """Return the number of questions.

        Example:
            ```python
            quiz.question_count
            ```
        """
        return len(self.question_ids)


class LearnixApiClient:
    """Thin async client for the course and quiz endpoints.

    Example:
        ```python
        api = LearnixApiClient("http://localhost:3000/api", token="jwt")
        enrollment = await api.get_enrollment("course-1")
        ```
    """

    def __init__(
        self,
        api_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        token: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize the client with a base URL and optional bearer token.

        Example:
            ```python
            api = LearnixApiClient("https://learnix.example/api", http_client=client)
            ```
        """
        cleaned = api_url.strip().rstrip("/")
        if not cleaned:
            raise ValueError("LearnixApiClient requires a non-empty 'api_url'")
        self._api_url = cleaned
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.AsyncClient()

    async def get_enrollment(self, course_id: str) -> Enrollment:
        """Fetch enrollment and progress for a course.

        Example:
            ```python
            enrollment = await api.get_enrollment("course-1")
            ```
        """
        response = await self._request("GET", f"/courses/{course_id}/enrollment")
        return Enrollment.from_payload(response.json())

    async def complete_lesson(self, course_id: str, lesson_id: str) -> dict[str, Any]:
        """Record a lesson as completed for the current user.

        Example:
            ```python
            await api.complete_lesson("course-1", "lesson-3")
            ```
        """
        response = await self._request("POST", f"/courses/{course_id}/lessons/{lesson_id}/complete")
        if not response.content:
            return {}
        return response.json()

    async def get_quiz_by_lesson(self, lesson_id: str) -> Quiz | None:
        """Return the lesson's quiz, or None when the lesson has none.

        Example:
            ```python
            quiz = await api.get_quiz_by_lesson("lesson-3")
            ```
        """
        try:
            response = await self._request("GET", f"/quizzes/by-lesson/{lesson_id}")
        except ApiError as exc:
            if exc.status_code == 404:
                return None
            raise
        if not response.content:
            return None
        payload = response.json()
        if not payload:
            return None
        return Quiz(
            id=str(payload.get("id", "")),
            title=str(payload.get("title", "")),
            question_ids=[str(q.get("id", "")) for q in payload.get("questions") or []],
        )

    async def _request(self, method: str, path: str) -> httpx.Response:
        """Send one request and raise `ApiError` on a non-success status.

        Example:
            ```python
            response = await api._request("GET", "/courses/c1/enrollment")
            ```
        """
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        response = await self._client.request(
            method,
            f"{self._api_url}{path}",
            headers=headers,
            timeout=self._timeout_seconds,
        )
        if not response.is_success:
            raise ApiError(response.status_code, _api_message(response))
        return response

    async def aclose(self) -> None:
        """Close the HTTP client when this object created it.

        Example:
            ```python
            await api.aclose()
            ```
        """
        if self._owns_client:
            await self._client.aclose()


def _api_message(response: httpx.Response) -> str:
    """Extract the `message` field of an error body.

    Example:
        ```python
        msg = _api_message(httpx.Response(404, json={"message": "Lesson not found"}))
        ```
    """
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return f"Request failed with status {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Request failed with status {response.status_code}"


class ProgressStore:
    """Cached enrollment data keyed by course, refreshed after invalidation.

    Example:
        ```python
        store = ProgressStore(api)
        done = await store.completed_lesson_ids("course-1")
        ```
    """

    def __init__(self, api: LearnixApiClient) -> None:
        """Initialize an empty cache in front of `api`.

        Example:
            ```python
            store = ProgressStore(api)
            ```
        """
        self._api = api
        self._cache: dict[str, Enrollment] = {}
        self._stale: set[str] = set()

    async def get(self, course_id: str) -> Enrollment:
        """Return enrollment data, fetching it when missing or invalidated.

        Example:
            ```python
            enrollment = await store.get("course-1")
            ```
        """
        cached = self._cache.get(course_id)
        if cached is not None and course_id not in self._stale:
            return cached
        enrollment = await self._api.get_enrollment(course_id)
        self._cache[course_id] = enrollment
        self._stale.discard(course_id)
        return enrollment

    def peek(self, course_id: str) -> Enrollment | None:
        """Return the cached enrollment without any I/O.

        Example:
            ```python
            store.peek("course-1")
            ```
        """
        return self._cache.get(course_id)

    def invalidate(self, course_id: str) -> None:
        """Mark a course's data stale so the next `get` refetches it.

        Example:
            ```python
            store.invalidate("course-1")
            ```
        """
        logger.debug("Invalidating progress for course %s", course_id)
        self._stale.add(course_id)

    def is_stale(self, course_id: str) -> bool:
        """Return True when the course has no fresh cached data.

        Example:
            ```python
            store.is_stale("course-1")
            ```
        """
        return course_id not in self._cache or course_id in self._stale

    async def completed_lesson_ids(self, course_id: str) -> set[str]:
        """Return the ids of lessons the user has completed.

        Example:
            ```python
            done = await store.completed_lesson_ids("course-1")
            ```
        """
        return set((await self.get(course_id)).completed_lesson_ids)
