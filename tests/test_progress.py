import asyncio

import httpx
import pytest

from learnix_lab.progress import ApiError, Enrollment, LearnixApiClient, ProgressStore

from conftest import API_URL


def test_enrollment_payload_is_parsed() -> None:
    enrollment = Enrollment.from_payload(
        {
            "isEnrolled": True,
            "hasAccess": True,
            "isInstructor": False,
            "isAdmin": True,
            "progress": {"completedLessonIds": ["l1", 7]},
        }
    )

    assert enrollment.is_enrolled
    assert enrollment.is_admin
    assert enrollment.completed_lesson_ids == ["l1", "7"]


def test_enrollment_without_progress_has_no_completed_lessons() -> None:
    enrollment = Enrollment.from_payload({"isEnrolled": False, "hasAccess": False, "progress": None})

    assert enrollment.completed_lesson_ids == []


def test_bearer_token_is_sent(backend) -> None:
    backend.route("GET", "/courses/c1/enrollment", httpx.Response(200, json={"isEnrolled": True}))
    api = LearnixApiClient(API_URL, http_client=backend.client(), token="jwt-token")

    asyncio.run(api.get_enrollment("c1"))

    assert backend.requests[-1].headers["Authorization"] == "Bearer jwt-token"


def test_missing_quiz_is_none(backend) -> None:
    api = LearnixApiClient(API_URL, http_client=backend.client())

    assert asyncio.run(api.get_quiz_by_lesson("l9")) is None


def test_quiz_questions_are_counted(backend) -> None:
    backend.route(
        "GET",
        "/quizzes/by-lesson/l1",
        httpx.Response(200, json={"id": "q1", "title": "Basics", "questions": [{"id": "a"}, {"id": "b"}, {"id": "c"}]}),
    )
    api = LearnixApiClient(API_URL, http_client=backend.client())

    quiz = asyncio.run(api.get_quiz_by_lesson("l1"))

    assert quiz is not None
    assert quiz.title == "Basics"
    assert quiz.question_count == 3


def test_api_error_carries_status_and_message(backend) -> None:
    backend.route("POST", "/courses/c1/lessons/l1/complete", httpx.Response(403, json={"message": "Not enrolled"}))
    api = LearnixApiClient(API_URL, http_client=backend.client())

    with pytest.raises(ApiError) as excinfo:
        asyncio.run(api.complete_lesson("c1", "l1"))

    assert excinfo.value.status_code == 403
    assert str(excinfo.value) == "Not enrolled"


def test_empty_api_url_is_rejected() -> None:
    with pytest.raises(ValueError):
        LearnixApiClient("  ")


def test_store_caches_until_invalidated(backend) -> None:
    completed: list[str] = []
    backend.route(
        "GET",
        "/courses/c1/enrollment",
        lambda request: httpx.Response(
            200,
            json={"isEnrolled": True, "hasAccess": True, "progress": {"completedLessonIds": list(completed)}},
        ),
    )
    store = ProgressStore(LearnixApiClient(API_URL, http_client=backend.client()))
    enrollment_url = f"{API_URL}/courses/c1/enrollment"

    async def _scenario() -> tuple[set[str], set[str], set[str]]:
        first = await store.completed_lesson_ids("c1")
        completed.append("l1")
        cached = await store.completed_lesson_ids("c1")
        store.invalidate("c1")
        assert store.is_stale("c1")
        refreshed = await store.completed_lesson_ids("c1")
        return first, cached, refreshed

    first, cached, refreshed = asyncio.run(_scenario())

    assert first == set()
    assert cached == set()
    assert refreshed == {"l1"}
    assert backend.count(enrollment_url) == 2
    assert not store.is_stale("c1")


def test_peek_never_fetches(backend) -> None:
    store = ProgressStore(LearnixApiClient(API_URL, http_client=backend.client()))

    assert store.peek("c1") is None
    assert store.is_stale("c1")
    assert backend.requests == []
