import asyncio

import httpx
import pytest

from learnix_lab.completion import (
    CompletionGateError,
    CompletionState,
    ContentMeasured,
    LessonChanged,
    LessonCompletionGate,
    QuizProbeResolved,
    ScrollMeasured,
    can_mark_complete,
    reduce,
)
from learnix_lab.progress import ApiError, LearnixApiClient, ProgressStore

from conftest import API_URL


def _after(*events, state=None):
    state = state or CompletionState(lesson_id="l1")
    for event in events:
        state = reduce(state, event)
    return state


def test_scroll_within_tolerance_satisfies_gate() -> None:
    state = _after(ScrollMeasured(scroll_top=950, client_height=600, scroll_height=1600))

    assert state.has_scrolled_to_bottom


def test_scroll_short_of_tolerance_keeps_gate_closed() -> None:
    state = _after(ScrollMeasured(scroll_top=900, client_height=600, scroll_height=1600))

    assert not state.has_scrolled_to_bottom


def test_scroll_flag_is_sticky_for_the_visit() -> None:
    state = _after(
        ScrollMeasured(scroll_top=1000, client_height=600, scroll_height=1600),
        ScrollMeasured(scroll_top=0, client_height=600, scroll_height=1600),
    )

    assert state.has_scrolled_to_bottom


def test_short_content_counts_as_scrolled() -> None:
    assert _after(ContentMeasured(content_height=640, viewport_height=600)).has_scrolled_to_bottom
    assert not _after(ContentMeasured(content_height=700, viewport_height=600)).has_scrolled_to_bottom


def test_lesson_change_rearms_every_flag() -> None:
    state = _after(
        ScrollMeasured(scroll_top=1000, client_height=600, scroll_height=1600),
        QuizProbeResolved("l1", question_count=3),
        LessonChanged("l2"),
    )

    assert state == CompletionState(lesson_id="l2")


def test_events_for_previous_lesson_are_ignored() -> None:
    state = _after(
        LessonChanged("l2"),
        QuizProbeResolved("l1", question_count=2),
        ContentMeasured(content_height=100, viewport_height=600, lesson_id="l1"),
    )

    assert state == CompletionState(lesson_id="l2")


def test_quiz_with_no_questions_is_no_quiz() -> None:
    state = _after(QuizProbeResolved("l1", question_count=0))

    assert state.quiz_probe_resolved
    assert not state.has_quiz


def test_reduce_rejects_unknown_events() -> None:
    with pytest.raises(TypeError):
        reduce(CompletionState(lesson_id="l1"), object())  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("scrolled", "has_quiz", "completed", "pending", "expected"),
    [
        (True, False, False, False, True),
        (False, False, False, False, False),
        (True, True, False, False, False),
        (True, False, False, True, False),
        (False, True, True, False, True),
        (False, False, True, True, True),
    ],
)
def test_can_mark_complete_truth_table(scrolled, has_quiz, completed, pending, expected) -> None:
    state = CompletionState(lesson_id="l1", has_scrolled_to_bottom=scrolled, has_quiz=has_quiz)

    assert can_mark_complete(state, is_already_completed=completed, is_mutation_pending=pending) is expected


class _RecordingNotifier:
    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class _Course:
    """Fake course state behind the enrollment and completion routes."""

    def __init__(self, backend, course_id: str = "c1") -> None:
        self.completed: list[str] = []
        self.fail_completion = False
        backend.route("GET", f"/courses/{course_id}/enrollment", self._enrollment)
        for lesson in ("l1", "l2", "l3"):
            backend.route("POST", f"/courses/{course_id}/lessons/{lesson}/complete", self._complete(lesson))
        backend.route(
            "GET",
            "/quizzes/by-lesson/l2",
            httpx.Response(200, json={"id": "q1", "title": "Loops", "questions": [{"id": "a"}, {"id": "b"}]}),
        )
        backend.route("GET", "/quizzes/by-lesson/l3", httpx.Response(200, json={"id": "q2", "questions": []}))

    def _enrollment(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "isEnrolled": True,
                "hasAccess": True,
                "progress": {"completedLessonIds": list(self.completed)},
            },
        )

    def _complete(self, lesson_id: str):
        def _handler(request: httpx.Request) -> httpx.Response:
            if self.fail_completion:
                return httpx.Response(500, json={"message": "Database unavailable"})
            if lesson_id not in self.completed:
                self.completed.append(lesson_id)
            return httpx.Response(201, json={"lessonId": lesson_id})

        return _handler


def _gate(backend, settings, notifier=None):
    api = LearnixApiClient(API_URL, http_client=backend.client())
    store = ProgressStore(api)
    gate = LessonCompletionGate("c1", api=api, progress=store, notifier=notifier, settings=settings)
    return gate, store


def test_short_lesson_without_quiz_can_be_completed(backend, settings) -> None:
    course = _Course(backend)
    notifier = _RecordingNotifier()
    gate, store = _gate(backend, settings, notifier)

    async def _scenario() -> None:
        await store.get("c1")
        gate.activate("l1", measure=lambda: (400, 800))
        assert not gate.can_mark_complete
        await gate.wait_ready()
        assert gate.state.quiz_probe_resolved
        assert gate.can_mark_complete
        await gate.complete_manually()

    asyncio.run(_scenario())

    assert course.completed == ["l1"]
    assert notifier.successes == ["Lesson marked as complete!"]
    assert gate.is_completed
    assert gate.can_mark_complete


def test_long_lesson_requires_scrolling(backend, settings) -> None:
    _Course(backend)
    gate, _ = _gate(backend, settings, _RecordingNotifier())

    async def _scenario() -> None:
        gate.activate("l1", measure=lambda: (2400, 800))
        await gate.wait_ready()
        assert not gate.can_mark_complete
        with pytest.raises(CompletionGateError):
            await gate.complete_manually()
        gate.on_scroll(scroll_top=1560, client_height=800, scroll_height=2400)
        assert gate.can_mark_complete

    asyncio.run(_scenario())


def test_quiz_lesson_blocks_manual_completion(backend, settings) -> None:
    course = _Course(backend)
    gate, _ = _gate(backend, settings, _RecordingNotifier())

    async def _scenario() -> None:
        gate.activate("l2", measure=lambda: (100, 800))
        await gate.wait_ready()
        assert gate.state.has_quiz
        assert gate.state.has_scrolled_to_bottom
        assert not gate.can_mark_complete
        with pytest.raises(CompletionGateError):
            await gate.complete_manually()

    asyncio.run(_scenario())

    assert course.completed == []


def test_quiz_without_questions_does_not_gate(backend, settings) -> None:
    _Course(backend)
    gate, _ = _gate(backend, settings, _RecordingNotifier())

    async def _scenario() -> None:
        gate.activate("l3", measure=lambda: (100, 800))
        await gate.wait_ready()

    asyncio.run(_scenario())

    assert not gate.state.has_quiz
    assert gate.can_mark_complete


def test_quiz_pass_completes_without_gate_toast(backend, settings) -> None:
    course = _Course(backend)
    notifier = _RecordingNotifier()
    gate, _ = _gate(backend, settings, notifier)

    async def _scenario() -> None:
        gate.activate("l2")
        await gate.wait_ready()
        await gate.on_quiz_passed()

    asyncio.run(_scenario())

    assert course.completed == ["l2"]
    assert notifier.successes == []
    assert gate.is_completed


def test_exercise_pass_auto_completes_lessons_without_quiz(backend, settings) -> None:
    course = _Course(backend)
    gate, _ = _gate(backend, settings, _RecordingNotifier())

    async def _scenario() -> None:
        gate.activate("l2")
        await gate.wait_ready()
        await gate.on_exercise_passed()
        gate.activate("l1")
        await gate.wait_ready()
        await gate.on_exercise_passed()

    asyncio.run(_scenario())

    assert course.completed == ["l1"]


def test_switching_lessons_resets_state_of_completed_lesson(backend, settings) -> None:
    course = _Course(backend)
    course.completed = ["l1"]
    gate, store = _gate(backend, settings, _RecordingNotifier())

    async def _scenario() -> None:
        await store.get("c1")
        gate.activate("l1", measure=lambda: (100, 800))
        await gate.wait_ready()
        assert gate.is_completed
        gate.activate("l2")
        assert gate.state == CompletionState(lesson_id="l2")
        gate.activate("l1")

    asyncio.run(_scenario())

    assert not gate.state.has_scrolled_to_bottom
    assert gate.is_completed
    assert gate.can_mark_complete


def test_manual_completion_of_completed_lesson_is_a_no_op(backend, settings) -> None:
    course = _Course(backend)
    course.completed = ["l1"]
    gate, store = _gate(backend, settings, _RecordingNotifier())

    async def _scenario() -> None:
        await store.get("c1")
        gate.activate("l1")
        await gate.wait_ready()
        await gate.complete_manually()

    asyncio.run(_scenario())

    assert backend.count(f"{API_URL}/courses/c1/lessons/l1/complete", method="POST") == 0


def test_failed_completion_shows_error_and_clears_pending(backend, settings) -> None:
    course = _Course(backend)
    course.fail_completion = True
    notifier = _RecordingNotifier()
    gate, _ = _gate(backend, settings, notifier)

    async def _scenario() -> None:
        gate.activate("l1", measure=lambda: (100, 800))
        await gate.wait_ready()
        with pytest.raises(ApiError, match="Database unavailable"):
            await gate.complete_manually()

    asyncio.run(_scenario())

    assert notifier.errors == ["Failed to mark lesson as complete: Database unavailable"]
    assert notifier.successes == []
    assert not gate.is_mutation_pending
    assert gate.can_mark_complete


def test_gate_is_disabled_while_completion_is_in_flight(backend, settings) -> None:
    _Course(backend)
    gate, _ = _gate(backend, settings, _RecordingNotifier())
    observed: list[bool] = []

    async def _scenario() -> None:
        gate.activate("l1", measure=lambda: (100, 800))
        await gate.wait_ready()
        request = asyncio.ensure_future(gate.complete_manually())
        await asyncio.sleep(0)
        observed.append(gate.is_mutation_pending)
        observed.append(gate.can_mark_complete)
        await request

    asyncio.run(_scenario())

    assert observed == [True, False]
    assert not gate.is_mutation_pending


def test_quiz_probe_failure_counts_as_no_quiz(backend, settings) -> None:
    _Course(backend)
    backend.route("GET", "/quizzes/by-lesson/l1", httpx.Response(503, json={"message": "Down"}))
    gate, _ = _gate(backend, settings, _RecordingNotifier())

    async def _scenario() -> None:
        gate.activate("l1", measure=lambda: (100, 800))
        await gate.wait_ready()

    asyncio.run(_scenario())

    assert gate.state.quiz_probe_resolved
    assert not gate.state.has_quiz


def test_late_probe_of_previous_lesson_is_discarded(backend, settings) -> None:
    _Course(backend)
    gate, _ = _gate(backend, settings, _RecordingNotifier())

    async def _scenario() -> None:
        gate.activate("l2")
        gate.activate("l1")
        gate.dispatch(QuizProbeResolved("l2", question_count=2))
        await gate.wait_ready()

    asyncio.run(_scenario())

    assert gate.state.lesson_id == "l1"
    assert not gate.state.has_quiz


def test_mark_complete_without_lesson_is_rejected(backend, settings) -> None:
    gate, _ = _gate(backend, settings)

    with pytest.raises(CompletionGateError):
        asyncio.run(gate.mark_complete())
