from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Protocol, Union

import httpx

from .progress import ApiError, LearnixApiClient, ProgressStore
from .settings import LearnixSettings

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_PX = 50


class CompletionGateError(RuntimeError):
    """Raised when a manual completion is attempted while the gate is closed."""


@dataclass(frozen=True, slots=True)
class CompletionState:
    """Per-visit gating flags of the active lesson.

    Example:
        ```python
        state = CompletionState(lesson_id="lesson-1")
        ```
    """

    lesson_id: str | None
    has_scrolled_to_bottom: bool = False
    has_quiz: bool = False
    quiz_probe_resolved: bool = False


@dataclass(frozen=True, slots=True)
class LessonChanged:
    """The viewer switched to another lesson.

    Example:
        ```python
        event = LessonChanged("lesson-2")
        ```
    """

    lesson_id: str


@dataclass(frozen=True, slots=True)
class ScrollMeasured:
    """A scroll event reported the content's scroll geometry.

    Example:
        ```python
        event = ScrollMeasured(scroll_top=900, client_height=600, scroll_height=1520)
        ```
    """

    scroll_top: float
    client_height: float
    scroll_height: float
    lesson_id: str | None = None


@dataclass(frozen=True, slots=True)
class ContentMeasured:
    """Post-render measurement of content height against the viewport.

    Example:
        ```python
        event = ContentMeasured(content_height=400, viewport_height=600)
        ```
    """

    content_height: float
    viewport_height: float
    lesson_id: str | None = None


@dataclass(frozen=True, slots=True)
class QuizProbeResolved:
    """The quiz lookup for a lesson finished.

    Example:
        ```python
        event = QuizProbeResolved("lesson-1", question_count=0)
        ```
    """

    lesson_id: str
    question_count: int


CompletionEvent = Union[LessonChanged, ScrollMeasured, ContentMeasured, QuizProbeResolved]


def _is_stale(state: CompletionState, lesson_id: str | None) -> bool:
    """Return True when an event belongs to a lesson that is no longer active.

    Example:
        ```python
        _is_stale(CompletionState("a"), "b")  # True
        ```
    """
    return lesson_id is not None and lesson_id != state.lesson_id


def reduce(
    state: CompletionState,
    event: CompletionEvent,
    *,
    tolerance_px: float = DEFAULT_TOLERANCE_PX,
) -> CompletionState:
    """Apply one event to the gate state and return the new state.

    Switching lessons re-arms every flag, even for a lesson completed earlier.

    Example:
        ```python
        state = reduce(state, ScrollMeasured(scroll_top=950, client_height=600, scroll_height=1600))
        ```
    """
    if isinstance(event, LessonChanged):
        return CompletionState(lesson_id=event.lesson_id)
    if isinstance(event, ScrollMeasured):
        if _is_stale(state, event.lesson_id) or state.has_scrolled_to_bottom:
            return state
        if event.scroll_top + event.client_height >= event.scroll_height - tolerance_px:
            return replace(state, has_scrolled_to_bottom=True)
        return state
    if isinstance(event, ContentMeasured):
        if _is_stale(state, event.lesson_id) or state.has_scrolled_to_bottom:
            return state
        if event.content_height <= event.viewport_height + tolerance_px:
            return replace(state, has_scrolled_to_bottom=True)
        return state
    if isinstance(event, QuizProbeResolved):
        if _is_stale(state, event.lesson_id):
            return state
        return replace(state, has_quiz=event.question_count > 0, quiz_probe_resolved=True)
    raise TypeError(f"Unsupported completion event: {type(event).__name__}")


def can_mark_complete(
    state: CompletionState,
    *,
    is_already_completed: bool,
    is_mutation_pending: bool,
) -> bool:
    """Decide whether the mark-complete control is enabled.

    Example:
        ```python
        enabled = can_mark_complete(state, is_already_completed=False, is_mutation_pending=False)
        ```
    """
    return is_already_completed or (
        not is_mutation_pending and not state.has_quiz and state.has_scrolled_to_bottom
    )


class Notifier(Protocol):
    def success(self, message: str) -> None:
        """Show a success toast.

        Example:
            ```python
            notifier.success("Lesson marked as complete!")
            ```
        """
        ...

    def error(self, message: str) -> None:
        """Show an error toast.

        Example:
            ```python
            notifier.error("Failed to mark lesson as complete")
            ```
        """
        ...


class LogNotifier:
    """Notifier that writes toasts to the module logger.

    Example:
        ```python
        gate = LessonCompletionGate("course-1", api=api, progress=store, notifier=LogNotifier())
        ```
    """

    def success(self, message: str) -> None:
        """Log a success toast.

        Example:
            ```python
            LogNotifier().success("done")
            ```
        """
        logger.info(message)

    def error(self, message: str) -> None:
        """Log an error toast.

        Example:
            ```python
            LogNotifier().error("failed")
            ```
        """
        logger.error(message)


class LessonCompletionGate:
    """Decides when the active lesson may be marked complete, and marks it.

    Example:
        ```python
        gate = LessonCompletionGate("course-1", api=api, progress=store)
        gate.activate("lesson-1", measure=lambda: (400, 800))
        await gate.wait_ready()
        if gate.can_mark_complete:
            await gate.complete_manually()
        ```
    """

    def __init__(
        self,
        course_id: str,
        *,
        api: LearnixApiClient,
        progress: ProgressStore,
        notifier: Notifier | None = None,
        settings: LearnixSettings | None = None,
    ) -> None:
        """Create a gate for one course; no lesson is active yet.

        Example:
            ```python
            gate = LessonCompletionGate("course-1", api=api, progress=ProgressStore(api))
            ```
        """
        self.course_id = course_id
        self._api = api
        self._progress = progress
        self._notifier: Notifier = notifier if notifier is not None else LogNotifier()
        self._settings = settings if settings is not None else LearnixSettings()
        self.state = CompletionState(lesson_id=None)
        self._pending = False
        self._tasks: list[asyncio.Task[None]] = []

    def dispatch(self, event: CompletionEvent) -> CompletionState:
        """Apply an event to the gate and return the new state.

        Example:
            ```python
            gate.dispatch(ScrollMeasured(0, 600, 620))
            ```
        """
        self.state = reduce(self.state, event, tolerance_px=self._settings.scroll_tolerance_px)
        return self.state

    def activate(
        self,
        lesson_id: str,
        *,
        measure: Callable[[], tuple[float, float]] | None = None,
    ) -> None:
        """Switch to a lesson: re-arm the gate, probe its quiz, schedule the fit check.

        `measure` returns `(content_height, viewport_height)` after render.
        Must be called from a running event loop.

        Example:
            ```python
            gate.activate("lesson-2", measure=lambda: (1800, 700))
            ```
        """
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self.dispatch(LessonChanged(lesson_id))
        self._tasks.append(asyncio.ensure_future(self._probe_quiz(lesson_id)))
        if measure is not None:
            self._tasks.append(asyncio.ensure_future(self.check_initial_fit(measure, lesson_id=lesson_id)))

    async def wait_ready(self) -> None:
        """Wait for the quiz probe and the post-render check of the current lesson.

        Example:
            ```python
            await gate.wait_ready()
            ```
        """
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def on_scroll(self, scroll_top: float, client_height: float, scroll_height: float) -> CompletionState:
        """Feed a scroll event of the lesson content.

        Example:
            ```python
            gate.on_scroll(scroll_top=1000, client_height=600, scroll_height=1620)
            ```
        """
        return self.dispatch(
            ScrollMeasured(scroll_top, client_height, scroll_height, lesson_id=self.state.lesson_id)
        )

    async def check_initial_fit(
        self,
        measure: Callable[[], tuple[float, float]],
        *,
        lesson_id: str | None = None,
    ) -> None:
        """After the check window, satisfy the scroll gate for content that fits.

        Example:
            ```python
            await gate.check_initial_fit(lambda: (300, 800))
            ```
        """
        await asyncio.sleep(self._settings.initial_check_delay_seconds)
        content_height, viewport_height = measure()
        self.dispatch(ContentMeasured(content_height, viewport_height, lesson_id=lesson_id))

    @property
    def is_mutation_pending(self) -> bool:
        """Return True while a completion request is in flight.

        Example:
            ```python
            gate.is_mutation_pending
            ```
        """
        return self._pending

    @property
    def is_completed(self) -> bool:
        """Return True when cached progress lists the active lesson as completed.

        Example:
            ```python
            gate.is_completed
            ```
        """
        enrollment = self._progress.peek(self.course_id)
        if enrollment is None or self.state.lesson_id is None:
            return False
        return self.state.lesson_id in enrollment.completed_lesson_ids

    @property
    def can_mark_complete(self) -> bool:
        """Return whether the mark-complete control is enabled.

        Example:
            ```python
            gate.can_mark_complete
            ```
        """
        return can_mark_complete(
            self.state,
            is_already_completed=self.is_completed,
            is_mutation_pending=self._pending,
        )

    async def mark_complete(self, lesson_id: str | None = None, *, notify: bool = True) -> None:
        """Record completion remotely, then refresh cached progress.

        Failures show an error toast and propagate; there is no retry.

        Example:
            ```python
            await gate.mark_complete("lesson-1")
            ```
        """
        target = lesson_id or self.state.lesson_id
        if target is None:
            raise CompletionGateError("No active lesson to mark as complete")
        self._pending = True
        try:
            await self._api.complete_lesson(self.course_id, target)
        except (ApiError, httpx.HTTPError) as exc:
            self._notifier.error(f"Failed to mark lesson as complete: {exc}")
            raise
        finally:
            self._pending = False

        self._progress.invalidate(self.course_id)
        try:
            await self._progress.get(self.course_id)
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning("Progress refresh for course %s failed: %s", self.course_id, exc)
        if notify:
            self._notifier.success("Lesson marked as complete!")

    async def complete_manually(self) -> None:
        """Handle a click on the mark-complete button.

        Example:
            ```python
            await gate.complete_manually()
            ```
        """
        if self.state.has_quiz:
            raise CompletionGateError("This lesson is completed by passing its quiz")
        if self.is_completed:
            return
        if not self.can_mark_complete:
            raise CompletionGateError("Scroll to the end of the lesson before marking it complete")
        await self.mark_complete()

    async def on_quiz_passed(self) -> None:
        """Quiz success callback: complete without a toast of our own.

        Example:
            ```python
            await gate.on_quiz_passed()
            ```
        """
        await self.mark_complete(notify=False)

    async def on_exercise_passed(self) -> None:
        """IDE success callback: auto-complete lessons that have no quiz.

        Example:
            ```python
            session = IdeSession(bridge, language="python", on_success=gate.on_exercise_passed)
            ```
        """
        if self.state.has_quiz or self.is_completed:
            return
        await self.mark_complete()

    async def _probe_quiz(self, lesson_id: str) -> None:
        """Look up the lesson's quiz and record whether it has questions.

        Example:
            ```python
            await gate._probe_quiz("lesson-1")
            ```
        """
        try:
            quiz = await self._api.get_quiz_by_lesson(lesson_id)
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning("Quiz probe for lesson %s failed: %s", lesson_id, exc)
            quiz = None
        count = quiz.question_count if quiz is not None else 0
        self.dispatch(QuizProbeResolved(lesson_id, count))
