from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from .bridge import ExecutionBridge
from .diagnostics import ErrorMarker, extract_error_markers
from .execution.types import ExecutionResult
from .progress import ApiError

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Execution cancelled"


class RunInProgressError(RuntimeError):
    """Raised when Run is pressed while the same editor is still running."""


@dataclass(slots=True)
class RunOutcome:
    """What the IDE panel shows after a run.

    Example:
        ```python
        outcome = RunOutcome(status="success", result=ExecutionResult(stdout="4\\n", stderr=""))
        ```
    """

    status: str
    result: ExecutionResult
    markers: list[ErrorMarker] = field(default_factory=list)


class IdeSession:
    """Host-side state of one lesson editor: one run at a time, one live preview.

    Example:
        ```python
        session = IdeSession(bridge, language="python", expected_output="4", on_success=gate.on_exercise_passed)
        outcome = await session.run("print(2 + 2)")
        ```
    """

    def __init__(
        self,
        bridge: ExecutionBridge,
        *,
        language: str,
        expected_output: str | None = None,
        on_success: Callable[[], Awaitable[Any] | Any] | None = None,
    ) -> None:
        """Bind the session to a bridge and a lesson exercise.

        Example:
            ```python
            session = IdeSession(bridge, language="react")
            ```
        """
        self._bridge = bridge
        self.language = language
        self.expected_output = expected_output
        self._on_success = on_success
        self._task: asyncio.Task[ExecutionResult] | None = None
        self._stop_requested = False
        self._last: ExecutionResult | None = None

    @property
    def is_running(self) -> bool:
        """Return True while a run is in flight; the Run control is disabled then.

        Example:
            ```python
            session.is_running
            ```
        """
        return self._task is not None and not self._task.done()

    @property
    def last_result(self) -> ExecutionResult | None:
        """Return the result currently shown, if any.

        Example:
            ```python
            session.last_result
            ```
        """
        return self._last

    async def run(self, code: str, stdin: str = "") -> RunOutcome:
        """Run code, replacing the previous preview, and grade the output.

        Example:
            ```python
            outcome = await session.run("console.log('hi')")
            ```
        """
        if self.is_running:
            raise RunInProgressError("A run is already in progress for this editor")
        self._release_preview()
        self._stop_requested = False
        self._task = asyncio.ensure_future(self._bridge.execute(self.language, code, stdin))
        try:
            result = await self._task
        except asyncio.CancelledError:
            if not self._stop_requested:
                raise
            logger.info("Run stopped by user")
            return RunOutcome(status="cancelled", result=ExecutionResult.failure(CANCELLED_MESSAGE))
        finally:
            self._task = None

        self._last = result
        status = self._grade(result)
        if status == "success":
            await self._notify_success()
        return RunOutcome(
            status=status,
            result=result,
            markers=extract_error_markers(result.stderr, self.language),
        )

    def stop(self) -> bool:
        """Cancel the in-flight run; returns False when nothing was running.

        Example:
            ```python
            session.stop()
            ```
        """
        if not self.is_running or self._task is None:
            return False
        self._stop_requested = True
        self._task.cancel()
        return True

    def close(self) -> None:
        """Release the preview still on screen.

        Example:
            ```python
            session.close()
            ```
        """
        self._release_preview()

    async def _notify_success(self) -> None:
        """Call the success hook; a failing completion request does not fail the run.

        Example:
            ```python
            await session._notify_success()
            ```
        """
        if self._on_success is None:
            return
        try:
            outcome = self._on_success()
            if inspect.isawaitable(outcome):
                await outcome
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning("Success hook failed after a passing run: %s", exc)

    def _grade(self, result: ExecutionResult) -> str:
        """Return `success` or `error` for a finished run.

        With an expected output the trimmed combined output must match it;
        otherwise any error output fails the run.

        Example:
            ```python
            status = session._grade(ExecutionResult(stdout="4\\n", stderr=""))
            ```
        """
        if self.expected_output is not None:
            matched = result.combined_output() == self.expected_output.strip()
            return "success" if matched else "error"
        return "success" if result.ok else "error"

    def _release_preview(self) -> None:
        """Free the previous run's component handle or preview URL.

        Example:
            ```python
            session._release_preview()
            ```
        """
        last = self._last
        if last is None:
            return
        if last.component is not None:
            last.component.release()
        if last.iframe_src is not None:
            previews = getattr(self._bridge.client_engine, "previews", None)
            if previews is not None:
                previews.revoke(last.iframe_src)
        self._last = None
