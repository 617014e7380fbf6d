from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .page import BrowserPage


@dataclass(slots=True)
class ExecutionRequest:
    """Normalized request sent to an execution engine.

    Example:
        ```python
        req = ExecutionRequest(language="python", code="print(1)", stdin="")
        ```
    """

    language: str
    code: str
    stdin: str = ""


@dataclass(frozen=True, slots=True)
class LibraryDescriptor:
    """Allow-listed module that can be provisioned from a CDN.

    Example:
        ```python
        lodash = LibraryDescriptor("lodash", "https://cdn.jsdelivr.net/npm/lodash@4.17.21/lodash.min.js", "_")
        ```
    """

    name: str
    url: str
    global_name: str


@dataclass(slots=True, eq=False)
class RenderableHandle:
    """Reference to a component exported by a client-side run.

    The component value itself stays inside the page; the handle only names it.

    Example:
        ```python
        handle = RenderableHandle(handle_id="preview-1", page=page)
        handle.release()
        ```
    """

    handle_id: str
    page: BrowserPage = field(repr=False)
    released: bool = False

    def release(self) -> None:
        """Drop the component from the page; safe to call twice.

        Example:
            ```python
            result.component.release()
            ```
        """
        if self.released:
            return
        self.page.release_component(self.handle_id)
        self.released = True


@dataclass(slots=True)
class ExecutionResult:
    """Normalized result returned by every execution path.

    Example:
        ```python
        out = ExecutionResult(stdout="a\\n", stderr="")
        ```
    """

    stdout: str
    stderr: str
    component: RenderableHandle | None = None
    iframe_src: str | None = None

    def __post_init__(self) -> None:
        """Reject results carrying both preview kinds.

        Example:
            ```python
            ExecutionResult(stdout="", stderr="", iframe_src="blob:learnix/1")
            ```
        """
        if self.component is not None and self.iframe_src is not None:
            raise ValueError("ExecutionResult carries either 'component' or 'iframe_src', not both")

    @property
    def ok(self) -> bool:
        """Return True when the run produced no error output.

        Example:
            ```python
            if result.ok: ...
            ```
        """
        return self.stderr == ""

    def combined_output(self) -> str:
        """Return stdout followed by stderr, trimmed, as the output pane shows it.

        Example:
            ```python
            text = result.combined_output()
            ```
        """
        return (self.stdout + self.stderr).strip()

    @classmethod
    def failure(cls, message: str, stdout: str = "") -> "ExecutionResult":
        """Build an error-only result.

        Example:
            ```python
            res = ExecutionResult.failure("Execution Error: Timeout")
            ```
        """
        return cls(stdout=stdout, stderr=message)
