from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from py_mini_racer import JSTimeoutException, MiniRacer

from .resources import ScriptLoadError
from .sandbox import HARNESS_SOURCE, EvaluationTimeoutError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScriptTag:
    """Record of a script injected into the page head.

    Example:
        ```python
        tag = ScriptTag(url="https://cdn.jsdelivr.net/npm/uuid@8.3.2/dist/umd/uuid.min.js", loaded=True)
        ```
    """

    url: str
    loaded: bool


class BrowserPage:
    """Long-lived JavaScript page that client-side runs share.

    Globals defined by injected scripts persist across runs, exactly like
    `window` bindings in a browser tab. This is a same-privilege environment:
    user code can see and modify everything the page holds.

    Example:
        ```python
        page = BrowserPage()
        page.install_host_bindings(react_source, react_dom_source)
        ```
    """

    def __init__(self, context: MiniRacer | None = None) -> None:
        """Create the V8 context and install the Learnix harness.

        Example:
            ```python
            page = BrowserPage()
            ```
        """
        self._ctx = context if context is not None else MiniRacer()
        self.head: list[ScriptTag] = []
        self._ctx.eval(HARNESS_SOURCE)

    def evaluate(self, source: str) -> Any:
        """Evaluate raw JavaScript in the page's global scope.

        Example:
            ```python
            page.evaluate("var React = {version: 'stub'};")
            ```
        """
        return self._ctx.eval(source)

    def call(self, function: str, *args: Any, timeout_seconds: float | None = None) -> Any:
        """Call a harness function with JSON-encoded arguments.

        With `timeout_seconds` V8 terminates the call once the limit passes and
        `EvaluationTimeoutError` is raised.

        Example:
            ```python
            raw = page.call("run", "console.log(1)", {}, timeout_seconds=5)
            ```
        """
        arg_source = ", ".join(json.dumps(arg) for arg in args)
        source = f"__learnix.{function}({arg_source})"
        if timeout_seconds is None:
            return self._ctx.eval(source)
        try:
            return self._ctx.eval(source, timeout=int(timeout_seconds * 1000))
        except JSTimeoutException as exc:
            logger.warning("Page call %s timed out after %ss", function, timeout_seconds)
            raise EvaluationTimeoutError(f"{function} timed out after {timeout_seconds}s") from exc

    def has_global(self, name: str) -> bool:
        """Return True when the page defines a global binding `name`.

        Example:
            ```python
            page.has_global("Babel")
            ```
        """
        return bool(self.call("hasGlobal", name))

    def inject_script(self, url: str, source: str) -> ScriptTag:
        """Append a script tag and evaluate its source in global scope.

        Example:
            ```python
            page.inject_script("https://cdn.example/uuid.js", "var uuid = {};")
            ```
        """
        error = self.call("load", source)
        tag = ScriptTag(url=url, loaded=not error)
        self.head.append(tag)
        if error:
            raise ScriptLoadError(f"Failed to load script {url}: {error}")
        logger.debug("Loaded script %s", url)
        return tag

    def install_host_bindings(self, react_source: str, react_dom_source: str) -> None:
        """Provide the `React` and `ReactDOM` globals the hosting application owns.

        Example:
            ```python
            page.install_host_bindings(react_umd, react_dom_umd)
            ```
        """
        self.inject_script("host:react", react_source)
        self.inject_script("host:react-dom", react_dom_source)

    def release_component(self, handle_id: str) -> bool:
        """Drop a stored component; returns False when it was already gone.

        Example:
            ```python
            page.release_component("preview-1")
            ```
        """
        return bool(self.call("release", handle_id))

    def component_count(self) -> int:
        """Return how many exported components the page still holds.

        Example:
            ```python
            live = page.component_count()
            ```
        """
        return int(self.call("previewCount"))

    def close(self) -> None:
        """Dispose of the V8 context.

        Example:
            ```python
            page.close()
            ```
        """
        self._ctx.close()

    def __enter__(self) -> "BrowserPage":
        """Return the page for use as a context manager.

        Example:
            ```python
            with BrowserPage() as page: ...
            ```
        """
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Close the page on context exit.

        Example:
            ```python
            with BrowserPage() as page: ...
            ```
        """
        self.close()
