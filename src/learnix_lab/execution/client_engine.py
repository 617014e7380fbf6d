from __future__ import annotations

import asyncio
import logging

import httpx

from ..settings import LearnixSettings
from .libraries import scan_imports
from .page import BrowserPage
from .previews import PREVIEW_STDOUT, PreviewRegistry, build_preview_document
from .resources import ResourceCache, ScriptLoadError
from .sandbox import TranspileError, invoke, transpile
from .types import ExecutionRequest, ExecutionResult, RenderableHandle

logger = logging.getLogger(__name__)


class ClientEngine:
    """Evaluate React/JSX code inside a shared in-process page.

    The transpiler and allow-listed libraries are fetched from their CDN
    URLs the first time a run needs them and stay loaded for later runs.

    Example:
        ```python
        engine = ClientEngine(page=page, settings=LearnixSettings())
        result = await engine.execute(ExecutionRequest(language="react", code=src))
        ```
    """

    def __init__(
        self,
        *,
        page: BrowserPage | None = None,
        settings: LearnixSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
        resources: ResourceCache | None = None,
        previews: PreviewRegistry | None = None,
    ) -> None:
        """Initialize the engine; the page is created lazily when not given.

        Example:
            ```python
            engine = ClientEngine(http_client=httpx.AsyncClient())
            ```
        """
        self._settings = settings if settings is not None else LearnixSettings()
        self._page = page
        self._owns_page = page is None
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.AsyncClient()
        self.resources = resources if resources is not None else ResourceCache()
        self.previews = previews if previews is not None else PreviewRegistry()

    @property
    def page(self) -> BrowserPage:
        """Return the page runs evaluate in, creating it on first use.

        Example:
            ```python
            engine.page.has_global("Babel")
            ```
        """
        if self._page is None:
            self._page = BrowserPage()
        return self._page

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Provision, transpile and invoke one run; errors land in `stderr`.

        Example:
            ```python
            result = await engine.execute(ExecutionRequest(language="react", code="console.log('a')"))
            ```
        """
        try:
            if self._settings.preview_mode == "frame":
                return self._frame_preview(request.code)
            return await self._evaluate(request.code)
        except (ScriptLoadError, TranspileError) as exc:
            return ExecutionResult.failure(str(exc))

    async def _evaluate(self, code: str) -> ExecutionResult:
        """Run the full client evaluation path for `code`.

        Example:
            ```python
            result = await engine._evaluate("export default () => null;")
            ```
        """
        settings = self._settings
        await self._ensure_script(settings.transpiler_global, settings.transpiler_url)

        detected = scan_imports(code, settings.libraries)
        if detected:
            await asyncio.gather(*(self._ensure_script(lib.global_name, lib.url) for lib in detected))

        compiled = transpile(
            self.page,
            code,
            transpiler_global=settings.transpiler_global,
            presets=settings.transpiler_presets,
            filename=settings.transpiler_filename,
            timeout_seconds=settings.eval_timeout_seconds,
        )
        outcome = invoke(
            self.page,
            compiled,
            settings.libraries,
            max_output_kb=settings.max_output_kb,
            timeout_seconds=settings.eval_timeout_seconds,
        )
        component = None
        if outcome.handle_id is not None:
            component = RenderableHandle(handle_id=outcome.handle_id, page=self.page)
        return ExecutionResult(stdout=outcome.stdout, stderr=outcome.stderr, component=component)

    def _frame_preview(self, code: str) -> ExecutionResult:
        """Build a standalone preview document and hand out its URL.

        Example:
            ```python
            result = engine._frame_preview("export default () => <h1>Hi</h1>;")
            ```
        """
        settings = self._settings
        document = build_preview_document(
            code,
            scan_imports(code, settings.libraries),
            allowed=list(settings.libraries.values()),
            transpiler_url=settings.transpiler_url,
            presets=settings.transpiler_presets,
            filename=settings.transpiler_filename,
        )
        return ExecutionResult(stdout=PREVIEW_STDOUT, stderr="", iframe_src=self.previews.create(document))

    async def _ensure_script(self, global_name: str, url: str) -> None:
        """Make sure `global_name` exists in the page, loading `url` at most once.

        Example:
            ```python
            await engine._ensure_script("uuid", "https://cdn.jsdelivr.net/npm/uuid@8.3.2/dist/umd/uuid.min.js")
            ```
        """
        if self.page.has_global(global_name):
            return
        if self.resources.is_loaded(global_name):
            # loaded earlier, then removed by user code
            self.resources.evict(global_name)
        await self.resources.ensure_loaded(global_name, lambda: self._load_script(url, global_name))

    async def _load_script(self, url: str, global_name: str) -> None:
        """Fetch a script and inject it into the page.

        Example:
            ```python
            await engine._load_script("https://unpkg.com/@babel/standalone/babel.min.js", "Babel")
            ```
        """
        logger.info("Fetching %s for global %s", url, global_name)
        try:
            response = await self._client.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ScriptLoadError(f"Failed to load script {url}: {exc}") from exc
        self.page.inject_script(url, response.text)
        if not self.page.has_global(global_name):
            raise ScriptLoadError(f"Script {url} did not define global '{global_name}'")

    async def aclose(self) -> None:
        """Release the HTTP client and page this engine created.

        Example:
            ```python
            await engine.aclose()
            ```
        """
        if self._owns_client:
            await self._client.aclose()
        if self._owns_page and self._page is not None:
            self._page.close()
            self._page = None
