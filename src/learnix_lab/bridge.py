from __future__ import annotations

import logging

import httpx

from .execution.capabilities import capabilities_for_language
from .execution.client_engine import ClientEngine
from .execution.engine import ExecutionEngine
from .execution.page import BrowserPage
from .execution.remote_engine import RemoteEngine
from .execution.types import ExecutionRequest, ExecutionResult
from .settings import LearnixSettings

logger = logging.getLogger(__name__)


class ExecutionBridge:
    """Route a (language, code, stdin) triple to the client or remote engine.

    `execute` never raises: every failure resolves to a result whose
    `stderr` describes it.

    Example:
        ```python
        bridge = ExecutionBridge(settings=LearnixSettings())
        result = await bridge.execute("python", "print(1)")
        ```
    """

    def __init__(
        self,
        *,
        settings: LearnixSettings | None = None,
        page: BrowserPage | None = None,
        http_client: httpx.AsyncClient | None = None,
        client_engine: ExecutionEngine | None = None,
        remote_engine: ExecutionEngine | None = None,
    ) -> None:
        """Build the bridge, sharing one HTTP client between both engines.

        Example:
            ```python
            bridge = ExecutionBridge(http_client=httpx.AsyncClient(transport=transport))
            ```
        """
        self.settings = settings if settings is not None else LearnixSettings()
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.AsyncClient()
        self.client_engine: ExecutionEngine = client_engine or ClientEngine(
            page=page,
            settings=self.settings,
            http_client=self._client,
        )
        self.remote_engine: ExecutionEngine = remote_engine or RemoteEngine(
            api_url=self.settings.api_url,
            timeout_seconds=self.settings.remote_timeout_seconds,
            http_client=self._client,
        )

    def engine_for(self, language: str) -> ExecutionEngine:
        """Return the engine serving `language`.

        Example:
            ```python
            engine = bridge.engine_for("react")
            ```
        """
        if capabilities_for_language(language).runs_in_page:
            return self.client_engine
        return self.remote_engine

    async def execute(self, language: str, code: str, stdin: str = "") -> ExecutionResult:
        """Execute code and always return a well-formed result.

        Example:
            ```python
            result = await bridge.execute("react", "console.log('a'); console.log('b');")
            ```
        """
        request = ExecutionRequest(language=language, code=code, stdin=stdin)
        caps = capabilities_for_language(language)
        if stdin and not caps.supports_stdin:
            logger.info("Ignoring stdin for language %r: it runs in the page", language)
        engine = self.engine_for(language)
        try:
            return await engine.execute(request)
        except Exception as exc:
            logger.exception("Engine %s failed unexpectedly", type(engine).__name__)
            return ExecutionResult.failure(f"{type(exc).__name__}: {exc}")

    async def aclose(self) -> None:
        """Release engines and the shared HTTP client.

        Example:
            ```python
            await bridge.aclose()
            ```
        """
        for engine in (self.client_engine, self.remote_engine):
            closer = getattr(engine, "aclose", None)
            if closer is not None:
                await closer()
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ExecutionBridge":
        """Return the bridge for use as an async context manager.

        Example:
            ```python
            async with ExecutionBridge() as bridge: ...
            ```
        """
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Close the bridge on context exit.

        Example:
            ```python
            async with ExecutionBridge() as bridge: ...
            ```
        """
        await self.aclose()


async def execute(
    language: str,
    code: str,
    stdin: str = "",
    *,
    settings: LearnixSettings | None = None,
) -> ExecutionResult:
    """One-shot execution with a throwaway bridge.

    Example:
        ```python
        from learnix_lab import execute
        result = await execute("python", "print(input())", stdin="hi")
        ```
    """
    async with ExecutionBridge(settings=settings or LearnixSettings.from_env()) as bridge:
        return await bridge.execute(language, code, stdin)
