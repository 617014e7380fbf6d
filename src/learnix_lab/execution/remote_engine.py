from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from .types import ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)

RUN_PATH = "/code-execution/run"


class RemoteExecutionError(RuntimeError):
    """Raised when the execution service answers with a non-success status."""


def _error_message(response: httpx.Response) -> str:
    """Extract the service's error message from a failed response.

    Example:
        ```python
        msg = _error_message(httpx.Response(500, json={"message": "Timeout"}))
        ```
    """
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return "Execution failed"
    message = body.get("message") if isinstance(body, dict) else None
    if isinstance(message, list):
        return "; ".join(str(item) for item in message) or "Execution failed"
    if message:
        return str(message)
    return "Execution failed"


class RemoteEngine:
    """Delegate execution to the Learnix code-execution HTTP service.

    Example:
        ```python
        engine = RemoteEngine(api_url="http://localhost:3000/api", timeout_seconds=30)
        ```
    """

    def __init__(
        self,
        *,
        api_url: str,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the engine with an endpoint and an optional shared client.

        Example:
            ```python
            engine = RemoteEngine(api_url="https://learnix.example/api", http_client=client)
            ```
        """
        cleaned = api_url.strip().rstrip("/")
        if not cleaned:
            raise ValueError("RemoteEngine requires a non-empty 'api_url'")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._api_url = cleaned
        self._timeout_seconds = timeout_seconds
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.AsyncClient()

    @property
    def endpoint(self) -> str:
        """Return the full URL runs are posted to.

        Example:
            ```python
            engine.endpoint  # "http://localhost:3000/api/code-execution/run"
            ```
        """
        return f"{self._api_url}{RUN_PATH}"

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Run one request remotely; failures come back as `Execution Error: ...`.

        Example:
            ```python
            result = await engine.execute(ExecutionRequest(language="python", code="print(1)"))
            ```
        """
        try:
            payload = await self._post(request)
        except RemoteExecutionError as exc:
            return ExecutionResult.failure(f"Execution Error: {exc}")
        except httpx.TimeoutException:
            logger.warning("Execution request timed out after %ss", self._timeout_seconds)
            return ExecutionResult.failure(
                f"Execution Error: Request timed out after {self._timeout_seconds}s"
            )
        except httpx.HTTPError as exc:
            logger.warning("Execution request failed: %s", exc)
            return ExecutionResult.failure(f"Execution Error: {str(exc) or type(exc).__name__}")
        return ExecutionResult(
            stdout=str(payload.get("stdout") or ""),
            stderr=str(payload.get("stderr") or ""),
        )

    async def _post(self, request: ExecutionRequest) -> dict[str, Any]:
        """POST the request and return the decoded success body.

        Example:
            ```python
            body = await engine._post(ExecutionRequest(language="go", code="package main"))
            ```
        """
        response = await self._client.post(
            self.endpoint,
            json={
                "language": request.language,
                "sourceCode": request.code,
                "stdin": request.stdin,
            },
            timeout=self._timeout_seconds,
        )
        if not response.is_success:
            message = _error_message(response)
            logger.info("Execution service returned %s: %s", response.status_code, message)
            raise RemoteExecutionError(message)
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RemoteExecutionError("Execution service returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise RemoteExecutionError("Execution service returned an unexpected payload")
        return body

    async def aclose(self) -> None:
        """Close the HTTP client when this engine created it.

        Example:
            ```python
            await engine.aclose()
            ```
        """
        if self._owns_client:
            await self._client.aclose()
