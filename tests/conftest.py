from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Iterator

import httpx
import pytest

from learnix_lab import ExecutionBridge, LearnixSettings
from learnix_lab.execution.page import BrowserPage

FIXTURES = Path(__file__).resolve().parent / "fixtures"
API_URL = "http://learnix.test/api"


def fixture_source(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


class FakeBackend:
    """Serves CDN scripts and Learnix API routes through httpx.MockTransport."""

    def __init__(self, delay: float = 0.01) -> None:
        self.delay = delay
        self.scripts: dict[str, str | int] = {}
        self.api_routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def serve_script(self, url: str, body: str | int) -> None:
        self.scripts[url] = body

    def route(self, method: str, path: str, response: Callable[[httpx.Request], httpx.Response] | httpx.Response) -> None:
        if isinstance(response, httpx.Response):
            fixed = response
            self.api_routes[(method, path)] = lambda request: fixed
        else:
            self.api_routes[(method, path)] = response

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # keep requests in flight long enough for concurrent callers to overlap
        await asyncio.sleep(self.delay)
        url = str(request.url)
        if url in self.scripts:
            body = self.scripts[url]
            if isinstance(body, int):
                return httpx.Response(body, text="unavailable")
            return httpx.Response(200, text=body)
        if url.startswith(API_URL):
            key = (request.method, url[len(API_URL):])
            if key in self.api_routes:
                return self.api_routes[key](request)
        return httpx.Response(404, json={"message": "Not Found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def count(self, url: str, method: str = "GET") -> int:
        return sum(1 for r in self.requests if str(r.url) == url and r.method == method)

    def json_bodies(self, path: str) -> list[Any]:
        return [json.loads(r.content) for r in self.requests if str(r.url) == f"{API_URL}{path}"]


@pytest.fixture()
def settings() -> LearnixSettings:
    return LearnixSettings(api_url=API_URL, initial_check_delay_seconds=0.01)


@pytest.fixture()
def backend(settings: LearnixSettings) -> FakeBackend:
    fake = FakeBackend()
    fake.serve_script(settings.transpiler_url, fixture_source("babel_stub.js"))
    fake.serve_script(settings.libraries["uuid"].url, fixture_source("uuid_stub.js"))
    fake.serve_script(settings.libraries["lodash"].url, fixture_source("lodash_stub.js"))
    fake.serve_script(settings.libraries["moment"].url, fixture_source("broken_library.js"))
    fake.serve_script(settings.libraries["axios"].url, 503)
    return fake


@pytest.fixture()
def page() -> Iterator[BrowserPage]:
    with BrowserPage() as browser_page:
        browser_page.install_host_bindings(
            fixture_source("react_stub.js"),
            fixture_source("react_dom_stub.js"),
        )
        yield browser_page


@pytest.fixture()
def make_bridge(
    page: BrowserPage,
    backend: FakeBackend,
    settings: LearnixSettings,
) -> Callable[..., ExecutionBridge]:
    def _make(**overrides: Any) -> ExecutionBridge:
        return ExecutionBridge(
            settings=overrides.pop("settings", settings),
            page=page,
            http_client=backend.client(),
            **overrides,
        )

    return _make
