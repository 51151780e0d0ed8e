from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from core.errors import DispatchError
from licensing.client import RegistrationQueryClient
from licensing.codec import decode_percent_field
from tracking.registry import TrackedNameRegistry
from tracking.store import JsonFileStore

CURRENT_LABEL = "令和6年"

LANDING_HTML = """<html><head><meta charset="Windows-31J"><title>薬剤師資格確認検索</title></head>
<body><form action="search.do" method="post">
<input type="hidden" name="expireKey" value="KEY-0123456789abcdef">
<input type="text" name="name">
</form></body></html>"""


def search_html(years) -> str:
    rows = "".join(
        f'<tr><td class="NAME_TD">該当者</td><td class="REGISTRATION_TD">{y}</td></tr>'
        for y in years
    )
    return f"<html><body><table>{rows}</table></body></html>"


class ScriptedRegistry:
    """
    Stand-in for the registry site behind httpx.MockTransport.
    `years[name]` is what a search for `name` returns; `mode` injects failures.
    """

    def __init__(self) -> None:
        self.years: dict[str, list[str]] = {}
        self.mode: str | None = None
        self.landing_html = LANDING_HTML
        self.searches: list[dict[str, str]] = []
        self.requests: list[httpx.Request] = []

    def _encode(self, html: str) -> bytes:
        return html.encode("cp932")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.mode == "network":
            raise httpx.ConnectError("connection refused", request=request)
        if self.mode == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if request.url.path.endswith("/top.jsp"):
            if self.mode == "status":
                return httpx.Response(503, content=b"busy")
            html = self.landing_html if self.mode != "no_token" else "<html>メンテナンス中</html>"
            return httpx.Response(200, content=self._encode(html))
        if request.url.path.endswith("/search.do"):
            form = request.content.decode("cp932")
            fields = dict(part.split("=", 1) for part in form.split("&"))
            name = decode_percent_field(fields["name"])
            self.searches.append({"raw": form, **fields, "name": name})
            if self.mode == "empty":
                return httpx.Response(200, content=b"")
            if self.mode == "drift":
                return httpx.Response(
                    200,
                    content=self._encode('<td class="REGISTRATION_TD"><span>令和6年</span></td>'),
                )
            return httpx.Response(200, content=self._encode(search_html(self.years.get(name, []))))
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self, label: str = CURRENT_LABEL) -> RegistrationQueryClient:
        return RegistrationQueryClient(
            "https://registry.test/search_iyaku",
            transport=self.transport(),
            current_label=lambda: label,
        )


class RecordingDispatcher:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send(self, external_id: str, text: str) -> None:
        if self.fail:
            raise DispatchError("channel down")
        self.sent.append((external_id, text))

    def texts_for(self, external_id: str) -> list[str]:
        return [text for uid, text in self.sent if uid == external_id]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def site() -> ScriptedRegistry:
    return ScriptedRegistry()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "tracking.json"


@pytest.fixture
def registry(store_path: Path) -> TrackedNameRegistry:
    return TrackedNameRegistry(JsonFileStore(store_path))
