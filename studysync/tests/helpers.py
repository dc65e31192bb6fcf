"""HTTP doubles for provider APIs."""

from typing import Callable, Optional

import httpx

USER_ID = "user-1"
CANVAS_BASE = "https://canvas.test"


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_response(payload, status_code: int = 200, next_url: Optional[str] = None) -> httpx.Response:
    headers = {}
    if next_url:
        headers["Link"] = f'<{next_url}>; rel="next"'
    return httpx.Response(status_code, json=payload, headers=headers)


def html_response(body: str = "<html>maintenance</html>", status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=body, headers={"Content-Type": "text/html"})
