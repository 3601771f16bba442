from __future__ import annotations

import json
from typing import Callable, Dict, List, Tuple, Union

import httpx
import pytest

from transport import Transport

SOURCE_BASE_URL = "https://active.example.test/"
JUMP_URL = "https://static.example.test/page/abc"
API_URL = "https://api.example.test/batch"

SOURCE_PAGE = f'<html><script>var jump_url="{JUMP_URL}";</script></html>'
TABLE_PAGE = """
<html><body>
<table class="grid">
  <tr><th>Serial</th><th>Expiry</th></tr>
  <tr><td>ABC123</td><td>2999-01-01</td></tr>
  <tr><td><span>OLD001</span></td><td>2000/01/01 08:00:00</td></tr>
</table>
</body></html>
"""

Reply = Union[httpx.Response, Exception]


class FakeRemote:
    """Scripted responses per (method, url); the last reply repeats."""

    def __init__(self, routes: Dict[Tuple[str, str], List[Reply]] | None = None):
        self.routes = {key: list(replies) for key, replies in (routes or {}).items()}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        replies = self.routes.get((request.method, str(request.url)))
        if not replies:
            return httpx.Response(404, text="not found")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def calls(self, method: str, url: str) -> int:
        return sum(1 for r in self.requests if r.method == method and str(r.url) == url)


def api_envelope(content_html: str) -> str:
    inner = {
        "data": {
            "qrcode_msg": {
                "qrcode_component": [
                    {"attribute_list": [{"content_html": {"value": content_html}}]}
                ]
            }
        }
    }
    return json.dumps({"responses": [json.dumps(inner)]})


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def make_transport(sleeps) -> Callable[[FakeRemote], Transport]:
    created: List[Transport] = []

    def factory(remote: FakeRemote, max_attempts: int = 2) -> Transport:
        transport = Transport(
            max_attempts=max_attempts,
            retry_delay=3.0,
            sleep=sleeps.append,
            client=httpx.Client(transport=httpx.MockTransport(remote)),
        )
        created.append(transport)
        return transport

    yield factory

    for transport in created:
        transport.close()
