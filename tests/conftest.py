"""Shared test fixtures for the otter_proxy test suite.

WHY: Most client tests need the same scripted stand-in for the Otter API
and the S3 upload bucket. Centralizing it here keeps each test focused on
the behaviour it checks.

HOW: FakeOtter routes httpx.MockTransport requests by (method, endpoint)
to canned responses, callables (sync or async), or exceptions, and records
every request it sees. Endpoints are the path relative to the API base
("login", "speeches", ...) or "s3" for the upload bucket.

RULES:
- No test touches the network
- Every request the client sends is recorded in FakeOtter.requests
- Unrouted endpoints answer 404
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

from otter_proxy.api.client import OtterClient

API_BASE = "https://otter.test/forward/api/v1/"
S3_BASE = "https://s3.test/"
BUCKET = "speech-upload-prod"

LOGIN_COOKIES = [
    ("set-cookie", "sessionid=abc123; Path=/; HttpOnly; Secure"),
    ("set-cookie", "csrftoken=tok-1; Path=/; Secure"),
]

S3_POST_RESPONSE = (
    b'<?xml version="1.0" encoding="UTF-8"?>\n'
    b"<PostResponse>"
    b"<Location>https://s3.test/speech-upload-prod/u-1%2Fabc.mp4</Location>"
    b"<Bucket>speech-upload-prod</Bucket>"
    b"<Key>u-1/abc.mp4</Key>"
    b'<ETag>"d41d8cd98f00b204e9800998ecf8427e"</ETag>'
    b"</PostResponse>"
)

UPLOAD_PARAMS = {
    "status": "OK",
    "data": {
        "form_action": "https://s3.test/speech-upload-prod",
        "key": "u-1/${filename}",
        "policy": "eyJleHBpcmF0aW9uIjoi...",
        "signature": "c2lnbmF0dXJl",
        "AWSAccessKeyId": "AKIAEXAMPLE",
        "acl": "private",
        "success_action_status": 201,
    },
}

Route = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


def json_response(status_code: int = 200, body: Any = None, **kwargs: Any) -> httpx.Response:
    return httpx.Response(status_code, json=body if body is not None else {}, **kwargs)


def make_speeches(prefix: str, count: int) -> List[Dict[str, Any]]:
    return [
        {"otid": "{}-{}".format(prefix, i), "title": "{} {}".format(prefix, i), "duration": 60 + i}
        for i in range(count)
    ]


class FakeOtter:
    """Scriptable Otter API + S3 bucket behind httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.route("GET", "login", self.login_ok())
        self.route("GET", "speech_upload_params", json_response(200, UPLOAD_PARAMS))
        self.route("OPTIONS", "s3", httpx.Response(200))
        self.route("POST", "s3", httpx.Response(201, content=S3_POST_RESPONSE))
        self.route("GET", "finish_speech_upload", json_response(200, {"status": "OK", "otid": "new-1"}))

    @staticmethod
    def login_ok(user_id: str = "u-1", cookies: Any = None) -> httpx.Response:
        return httpx.Response(
            200,
            json={"userid": user_id, "email": "jane@example.com", "status": "OK"},
            headers=LOGIN_COOKIES if cookies is None else cookies,
        )

    def route(self, method: str, endpoint: str, response: Route) -> None:
        self.routes[(method, endpoint)] = response

    @staticmethod
    def endpoint(request: httpx.Request) -> str:
        if request.url.host == "s3.test":
            return "s3"
        return request.url.path[len("/forward/api/v1/"):]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, self.endpoint(request)))
        if route is None:
            return json_response(404, {"detail": "not found"})
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        # Fresh copy per request; a Response object is single-use.
        return httpx.Response(
            route.status_code,
            headers=route.headers.multi_items(),
            content=route.content,
        )

    def calls(self, endpoint: str, method: str = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if self.endpoint(r) == endpoint and (method is None or r.method == method)
        ]

    def client(self) -> OtterClient:
        return OtterClient(
            base_url=API_BASE,
            s3_base_url=S3_BASE,
            upload_bucket=BUCKET,
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_otter() -> FakeOtter:
    return FakeOtter()


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "meeting.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42 fake audio payload")
    return path
