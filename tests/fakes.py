"""Fake OpenAI REST API used by the tests through httpx.MockTransport."""

import json
import re
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx

ADMIN_KEY = "sk-admin-test-0123456789"
PROJECT_KEY = "sk-proj-test-0123456789"
API_URL = "https://api.test.openai.local/v1"

Responder = Union[Dict[str, Any], List[Any], httpx.Response, Callable[..., httpx.Response]]


def error_response(status_code: int, message: str = "error", **headers: str) -> httpx.Response:
    """An error body shaped like the platform's ``{"error": {...}}`` envelope."""
    return httpx.Response(
        status_code,
        json={"error": {"message": message, "type": "invalid_request_error"}},
        headers=headers,
    )


def page(items: List[Dict[str, Any]], has_more: bool = False) -> Dict[str, Any]:
    return {"object": "list", "data": items, "has_more": has_more}


class FakeOpenAI:
    """In-memory stand-in for the REST API behind an httpx.MockTransport.

    Routes are matched against the path below ``/v1``. A route answers with
    its responses in order and keeps repeating the last one; a callable
    responder receives the request and the named groups of the pattern.
    """

    def __init__(self) -> None:
        self.routes: List[Tuple[str, re.Pattern, List[Responder]]] = []
        self.requests: List[httpx.Request] = []

    def add(self, method: str, pattern: str, *responses: Responder) -> None:
        self.routes.insert(0, (method.upper(), re.compile(f"^{pattern}$"), list(responses)))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/v1"):]
        for method, pattern, responses in self.routes:
            match = pattern.match(path)
            if method != request.method or match is None:
                continue
            responder = responses.pop(0) if len(responses) > 1 else responses[0]
            if isinstance(responder, httpx.Response):
                # Fresh copy so one canned response can answer several requests
                return httpx.Response(
                    responder.status_code, headers=responder.headers, content=responder.content
                )
            if callable(responder):
                return responder(request, **match.groupdict())
            return httpx.Response(200, json=responder)
        return error_response(404, f"No route for {request.method} {path}")

    def calls(self, method: str, pattern: str) -> List[httpx.Request]:
        """Recorded requests matching a method and a path pattern."""
        regex = re.compile(f"^{pattern}$")
        return [
            r for r in self.requests
            if r.method == method.upper() and regex.match(r.url.path[len("/v1"):])
        ]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None

