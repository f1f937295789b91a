import json

import httpx

VALID_TOKEN = "a1B2c3D4" * 8
BASE_URL = "https://api.example.test/v1"


class FakeClock:
    """Deterministic stand-in for time.time()."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class MockAPI:
    """Scripted server for httpx.MockTransport.

    Each route maps ``"METHOD /path"`` to a list of responses served in
    order; the last one repeats. Exceptions in the list are raised.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, *responses):
        self.routes[f"{method} {path}"] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {request.url.path}"
        if key not in self.routes:
            return error(404, name="resource_not_found", detail="Resource not found")
        responses = self.routes[key]
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def call_count(self):
        return len(self.requests)

    def body(self, index=-1):
        return json.loads(self.requests[index].content)


def data(payload, status=200):
    """Successful API response wrapping ``payload`` in the data envelope."""
    return httpx.Response(status, json={"data": payload})


def error(status, name="error", detail="Something went wrong", headers=None):
    return httpx.Response(
        status,
        json={"error": {"id": str(status), "name": name, "detail": detail}},
        headers=headers,
    )
