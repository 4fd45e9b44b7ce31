"""Pytest configuration and shared fixtures for all tests."""

import base64
import json
from urllib.parse import parse_qs, urlsplit

import pytest
import requests
from algosdk import encoding

from algoland_backend import codec
from algoland_backend.indexer import IndexerClient


def make_address(seed):
    """Deterministic valid Algorand address for a small integer seed."""
    return encoding.encode_address(bytes([seed % 256]) * 32)


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = payload if isinstance(payload, str) else json.dumps(payload)

    def json(self):
        if isinstance(self._payload, str):
            return json.loads(self._payload)
        return self._payload


class FakeSession:
    """requests.Session stand-in routing GETs by path (and optional query params).

    Each route replays its responses in order and keeps repeating the last
    one. A response may be an exception instance, which is raised.
    """

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, path, *responses, params=None):
        self.routes.append({"path": path, "params": params or {}, "responses": list(responses), "hits": 0})
        return self

    def add_json(self, path, *payloads, params=None):
        return self.add(path, *[FakeResponse(200, p) for p in payloads], params=params)

    def add_box(self, app_id, key, raw, status=200):
        payload = {"name": codec.box_name_param(key), "value": base64.b64encode(raw).decode("ascii")}
        response = FakeResponse(status, payload if status == 200 else "box not found")
        return self.add(f"/v2/applications/{app_id}/box", response, params={"name": codec.box_name_param(key)})

    def _match(self, url):
        parts = urlsplit(url)
        query = {k: v[0] for k, v in parse_qs(parts.query).items()}
        candidates = [r for r in self.routes if r["path"] == parts.path]
        candidates.sort(key=lambda r: -len(r["params"]))
        for route in candidates:
            if all(query.get(k) == str(v) for k, v in route["params"].items()):
                return route
        return None

    def get(self, url, headers=None, timeout=None):
        self.calls.append(url)
        route = self._match(url)
        if route is None:
            return FakeResponse(404, "not found")
        index = min(route["hits"], len(route["responses"]) - 1)
        route["hits"] += 1
        response = route["responses"][index]
        if isinstance(response, Exception):
            raise response
        return response

    def count(self, path):
        return sum(1 for url in self.calls if urlsplit(url).path == path)


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def indexer(session, sleeps):
    return IndexerClient(
        "https://idx.test", max_retries=5, base_delay=0.5, session=session, sleep=sleeps.append,
    )


@pytest.fixture
def address():
    return make_address


def global_state_payload(app_id, **values):
    """/v2/applications/{id} body with uint global-state entries."""
    entries = [
        {"key": base64.b64encode(name.encode()).decode(), "value": {"type": 2, "uint": value}}
        for name, value in values.items()
    ]
    return {"application": {"id": app_id, "params": {"global-state": entries}}}


def connection_error():
    return requests.ConnectionError("connection refused")


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
