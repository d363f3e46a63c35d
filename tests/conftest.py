import io
import json

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from fastapi.testclient import TestClient

from drive_relay.config import RelayConfig
from drive_relay.main import create_app

API_BASE = "https://drive.test/drive/v3"


class FakeRaw(io.BytesIO):
    """Upstream socket stand-in. Optionally fails after `fail_after` bytes."""

    def __init__(self, data: bytes = b"", fail_after=None, exc=None):
        super().__init__(data)
        self.fail_after = fail_after
        self.exc = exc or ConnectionResetError("upstream reset")
        self.released = False
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        if self.fail_after is not None:
            if self.tell() >= self.fail_after:
                raise self.exc
            remaining = self.fail_after - self.tell()
            size = remaining if size is None or size < 0 else min(size, remaining)
        return super().read(size)

    def release_conn(self):
        self.released = True


def make_response(status=200, body=b"", headers=None, raw=None, url=API_BASE):
    resp = requests.Response()
    resp.status_code = status
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.raw = raw if raw is not None else FakeRaw(body)
    resp.url = url
    resp.encoding = "utf-8"
    return resp


def json_response(payload, status=200):
    return make_response(status, json.dumps(payload).encode(), {"Content-Type": "application/json"})


class FakeSession:
    """
    Replays queued upstream responses.
    Calls with alt=media go to the media queue, everything else to the metadata queue.
    """

    def __init__(self):
        self.metadata = []
        self.media = []
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None, stream=False):
        params = params or {}
        kind = "media" if params.get("alt") == "media" else "metadata"
        self.calls.append({"kind": kind, "url": url, "params": params, "headers": headers or {}, "timeout": timeout, "stream": stream})
        queue = self.media if kind == "media" else self.metadata
        if not queue:
            raise AssertionError(f"unexpected {kind} call to {url}")
        nxt = queue.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    def kinds(self):
        return [c["kind"] for c in self.calls]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def config():
    return RelayConfig(api_key="test-key-123", api_base=API_BASE, chunk_size=16)


@pytest.fixture
def client(config, session):
    return TestClient(create_app(config, session))
