"""Shared fixtures: a fast transfer policy and mock HTTP clients."""

import hashlib
from typing import Callable, Dict

import httpx
import pytest

from zim_backup.application.effects import EffectRunner
from zim_backup.infrastructure.config_models import TransferPolicy

EDITION = "wikipedia_en_all_maxi"
MIRROR_A = "https://a.example.org/zim/wikipedia"
MIRROR_B = "https://b.example.org/zim/wikipedia"


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def listing(*names: str) -> str:
    """A minimal Apache-style directory index."""
    rows = "\n".join(f'<a href="{name}">{name}</a>' for name in names)
    return f"<html><body><pre>\n{rows}\n</pre></body></html>"


class RecordingHandler:
    """Serves canned responses by (method, url) and records every request."""

    def __init__(self, routes: Dict[tuple, Callable[[httpx.Request], httpx.Response]]):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, str(request.url)))
        if route is None:
            return httpx.Response(404)
        return route(request)

    def urls(self, method: str = None):
        return [
            str(r.url) for r in self.requests
            if method is None or r.method == method
        ]


@pytest.fixture
def policy() -> TransferPolicy:
    return TransferPolicy(
        retry_attempts=2,
        retry_delay=0,
        connect_timeout=5,
        chunk_size=4,
        progress=False,
    )


@pytest.fixture
def effects() -> EffectRunner:
    return EffectRunner(dry_run=False)


@pytest.fixture
def make_client():
    def _make(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _make
