"""
Shared fixtures for the Professor Connect tests.

Run with: pytest tests/
"""

import json
import os
import sys
import tempfile
from datetime import datetime

# Configure before the package reads its settings
_DB_DIR = tempfile.mkdtemp(prefix="professor-connect-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["API_BASE_URL"] = "http://backend.test"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["RATE_LIMIT_MAX_REQUESTS"] = "100000"

# Add project to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest

from professor_connect.database import init_db, drop_db, get_db_session
from professor_connect.models import User
from professor_connect.services.backend_client import BackendClient

BACKEND_URL = "http://backend.test"
NOW = datetime(2026, 3, 2, 12, 0, 0)
NOW_MS = 1_772_452_800_000


class FakeBackend:
    """Stands in for the matching/drafting/delivery backend."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.client = BackendClient(
            BACKEND_URL,
            client=httpx.Client(transport=httpx.MockTransport(self._handle)),
        )

    def respond(self, path, payload=None, status=200):
        self.routes[path] = (status, payload)

    def fail(self, path, status=500, message=None):
        self.routes[path] = (status, {"message": message} if message else {})

    def _handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.calls.append((request.url.path, body))

        if request.url.path not in self.routes:
            return httpx.Response(404, json={"message": "no such route"})
        status, payload = self.routes[request.url.path]
        return httpx.Response(status, json=payload)

    def calls_to(self, path):
        return [body for p, body in self.calls if p == path]


class Clock:
    """Settable millisecond clock."""

    def __init__(self, now_ms=NOW_MS):
        self.now_ms = now_ms

    def __call__(self):
        return self.now_ms


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def tables():
    drop_db()
    init_db()
    yield
    drop_db()


@pytest.fixture
def db(tables):
    session = get_db_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def user(db):
    u = User(id="google-uid-1", display_name="Ada Lovelace", email="ada@example.com")
    db.add(u)
    db.flush()
    return u


PROFESSORS = [
    {
        "id": "p1",
        "name": "Dr. Grace Hopper",
        "department": "Computer Science",
        "research_areas": ["Compilers"],
        "email": "hopper@uni.edu",
        "additional_data": ["COBOL"],
    },
    {
        "id": "p2",
        "name": "Dr. Fei-Fei Li",
        "department": "Computer Science",
        "research_areas": ["Machine Learning", "Healthcare AI"],
        "email": "feifei@uni.edu",
        "additional_data": ["ImageNet", "ambient intelligence in hospitals"],
    },
    {
        "name": "Dr. Regina Barzilay",
        "research_areas": "Clinical NLP",
        "email": "regina@uni.edu",
    },
]
