import pathlib
import sys

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tender_criteria.main import create_app
from tender_criteria.store import store

INTERNAL_HEADERS = {"x-internal-debug": "true"}


@pytest.fixture(autouse=True)
def reset_store():
    store.reset()
    store.reject_cycles_default = False
    yield


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


@pytest.fixture
def seeded(client):
    """One tender with a document and an image, plus a second tender with its own document."""
    tender = client.post("/api/v1/internal/tenders", json={"title": "Bau Rathaus"}, headers=INTERNAL_HEADERS)
    other = client.post("/api/v1/internal/tenders", json={"title": "IT Betrieb"}, headers=INTERNAL_HEADERS)
    tender_id = tender.json()["data"]["tender_id"]
    other_id = other.json()["data"]["tender_id"]
    document = client.post(
        "/api/v1/internal/documents",
        json={"tender_id": tender_id, "file_name": "Technische_Spezifikation.pdf", "page_count": 40},
        headers=INTERNAL_HEADERS,
    )
    other_document = client.post(
        "/api/v1/internal/documents",
        json={"tender_id": other_id, "file_name": "AGB.pdf"},
        headers=INTERNAL_HEADERS,
    )
    document_id = document.json()["data"]["document_id"]
    image = client.post(
        "/api/v1/internal/images",
        json={"document_id": document_id, "image_path": "img/plan.png", "image_type": "diagram", "page_number": 3},
        headers=INTERNAL_HEADERS,
    )
    return {
        "tender_id": tender_id,
        "other_tender_id": other_id,
        "document_id": document_id,
        "other_document_id": other_document.json()["data"]["document_id"],
        "image_id": image.json()["data"]["image_id"],
    }


class FakePgError(Exception):
    def __init__(self, sqlstate: str):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class FakeCursor:
    """Replays queued results, one per execute, and records normalized SQL."""

    def __init__(self, runner: "FakeRunner"):
        self._runner = runner
        self._result = None
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, query: str, params=None):
        normalized = " ".join(query.split())
        self._runner.statements.append((normalized, params))
        for fragment, error in list(self._runner.failures.items()):
            if fragment in normalized:
                raise error
        self._result = self._runner.results.pop(0) if self._runner.results else None
        self.rowcount = self._runner.rowcount

    def fetchone(self):
        return self._result

    def fetchall(self):
        return self._result or []


class FakeConnection:
    def __init__(self, runner: "FakeRunner"):
        self._runner = runner

    def cursor(self):
        return FakeCursor(self._runner)


class FakeRunner:
    def __init__(self):
        self.statements: list[tuple[str, tuple | None]] = []
        self.results: list = []
        self.failures: dict[str, Exception] = {}
        self.lock_calls: list[tuple[str, ...]] = []
        self.rowcount = 1

    def run_in_tx(self, *, fn, lock_tables=()):
        self.lock_calls.append(tuple(lock_tables))
        return fn(FakeConnection(self))


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def pg_error():
    return FakePgError
