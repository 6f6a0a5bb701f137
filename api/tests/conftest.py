import os
import uuid
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ADMIN_ACCESS_TOKEN", "admin-test-token")

from agencydocs.main import app  # noqa: E402
from agencydocs import db as db_module  # noqa: E402
from agencydocs.db import get_session  # noqa: E402
from agencydocs.errors import NotFound, UpstreamFailure  # noqa: E402
from agencydocs.services import notifications as notifications_module  # noqa: E402
from agencydocs.storage import get_blob_store  # noqa: E402

ADMIN_HEADERS = {"X-Access-Token": os.environ["ADMIN_ACCESS_TOKEN"]}


class FakeBlobStore:
    """In-memory stand-in for the MinIO-backed store."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.fail_put = False
        self.fail_delete = False

    def put(self, data: bytes, name: str, content_type: str = "application/octet-stream", prefix: str = "uploads") -> str:
        if self.fail_put:
            raise UpstreamFailure("Failed to upload file to storage")
        key = f"{prefix}/{uuid.uuid4().hex}-{name}"
        self.objects[key] = bytes(data)
        return key

    def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise NotFound("Stored file missing for this document")
        return self.objects[key]

    def delete(self, key: str):
        if self.fail_delete:
            raise UpstreamFailure("Failed to delete file from storage")
        self.objects.pop(key, None)


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session(test_engine, setup_db):
    with Session(test_engine) as s:
        yield s


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def sent_emails(monkeypatch):
    messages = []

    def fake_send_email(to, subject, body, html_body=None, sender_name=None, reply_to=None):
        messages.append(
            {
                "to": to,
                "subject": subject,
                "text": body,
                "html": html_body,
                "reply_to": reply_to,
            }
        )
        return True

    monkeypatch.setattr(notifications_module, "send_email", fake_send_email)
    return messages


@pytest.fixture
def client(test_engine, setup_db, blob_store, sent_emails, monkeypatch):
    monkeypatch.setattr(db_module, "engine", test_engine)

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client):
    """Register a user through the API; returns ``(user, headers)``."""
    counter = {"n": 0}

    def _make(role: str, email: str = None, agency_id: int = None, username: str = None):
        counter["n"] += 1
        username = username or f"{role.lower()}{counter['n']}"
        payload = {"username": username, "email": email or f"{username}@example.com", "role": role}
        if agency_id is not None:
            payload["agency_id"] = agency_id
        resp = client.post("/api/users", json=payload)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return body["user"], {"X-Access-Token": body["access_token"]}

    return _make


@pytest.fixture
def upload(client):
    def _upload(headers, name="lease.pdf", content=b"%PDF-1.4 test", mime="application/pdf", category="Lease", **form):
        data = {"category": category, **form}
        return client.post(
            "/api/documents",
            files={"file": (name, content, mime)},
            data=data,
            headers=headers,
        )

    return _upload
