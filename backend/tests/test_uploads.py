"""Tests for the upload pipeline."""

from unittest.mock import AsyncMock, patch

from sqlalchemy import select
from starlette.datastructures import UploadFile as StarletteUploadFile

from conftest import add, auth_headers, fetch, query
from deckster.main import app
from deckster.models import ChatSession, UploadedFile
from deckster.services.file_search import (
    FileSearchStore,
    FileStoreError,
    FileStoreUnavailableError,
    StoreInfo,
    UploadResult,
    get_file_search_store,
)


class FakeStore(FileSearchStore):
    """In-memory store recording calls."""

    def __init__(self, upload_error: Exception | None = None, create_error: Exception | None = None):
        self.created: list[str] = []
        self.uploads: list[tuple[str, bytes, str]] = []
        self.deleted: list[str] = []
        self.upload_error = upload_error
        self.create_error = create_error

    async def create_store(self, session_id, user_id, display_name=None):
        if self.create_error:
            raise self.create_error
        self.created.append(session_id)
        return StoreInfo(name=f"fileSearchStores/{session_id}", store_id=session_id, display_name="x")

    async def upload_file(self, store_name, content, display_name, mime_type=None):
        if self.upload_error:
            raise self.upload_error
        self.uploads.append((store_name, content, display_name))
        doc = f"{store_name}/documents/doc-{len(self.uploads)}"
        return UploadResult(file_uri=doc, file_id=f"doc-{len(self.uploads)}", file_name=display_name)

    async def list_files(self, store_name):
        return []

    async def delete_store(self, store_name):
        self.deleted.append(store_name)


def _use(store: FileSearchStore) -> FileSearchStore:
    app.dependency_overrides[get_file_search_store] = lambda: store
    return store


def _upload(client, user, session_id="s1", content=b"quarterly numbers", name="notes.txt"):
    return client.post(
        "/api/upload",
        data={"sessionId": session_id},
        files={"file": (name, content, "text/plain")},
        headers=auth_headers(user),
    )


def test_upload_creates_store_and_indexes(client, user):
    store = _use(FakeStore())
    add(ChatSession(id="s1", user_id=user.id, status="active"))

    response = _upload(client, user)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "indexed"
    assert body["fileName"] == "notes.txt"
    assert body["fileSize"] == len(b"quarterly numbers")
    assert body["geminiStoreName"] == "fileSearchStores/s1"
    assert body["geminiFileUri"] == "fileSearchStores/s1/documents/doc-1"
    assert store.created == ["s1"]

    session = fetch(ChatSession, "s1")
    assert session.gemini_store_name == "fileSearchStores/s1"
    (row,) = query(select(UploadedFile))
    assert row.upload_status == "indexed"


def test_upload_reuses_existing_store(client, user):
    store = _use(FakeStore())
    add(ChatSession(id="s1", user_id=user.id, gemini_store_name="fileSearchStores/existing"))

    response = _upload(client, user)

    assert response.status_code == 200
    assert store.created == []
    assert store.uploads[0][0] == "fileSearchStores/existing"


def test_upload_listed_on_session(client, user):
    _use(FakeStore())
    add(ChatSession(id="s1", user_id=user.id))
    _upload(client, user)

    response = client.get("/api/sessions/s1/files", headers=auth_headers(user))

    assert response.status_code == 200
    assert [f["fileName"] for f in response.json()["files"]] == ["notes.txt"]


def test_rejects_missing_file(client, user):
    _use(FakeStore())
    add(ChatSession(id="s1", user_id=user.id))

    response = client.post("/api/upload", data={"sessionId": "s1"}, headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["error"] == "No file provided"


def test_rejects_empty_file(client, user):
    _use(FakeStore())
    add(ChatSession(id="s1", user_id=user.id))

    response = _upload(client, user, content=b"")

    assert response.status_code == 400


def test_rejects_oversized_file(client, user, monkeypatch):
    from deckster.config import settings

    monkeypatch.setattr(settings, "max_upload_size_mb", 0)
    _use(FakeStore())
    add(ChatSession(id="s1", user_id=user.id))

    response = _upload(client, user)

    assert response.status_code == 400
    assert "exceeds 0 MB limit" in response.json()["error"]


def test_oversized_file_rejected_before_reading(client, user, monkeypatch):
    from deckster.config import settings

    monkeypatch.setattr(settings, "max_upload_size_mb", 0)
    _use(FakeStore())
    add(ChatSession(id="s1", user_id=user.id))

    with patch.object(StarletteUploadFile, "read", new_callable=AsyncMock) as read:
        response = _upload(client, user)

    assert response.status_code == 400
    assert "exceeds 0 MB limit" in response.json()["error"]
    read.assert_not_awaited()


def test_foreign_session_forbidden(client, user, other_user):
    store = _use(FakeStore())
    add(ChatSession(id="s1", user_id=other_user.id))

    response = _upload(client, user)

    assert response.status_code == 403
    assert store.uploads == []


def test_unknown_session(client, user):
    _use(FakeStore())

    response = _upload(client, user, session_id="missing")

    assert response.status_code == 404


def test_file_cap_per_session(client, user):
    store = _use(FakeStore())
    add(ChatSession(id="s1", user_id=user.id, gemini_store_name="fileSearchStores/s1"))
    add(*[
        UploadedFile(session_id="s1", user_id=user.id, file_name=f"f{i}.txt", file_size=10)
        for i in range(5)
    ])

    response = _upload(client, user)

    assert response.status_code == 400
    assert response.json()["error"] == "Maximum 5 files per session"
    assert store.uploads == []


def test_upload_failure_marks_row_failed(client, user):
    _use(FakeStore(upload_error=FileStoreError("Failed to upload file: 400 Bad file", 400, "bad")))
    add(ChatSession(id="s1", user_id=user.id, gemini_store_name="fileSearchStores/s1"))

    response = _upload(client, user)

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to upload file"
    assert "Bad file" in response.json()["details"]
    (row,) = query(select(UploadedFile))
    assert row.upload_status == "failed"
    assert "Bad file" in row.upload_error


def test_unexpected_upload_error_marks_row_failed(client, user):
    _use(FakeStore(upload_error=KeyError("documentName")))
    add(ChatSession(id="s1", user_id=user.id, gemini_store_name="fileSearchStores/s1"))

    response = _upload(client, user)

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to upload file"
    (row,) = query(select(UploadedFile))
    assert row.upload_status == "failed"
    assert "documentName" in row.upload_error


def test_unreachable_file_service(client, user):
    _use(FakeStore(create_error=FileStoreUnavailableError("connection refused")))
    add(ChatSession(id="s1", user_id=user.id))

    response = _upload(client, user)

    assert response.status_code == 500
    assert response.json()["error"] == "File service unavailable"
    assert query(select(UploadedFile)) == []
