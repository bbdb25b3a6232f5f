"""Uploaded file Pydantic schemas."""

from datetime import datetime

from deckster.schemas.common import CamelModel


class UploadedFileOut(CamelModel):
    id: str
    session_id: str
    file_name: str
    file_size: int
    file_type: str | None = None
    gemini_file_uri: str
    gemini_file_id: str | None = None
    gemini_file_name: str | None = None
    gemini_store_name: str | None = None
    upload_status: str
    uploaded_at: datetime


class FileListResponse(CamelModel):
    files: list[UploadedFileOut]


class UploadResponse(CamelModel):
    """Result of a successful upload."""

    id: str
    file_name: str
    file_size: int
    file_type: str | None = None
    gemini_file_uri: str
    gemini_file_name: str | None = None
    gemini_store_name: str | None = None
    uploaded_at: datetime
    status: str
