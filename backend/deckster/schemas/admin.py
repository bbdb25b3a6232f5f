"""Admin and maintenance Pydantic schemas."""

from datetime import datetime

from deckster.schemas.common import CamelModel


class AdminUserOut(CamelModel):
    id: str
    email: str
    name: str | None = None
    tier: str
    approved: bool
    approved_at: datetime | None = None
    approved_by: str | None = None
    created_at: datetime


class UserListResponse(CamelModel):
    users: list[AdminUserOut]
    total: int


class ApproveRequest(CamelModel):
    user_id: str
    approved: bool


class ApprovedUser(CamelModel):
    id: str
    email: str
    approved: bool


class ApproveResponse(CamelModel):
    success: bool
    user: ApprovedUser


class CleanupCandidate(CamelModel):
    """Abandoned draft session eligible for purge."""

    id: str
    user_id: str
    created_at: datetime
    age_hours: int
    file_count: int
    total_file_size: int


class CleanupDryRunResponse(CamelModel):
    dry_run: bool = True
    threshold_hours: int
    cutoff_time: datetime
    would_delete: int
    total_files: int
    total_size_mb: str
    sessions: list[CleanupCandidate]


class CleanupResponse(CamelModel):
    success: bool = True
    threshold_hours: int
    cutoff_time: datetime
    sessions_deleted: int
    files_deleted: int
    messages_deleted: int
    cache_deleted: int
    oldest_session_age: int
    unique_users: int
    gemini_stores_deleted: int
    sessions: list[CleanupCandidate]
