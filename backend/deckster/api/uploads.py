"""File upload endpoint.

Flow:
1. Validate the file and the caller's ownership of the target session
2. Get or create the session's File Search Store
3. Record the file in ``uploading`` state
4. Upload and index it, then mark it ``indexed`` (or ``failed``)
"""

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.auth import get_current_user
from deckster.config import settings
from deckster.database import get_db
from deckster.errors import server_error
from deckster.models import ChatSession, UploadedFile, User
from deckster.schemas.upload import UploadResponse
from deckster.services.file_search import (
    FileSearchStore,
    FileStoreError,
    FileStoreUnavailableError,
    get_file_search_store,
)

logger = structlog.get_logger()

router = APIRouter()


def _too_large(size: int) -> str:
    return (
        f"File size exceeds {settings.max_upload_size_mb} MB limit "
        f"({size / 1024 / 1024:.1f} MB)"
    )


def _failure_detail(exc: Exception) -> str:
    if isinstance(exc, FileStoreError) and exc.body:
        return f"{exc.message} - {exc.body[:500]}"
    return str(exc) or exc.__class__.__name__


async def _ensure_store(
    db: AsyncSession, store: FileSearchStore, chat_session: ChatSession, user: User
) -> str:
    """Return the session's store name, creating the store on first upload."""
    if chat_session.gemini_store_name:
        logger.info(
            "Using existing File Search Store",
            session_id=chat_session.id,
            store_name=chat_session.gemini_store_name,
        )
        return chat_session.gemini_store_name

    info = await store.create_store(chat_session.id, user.id)
    chat_session.gemini_store_name = info.name
    chat_session.gemini_store_id = info.store_id
    await db.commit()
    return info.name


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: UploadFile | None = File(default=None),
    session_id: str | None = Form(default=None, alias="sessionId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    store: FileSearchStore = Depends(get_file_search_store),
) -> UploadResponse:
    """Upload a file into a chat session's File Search Store."""
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")
    if not session_id:
        raise HTTPException(status_code=400, detail="Missing sessionId")

    # Reject on the declared size before buffering the body
    if file.size is not None and file.size > settings.max_upload_size_bytes:
        raise HTTPException(status_code=400, detail=_too_large(file.size))

    content = await file.read()
    size = len(content)
    if size == 0:
        raise HTTPException(status_code=400, detail="File is empty")
    if size > settings.max_upload_size_bytes:
        raise HTTPException(status_code=400, detail=_too_large(size))

    chat_session = await db.get(ChatSession, session_id)
    if chat_session is None:
        raise HTTPException(
            status_code=404, detail="Session not found - please start a conversation first"
        )
    if chat_session.user_id != user.id:
        logger.warning("Upload to foreign session", session_id=session_id, user_id=user.id)
        raise HTTPException(status_code=403, detail="Session does not belong to this user")

    existing = (
        await db.execute(
            select(func.count()).select_from(UploadedFile).where(UploadedFile.session_id == session_id)
        )
    ).scalar_one()
    if existing >= settings.max_files_per_session:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum {settings.max_files_per_session} files per session",
        )

    try:
        store_name = await _ensure_store(db, store, chat_session, user)
    except FileStoreUnavailableError as e:
        logger.error("File service unavailable", session_id=session_id, error=str(e))
        raise HTTPException(
            status_code=500, detail=server_error("File service unavailable", e)
        )
    except FileStoreError as e:
        logger.error("Failed to create File Search Store", session_id=session_id, error=str(e))
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to create file store. Please try again.",
                "details": _failure_detail(e),
            },
        )

    uploaded = UploadedFile(
        session_id=session_id,
        user_id=user.id,
        file_name=file.filename or "upload",
        file_size=size,
        file_type=file.content_type,
        gemini_file_uri="",
        gemini_store_name=store_name,
        upload_status="uploading",
    )
    db.add(uploaded)
    await db.commit()
    await db.refresh(uploaded)

    try:
        result = await store.upload_file(
            store_name, content, uploaded.file_name, file.content_type
        )
    except Exception as e:
        detail = _failure_detail(e)
        uploaded.upload_status = "failed"
        uploaded.upload_error = detail
        await db.commit()
        logger.error(
            "File upload failed",
            session_id=session_id,
            file_id=uploaded.id,
            error=detail,
        )
        error = (
            "File service unavailable"
            if isinstance(e, FileStoreUnavailableError)
            else "Failed to upload file"
        )
        raise HTTPException(status_code=500, detail={"error": error, "details": detail})

    uploaded.gemini_file_uri = result.file_uri
    uploaded.gemini_file_id = result.file_id
    uploaded.gemini_file_name = result.file_name
    uploaded.upload_status = "indexed"
    uploaded.upload_error = None
    await db.commit()
    await db.refresh(uploaded)

    logger.info(
        "File uploaded",
        session_id=session_id,
        file_id=uploaded.id,
        file_name=uploaded.file_name,
        size_bytes=size,
    )
    return UploadResponse(
        id=uploaded.id,
        file_name=uploaded.file_name,
        file_size=uploaded.file_size,
        file_type=uploaded.file_type,
        gemini_file_uri=uploaded.gemini_file_uri,
        gemini_file_name=uploaded.gemini_file_name,
        gemini_store_name=store_name,
        uploaded_at=uploaded.uploaded_at,
        status="indexed",
    )
