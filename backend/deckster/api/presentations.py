"""PDF/PPTX download endpoints, proxied to the Layout and Download services."""

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.auth import Principal, get_current_user, get_principal
from deckster.database import get_db
from deckster.models import ChatSession, User
from deckster.schemas.presentation import ConvertRequest
from deckster.services.presentations import (
    DownloadServiceClient,
    LayoutServiceClient,
    PresentationServiceError,
    RenderedFile,
    get_download_client,
    get_layout_client,
)

logger = structlog.get_logger()

router = APIRouter()


def _file_response(rendered: RenderedFile) -> Response:
    return Response(
        content=rendered.content,
        media_type=rendered.media_type,
        headers={"Content-Disposition": f'attachment; filename="{rendered.filename}"'},
    )


@router.get("/presentations/{presentation_id}/download/{fmt}")
async def download_presentation(
    presentation_id: str,
    fmt: Literal["pdf", "pptx"],
    version: Literal["strawman", "refined", "final"] = Query(default="final"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    layout: LayoutServiceClient = Depends(get_layout_client),
) -> Response:
    """Download a rendered presentation from one of the caller's sessions."""
    owned = await db.execute(
        select(ChatSession.id)
        .where(
            ChatSession.user_id == user.id,
            or_(
                ChatSession.strawman_presentation_id == presentation_id,
                ChatSession.refined_presentation_id == presentation_id,
                ChatSession.final_presentation_id == presentation_id,
            ),
        )
        .limit(1)
    )
    if owned.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Presentation not found")

    try:
        rendered = await layout.download(presentation_id, version, fmt)
    except PresentationServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info(
        "Presentation downloaded",
        presentation_id=presentation_id,
        version=version,
        format=fmt,
        size_bytes=len(rendered.content),
    )
    return _file_response(rendered)


@router.post("/downloads/convert/{fmt}")
async def convert_presentation(
    fmt: Literal["pdf", "pptx"],
    body: ConvertRequest,
    principal: Principal = Depends(get_principal),
    downloads: DownloadServiceClient = Depends(get_download_client),
) -> Response:
    """Convert a hosted presentation URL to PDF or PPTX."""
    try:
        if fmt == "pdf":
            rendered = await downloads.convert_pdf(body.presentation_url, body.quality)
        else:
            rendered = await downloads.convert_pptx(
                body.presentation_url, body.slide_count or 0, body.quality
            )
    except PresentationServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info("Presentation converted", format=fmt, email=principal.email)
    return _file_response(rendered)
