"""Clients for the Layout Service and the Download Service.

Both return the rendered file bytes so the API can stream them back to the
builder with a sensible filename.
"""

from dataclasses import dataclass
from datetime import date
from typing import Literal
from urllib.parse import urlparse

import httpx
import structlog

from deckster.config import settings

logger = structlog.get_logger()

PresentationVersion = Literal["strawman", "refined", "final"]
DownloadFormat = Literal["pdf", "pptx"]
DownloadQuality = Literal["high", "medium", "low"]

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}


class PresentationServiceError(Exception):
    """Raised when a downstream presentation service fails."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class RenderedFile:
    """A downloaded presentation file."""

    content: bytes
    media_type: str
    filename: str


class LayoutServiceClient:
    """Downloads rendered presentations by id and version."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url if base_url is not None else settings.layout_service_url
        self._transport = transport

    async def download(
        self,
        presentation_id: str,
        version: PresentationVersion = "final",
        fmt: DownloadFormat = "pdf",
    ) -> RenderedFile:
        if not self.base_url:
            raise PresentationServiceError("Layout Service URL is not configured", 503)

        url = f"{self.base_url.rstrip('/')}/api/presentations/{presentation_id}/download/{fmt}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    url,
                    params={"version": version},
                    headers={"Accept": MEDIA_TYPES[fmt]},
                    timeout=120.0,
                )
        except httpx.TransportError as e:
            raise PresentationServiceError(f"Layout Service unavailable: {e}", 503) from e

        if not response.is_success:
            logger.error(
                "Layout download failed",
                presentation_id=presentation_id,
                status=response.status_code,
                body=response.text[:500],
            )
            raise PresentationServiceError(
                f"Failed to download presentation: {response.reason_phrase}"
            )

        filename = f"presentation_{version}_{date.today().isoformat()}.{fmt}"
        return RenderedFile(response.content, MEDIA_TYPES[fmt], filename)


def _conversion_error(response: httpx.Response, fmt: str) -> PresentationServiceError:
    """Map a Download Service error response to a user-facing message."""
    message = f"{fmt.upper()} conversion failed"
    try:
        message = response.json().get("detail") or message
    except (ValueError, AttributeError):
        message = response.reason_phrase or message

    status = response.status_code
    if status == 422:
        return PresentationServiceError(f"Invalid request: {message}", 422)
    if status == 500:
        return PresentationServiceError(f"Conversion failed: {message}")
    if status == 503:
        return PresentationServiceError("Service temporarily unavailable. Please try again.", 503)
    return PresentationServiceError(f"Download failed: {message}")


def filename_for(presentation_url: str, fmt: str) -> str:
    """Derive a download filename from the presentation URL."""
    slug = urlparse(presentation_url).path.rstrip("/").rsplit("/", 1)[-1] or "presentation"
    return f"presentation_{slug}_{date.today().isoformat()}.{fmt}"


class DownloadServiceClient:
    """Converts a hosted presentation URL to PDF or PPTX."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.download_service_url).rstrip("/")
        self._transport = transport

    async def _convert(self, fmt: DownloadFormat, body: dict) -> RenderedFile:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/convert/{fmt}",
                    json=body,
                    headers={"Accept": MEDIA_TYPES[fmt]},
                    timeout=180.0,
                )
        except httpx.TransportError as e:
            raise PresentationServiceError(f"Download Service unavailable: {e}", 503) from e

        if not response.is_success:
            error = _conversion_error(response, fmt)
            logger.error("Conversion failed", format=fmt, status=response.status_code, error=error.message)
            raise error

        return RenderedFile(
            response.content, MEDIA_TYPES[fmt], filename_for(body["presentation_url"], fmt)
        )

    async def convert_pdf(
        self, presentation_url: str, quality: DownloadQuality = "high"
    ) -> RenderedFile:
        return await self._convert(
            "pdf",
            {
                "presentation_url": presentation_url,
                "landscape": True,
                "print_background": True,
                "quality": quality,
            },
        )

    async def convert_pptx(
        self, presentation_url: str, slide_count: int, quality: DownloadQuality = "high"
    ) -> RenderedFile:
        if slide_count <= 0:
            raise PresentationServiceError("Valid slide count is required", 400)
        return await self._convert(
            "pptx",
            {
                "presentation_url": presentation_url,
                "slide_count": slide_count,
                "aspect_ratio": "16:9",
                "quality": quality,
            },
        )


def get_layout_client() -> LayoutServiceClient:
    return LayoutServiceClient()


def get_download_client() -> DownloadServiceClient:
    return DownloadServiceClient()
