"""Presentation download Pydantic schemas."""

from typing import Literal

from pydantic import Field

from deckster.schemas.common import CamelModel


class ConvertRequest(CamelModel):
    """Body of POST /downloads/convert/{format}."""

    presentation_url: str = Field(min_length=1)
    slide_count: int | None = None
    quality: Literal["high", "medium", "low"] = "high"
