"""File Search Store clients."""

from deckster.services.file_search.base import (
    FileSearchStore,
    FileStoreError,
    FileStoreUnavailableError,
    StoreFile,
    StoreInfo,
    TransientFileStoreError,
    UploadResult,
)
from deckster.services.file_search.gemini import GeminiFileSearchStore


def get_file_search_store() -> FileSearchStore:
    """FastAPI dependency returning the configured store backend."""
    return GeminiFileSearchStore()


__all__ = [
    "FileSearchStore",
    "FileStoreError",
    "FileStoreUnavailableError",
    "GeminiFileSearchStore",
    "StoreFile",
    "StoreInfo",
    "TransientFileStoreError",
    "UploadResult",
    "get_file_search_store",
]
