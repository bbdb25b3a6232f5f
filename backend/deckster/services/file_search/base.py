"""File Search Store interface.

A File Search Store is a hosted collection of documents used for
retrieval-augmented generation. Each chat session gets its own store; uploads
are indexed into it and the generation backend queries it by name.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class FileStoreError(Exception):
    """Raised when the store backend rejects a request."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


class TransientFileStoreError(FileStoreError):
    """Rate limiting or a server-side failure; the call may succeed on retry."""


class FileStoreUnavailableError(TransientFileStoreError):
    """The backend could not be reached at all."""


@dataclass(frozen=True)
class StoreInfo:
    """A created store."""

    name: str  # full resource name, e.g. "fileSearchStores/abc123"
    store_id: str
    display_name: str


@dataclass(frozen=True)
class UploadResult:
    """An uploaded and indexed document."""

    file_uri: str  # document resource name
    file_id: str
    file_name: str  # display name


@dataclass(frozen=True)
class StoreFile:
    """A document listed from a store."""

    name: str
    display_name: str
    mime_type: str | None = None
    size_bytes: int = 0
    create_time: str | None = None
    state: str | None = None


class FileSearchStore(ABC):
    """Operations the upload pipeline and cleanup job need from a store backend."""

    @abstractmethod
    async def create_store(
        self, session_id: str, user_id: str, display_name: str | None = None
    ) -> StoreInfo:
        """Create a store for a chat session."""

    @abstractmethod
    async def upload_file(
        self,
        store_name: str,
        content: bytes,
        display_name: str,
        mime_type: str | None = None,
    ) -> UploadResult:
        """Upload a file and wait until it is indexed."""

    @abstractmethod
    async def list_files(self, store_name: str) -> list[StoreFile]:
        """List documents in a store."""

    @abstractmethod
    async def delete_store(self, store_name: str) -> None:
        """Delete a store and every document in it. Missing stores are not an error."""
