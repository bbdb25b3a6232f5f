"""Gemini Developer API client for File Search Stores."""

import asyncio
import json

import httpx
import structlog

from deckster.config import settings
from deckster.services.file_search.base import (
    FileSearchStore,
    FileStoreError,
    FileStoreUnavailableError,
    StoreFile,
    StoreInfo,
    TransientFileStoreError,
    UploadResult,
)
from deckster.services.retry import with_retry

logger = structlog.get_logger()


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of an error message from a Google API response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    if isinstance(error, str):
        return error
    return response.reason_phrase or response.text


class GeminiFileSearchStore(FileSearchStore):
    """File Search Store backed by the Gemini Developer API."""

    API_VERSION = "v1beta"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        poll_interval: float = 2.0,
        poll_timeout: float = 120.0,
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.base_url = (base_url or settings.gemini_api_base_url).rstrip("/")
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._transport = transport

    def _client(self, timeout: float = 30.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"x-goog-api-key": self.api_key},
            timeout=timeout,
            transport=self._transport,
        )

    async def _request(
        self, action: str, method: str, url: str, timeout: float = 30.0, **kwargs
    ) -> httpx.Response:
        """Send one request, translating failures into FileStoreError types."""
        try:
            async with self._client(timeout=timeout) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise FileStoreUnavailableError(
                f"File service unavailable while trying to {action}: {e}"
            ) from e

        if response.is_success:
            return response

        message = f"Failed to {action}: {response.status_code} {_error_message(response)}"
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientFileStoreError(message, response.status_code, response.text)
        raise FileStoreError(message, response.status_code, response.text)

    async def _with_retry(self, fn):
        return await with_retry(
            fn,
            max_attempts=self.max_attempts,
            base_delay=self.retry_delay,
            retry_on=(TransientFileStoreError,),
        )

    async def create_store(
        self, session_id: str, user_id: str, display_name: str | None = None
    ) -> StoreInfo:
        display_name = display_name or f"Session_{session_id[:8]}"

        async def _create() -> httpx.Response:
            return await self._request(
                "create store",
                "POST",
                f"/{self.API_VERSION}/fileSearchStores",
                json={"displayName": display_name},
            )

        response = await self._with_retry(_create)
        store_name = response.json()["name"]
        store_id = store_name.rsplit("/", 1)[-1]

        logger.info(
            "Created File Search Store",
            store_name=store_name,
            session_id=session_id,
            user_id=user_id,
        )
        return StoreInfo(name=store_name, store_id=store_id, display_name=display_name)

    async def upload_file(
        self,
        store_name: str,
        content: bytes,
        display_name: str,
        mime_type: str | None = None,
    ) -> UploadResult:
        metadata = {"displayName": display_name}
        if mime_type:
            metadata["mimeType"] = mime_type

        async def _upload() -> httpx.Response:
            return await self._request(
                "upload file",
                "POST",
                f"/upload/{self.API_VERSION}/{store_name}:uploadToFileSearchStore",
                timeout=120.0,
                params={"uploadType": "multipart"},
                files={
                    "metadata": (None, json.dumps(metadata), "application/json"),
                    "file": (display_name, content, mime_type or "application/octet-stream"),
                },
            )

        logger.info(
            "Uploading file to store",
            store_name=store_name,
            file_name=display_name,
            size_bytes=len(content),
        )
        response = await self._with_retry(_upload)
        operation = await self._wait_for_operation(response.json())

        document_name = (operation.get("response") or {}).get("documentName")
        if not document_name:
            raise FileStoreError(
                "Upload finished without a document name", body=json.dumps(operation)
            )

        logger.info("File indexed", store_name=store_name, document_name=document_name)
        return UploadResult(
            file_uri=document_name,
            file_id=document_name.rsplit("/", 1)[-1],
            file_name=display_name,
        )

    async def _wait_for_operation(self, operation: dict) -> dict:
        """Poll a long-running indexing operation until it is done."""
        elapsed = 0.0
        while not operation.get("done"):
            if elapsed >= self.poll_timeout:
                raise FileStoreError(
                    f"Indexing did not finish within {self.poll_timeout:.0f}s",
                    body=json.dumps(operation),
                )
            await asyncio.sleep(self.poll_interval)
            elapsed += self.poll_interval
            response = await self._with_retry(
                lambda: self._request(
                    "poll upload", "GET", f"/{self.API_VERSION}/{operation['name']}"
                )
            )
            operation = response.json()

        if operation.get("error"):
            error = operation["error"]
            raise FileStoreError(
                f"Indexing failed: {error.get('message', 'unknown error')}",
                status_code=error.get("code"),
                body=json.dumps(error),
            )
        return operation

    async def list_files(self, store_name: str) -> list[StoreFile]:
        files: list[StoreFile] = []
        page_token: str | None = None

        while True:
            params = {"pageSize": 20}
            if page_token:
                params["pageToken"] = page_token

            response = await self._with_retry(
                lambda: self._request(
                    "list files",
                    "GET",
                    f"/{self.API_VERSION}/{store_name}/documents",
                    params=params,
                )
            )
            data = response.json()
            for doc in data.get("documents", []):
                files.append(
                    StoreFile(
                        name=doc["name"],
                        display_name=doc.get("displayName", ""),
                        mime_type=doc.get("mimeType"),
                        size_bytes=int(doc.get("sizeBytes", 0)),
                        create_time=doc.get("createTime"),
                        state=doc.get("state"),
                    )
                )
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.info("Listed store files", store_name=store_name, count=len(files))
        return files

    async def delete_store(self, store_name: str) -> None:
        try:
            await self._request(
                "delete store",
                "DELETE",
                f"/{self.API_VERSION}/{store_name}",
                params={"force": "true"},
            )
        except FileStoreError as e:
            if e.status_code != 404:
                raise
        logger.info("Deleted File Search Store", store_name=store_name)
