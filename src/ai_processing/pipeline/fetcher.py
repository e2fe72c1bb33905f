"""HTTP download of documents from the document store."""

from __future__ import annotations

import httpx

from ..constants import DEFAULT_DOWNLOAD_PATH, NO_ERROR_BODY
from ..errors import FetchError, FetchErrorCode, diagnostic_body
from ..logging import get_logger
from .models import RawDocument

logger = get_logger(__name__)


class HttpContentFetcher:
    """Streams a document body from ``GET {base_url}{download_path}``.

    The client is shared across runs and owned by the caller. No retry is
    attempted here.
    """

    def __init__(
        self, client: httpx.AsyncClient, *, download_path: str = DEFAULT_DOWNLOAD_PATH
    ) -> None:
        self._client = client
        self._download_path = download_path

    def download_url(self, document_id: int) -> str:
        return self._download_path.format(document_id=document_id)

    async def fetch(self, document_id: int) -> RawDocument:
        path = self.download_url(document_id)
        logger.info("document.download_start", documentId=document_id, path=path)
        try:
            async with self._client.stream("GET", path) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise self._status_error(document_id, response.status_code, body)
                content_type = response.headers.get("content-type")
                chunks = [chunk async for chunk in response.aiter_bytes()]
        except httpx.HTTPError as exc:
            logger.error("document.download_failed", documentId=document_id, error=str(exc))
            raise FetchError(
                FetchErrorCode.NETWORK,
                f"Network error while downloading document {document_id}",
                details={"error": f"{type(exc).__name__}: {exc}"},
            ) from exc

        content = b"".join(chunks)
        if not content:
            raise FetchError(
                FetchErrorCode.EMPTY_CONTENT,
                f"Document {document_id} downloaded with empty content",
            )
        logger.info(
            "document.fetched",
            documentId=document_id,
            sizeBytes=len(content),
            contentType=content_type,
        )
        return RawDocument(content=content, content_type=content_type)

    @staticmethod
    def _status_error(document_id: int, status_code: int, body: str) -> FetchError:
        body = diagnostic_body(body) if body.strip() else NO_ERROR_BODY
        details = {"status": status_code, "body": body}
        logger.error(
            "document.download_rejected", documentId=document_id, status=status_code, body=body
        )
        if status_code == 404:
            return FetchError(
                FetchErrorCode.NOT_FOUND,
                f"Document {document_id} not found in the document store",
                details=details,
            )
        if status_code < 500:
            return FetchError(
                FetchErrorCode.CLIENT_ERROR,
                f"Client error fetching document {document_id}: {status_code}",
                details=details,
            )
        return FetchError(
            FetchErrorCode.SERVER_ERROR,
            f"Server error at the document store for document {document_id}: {status_code}",
            details=details,
        )


__all__ = ["HttpContentFetcher"]
