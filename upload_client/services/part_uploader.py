import logging
from typing import AsyncIterator, Callable, Optional

import httpx

from upload_client.exceptions import PermanentUploadError, TransientUploadError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

STREAM_BLOCK_SIZE = 256 * 1024


class PartUploader:
    """PUTs one chunk to a signed URL and returns the ETag the store assigned."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 600.0,
        block_size: int = STREAM_BLOCK_SIZE,
    ):
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.block_size = block_size

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def _stream(self, data: bytes, on_progress: Optional[ProgressCallback]) -> AsyncIterator[bytes]:
        total = len(data)
        view = memoryview(data)
        sent = 0
        while sent < total:
            block = bytes(view[sent:sent + self.block_size])
            yield block
            sent += len(block)
            if on_progress:
                on_progress(sent * 100 / total)

    async def upload_chunk(
        self, url: str, data: bytes, on_progress: Optional[ProgressCallback] = None
    ) -> str:
        headers = {
            "Content-Type": "application/octet-stream",
            # signed part URLs reject chunked transfer encoding
            "Content-Length": str(len(data)),
        }
        content = self._stream(data, on_progress) if data else b""
        try:
            response = await self.http_client.put(url, content=content, headers=headers)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientUploadError(f"Network error while uploading part: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientUploadError(f"Store returned {response.status_code} for part upload")
        if response.is_error:
            raise PermanentUploadError(f"Store rejected part upload with {response.status_code}")

        etag = response.headers.get("etag")
        if not etag:
            raise PermanentUploadError("Part upload response carried no ETag")

        if on_progress and not data:
            on_progress(100.0)
        return etag
