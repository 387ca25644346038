import logging
from typing import List, Optional

import httpx

from upload_client.config import UploadConfig
from upload_client.exceptions import (
    AbortError,
    FinalizeError,
    SigningError,
    UploadError,
    ValidationError,
)
from upload_client.models.upload_models import CompletedPart

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def _json_object(response: httpx.Response) -> dict:
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError(f"expected a JSON object, got {type(body).__name__}")
    return body


def _is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class UploadApiClient:
    """HTTP client for the upload API: session lifecycle and part credentials."""

    def __init__(self, config: UploadConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=config.request_timeout)
        self.base_url = config.api_url.rstrip("/")

    async def __aenter__(self) -> "UploadApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def initiate_upload(self, file_name: str, content_type: Optional[str] = None) -> dict:
        payload = {"fileName": file_name}
        if content_type:
            payload["contentType"] = content_type
        try:
            response = await self.http_client.post(f"{self.base_url}/initiate-upload", json=payload)
        except httpx.HTTPError as e:
            raise UploadError(f"Failed to initiate upload: {e}") from e

        if response.status_code in (400, 422):
            raise ValidationError(f"Invalid initiate request: {_error_detail(response)}")
        if response.is_error:
            raise UploadError(f"Failed to initiate upload: {_error_detail(response)}")

        try:
            data = _json_object(response)
            upload_id, key = data["uploadId"], data["key"]
        except (ValueError, KeyError) as e:
            raise UploadError(f"Malformed initiate response: {e}") from e
        logger.debug("Initiated upload", extra={"key": key, "upload_id": upload_id})
        return {"upload_id": upload_id, "key": key}

    async def get_upload_credential(self, key: str, upload_id: str, part_number: int) -> str:
        """Fetch a fresh signed URL for one part; never cached."""
        params = {"key": key, "uploadId": upload_id, "partNumber": part_number}
        try:
            response = await self.http_client.get(f"{self.base_url}/get-signed-url", params=params)
        except httpx.HTTPError as e:
            raise SigningError(f"Failed to get signed URL for part {part_number}: {e}") from e

        if response.is_error:
            raise SigningError(
                f"Failed to get signed URL for part {part_number}: {_error_detail(response)}",
                retryable=_is_retryable_status(response.status_code),
            )

        try:
            signed_url = _json_object(response).get("signedUrl")
        except ValueError as e:
            raise SigningError(
                f"Malformed signed URL response for part {part_number}: {e}", retryable=False
            ) from e
        if not signed_url:
            raise SigningError(f"Signed URL missing for part {part_number}", retryable=False)
        return signed_url

    async def complete_upload(self, key: str, upload_id: str, parts: List[CompletedPart]) -> Optional[str]:
        payload = {
            "key": key,
            "uploadId": upload_id,
            "parts": [part.to_manifest() for part in parts],
        }
        try:
            response = await self.http_client.post(f"{self.base_url}/complete-upload", json=payload)
        except httpx.HTTPError as e:
            raise FinalizeError(f"Failed to complete upload: {e}") from e

        if response.status_code in (400, 422):
            raise ValidationError(f"Invalid complete request: {_error_detail(response)}")
        if response.is_error:
            raise FinalizeError(f"Failed to complete upload: {_error_detail(response)}")
        try:
            return _json_object(response).get("location")
        except ValueError as e:
            raise FinalizeError(f"Malformed complete response: {e}") from e

    async def abort_upload(self, key: str, upload_id: str) -> None:
        payload = {"key": key, "uploadId": upload_id}
        try:
            response = await self.http_client.post(f"{self.base_url}/abort-upload", json=payload)
        except httpx.HTTPError as e:
            raise AbortError(f"Failed to abort upload {upload_id}: {e}") from e

        if response.is_error:
            raise AbortError(f"Failed to abort upload {upload_id}: {_error_detail(response)}")

    async def list_files(self, prefix: str = "") -> List[dict]:
        return await self._request("GET", "/files", "list files", field="files", params={"prefix": prefix})

    async def get_download_url(self, key: str) -> str:
        return await self._request(
            "GET", "/download-url", "get download URL", field="downloadUrl", params={"key": key}
        )

    async def delete_file(self, key: str) -> bool:
        data = await self._request("DELETE", "/files", "delete file", json={"key": key})
        return bool(data.get("success"))

    async def _request(self, method: str, path: str, action: str, field: Optional[str] = None, **kwargs):
        try:
            response = await self.http_client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise UploadError(f"Failed to {action}: {e}") from e

        if response.is_error:
            raise UploadError(f"Failed to {action}: {_error_detail(response)}")
        try:
            data = _json_object(response)
            return data[field] if field else data
        except (ValueError, KeyError) as e:
            raise UploadError(f"Failed to {action}: malformed response: {e}") from e
