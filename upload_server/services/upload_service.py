import logging
import mimetypes
from typing import Any, List, Optional
from uuid import uuid4

import boto3
import redis
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from upload_server.config import ServerSettings
from upload_server.exceptions import (
    ManifestRejectedError,
    StorageError,
    UploadValidationError,
)
from upload_server.models.upload_models import (
    CompletedPart,
    FileInfo,
    UploadRecord,
    UploadStatus,
)
from upload_server.services.upload_registry import UploadRegistry

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
# error codes meaning the multipart upload is already gone
MISSING_UPLOAD_CODES = {"NoSuchUpload", "404"}


def build_s3_client(settings: ServerSettings) -> Any:
    return boto3.client(
        "s3",
        region_name=settings.aws_region,
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.aws_access_key,
        aws_secret_access_key=settings.aws_secret_key,
        config=Config(
            signature_version="s3v4",
            s3={"use_accelerate_endpoint": settings.use_accelerate_endpoint},
            connect_timeout=300,
            read_timeout=300,
            retries={"max_attempts": 5, "mode": "standard"},
        ),
    )


def guess_content_type(file_name: str) -> str:
    content_type, _ = mimetypes.guess_type(file_name)
    return content_type or DEFAULT_CONTENT_TYPE


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class UploadService:
    """Thin wrapper around the object store's multipart primitives."""

    def __init__(self, s3_client: Any, settings: ServerSettings, registry: UploadRegistry):
        self.s3_client = s3_client
        self.settings = settings
        self.bucket_name = settings.bucket_name
        self.registry = registry

    async def initiate_upload(self, file_name: str, content_type: Optional[str] = None) -> dict:
        """Start a multipart upload under a randomized key prefix"""
        content_type = content_type or guess_content_type(file_name)
        # random prefix spreads keys across store partitions
        key = f"{uuid4().hex[:8]}/{file_name}"

        try:
            response = self.s3_client.create_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception("Failed to initiate multipart upload", extra={"key": key})
            raise StorageError(f"Failed to initiate upload: {e}") from e

        upload_id = response["UploadId"]
        logger.info(
            "Multipart upload initiated",
            extra={"key": key, "upload_id": upload_id, "content_type": content_type},
        )
        self._record(self.registry.record_initiated, key, upload_id, file_name, content_type)
        return {"uploadId": upload_id, "key": key}

    def generate_part_url(self, key: str, upload_id: str, part_number: int) -> str:
        if part_number < 1 or part_number > 10000:
            raise UploadValidationError("partNumber must be between 1 and 10000")

        try:
            url = self.s3_client.generate_presigned_url(
                "upload_part",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": key,
                    "UploadId": upload_id,
                    "PartNumber": part_number,
                },
                ExpiresIn=self.settings.upload_url_expires,
                HttpMethod="PUT",
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception(
                "Failed to generate part URL",
                extra={"key": key, "upload_id": upload_id, "part_number": part_number},
            )
            raise StorageError(f"Failed to generate signed URL: {e}") from e

        logger.debug(
            "Generated part URL",
            extra={"key": key, "upload_id": upload_id, "part_number": part_number},
        )
        return url

    async def complete_upload(self, key: str, upload_id: str, parts: List[CompletedPart]) -> Optional[str]:
        """Complete the multipart upload"""
        if not parts:
            raise UploadValidationError("No parts provided for completion")

        sorted_parts = sorted(parts, key=lambda p: p.part_number)
        for expected, part in enumerate(sorted_parts, start=1):
            if part.part_number != expected:
                raise UploadValidationError(
                    f"Missing part: expected part {expected}, but got part {part.part_number}"
                )

        logger.info(
            "Completing multipart upload",
            extra={"key": key, "upload_id": upload_id, "parts": len(sorted_parts)},
        )
        try:
            response = self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"ETag": part.etag, "PartNumber": part.part_number}
                        for part in sorted_parts
                    ]
                },
            )
        except ClientError as e:
            logger.exception("Store rejected completion", extra={"key": key, "upload_id": upload_id})
            raise ManifestRejectedError(f"Failed to complete upload: {e}") from e
        except BotoCoreError as e:
            logger.exception("Failed to complete upload", extra={"key": key, "upload_id": upload_id})
            raise StorageError(f"Failed to complete upload: {e}") from e

        logger.info("Multipart upload completed", extra={"key": key, "upload_id": upload_id})
        self._record(self.registry.mark_status, upload_id, UploadStatus.COMPLETED)
        return response.get("Location")

    async def abort_upload(self, key: str, upload_id: str) -> None:
        """Abort an upload; aborting an unknown or already aborted upload is a no-op"""
        try:
            self.s3_client.abort_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
            )
            logger.info("Multipart upload aborted", extra={"key": key, "upload_id": upload_id})
        except ClientError as e:
            if _error_code(e) not in MISSING_UPLOAD_CODES:
                logger.exception("Failed to abort upload", extra={"key": key, "upload_id": upload_id})
                raise StorageError(f"Failed to abort upload: {e}") from e
            logger.info("Multipart upload already gone", extra={"key": key, "upload_id": upload_id})
        except BotoCoreError as e:
            logger.exception("Failed to abort upload", extra={"key": key, "upload_id": upload_id})
            raise StorageError(f"Failed to abort upload: {e}") from e

        self._record(self.registry.mark_status, upload_id, UploadStatus.ABORTED)

    async def list_files(self, prefix: str = "") -> List[FileInfo]:
        files = []
        paginator = self.s3_client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix or ""):
                for item in page.get("Contents", []):
                    files.append(
                        FileInfo(
                            key=item["Key"],
                            file_name=item["Key"].split("/")[-1],
                            size=item["Size"],
                            last_modified=item["LastModified"],
                            etag=item.get("ETag", ""),
                        )
                    )
        except (BotoCoreError, ClientError) as e:
            logger.exception("Failed to list files", extra={"prefix": prefix})
            raise StorageError(f"Failed to list files: {e}") from e
        return files

    def get_download_url(self, key: str) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=self.settings.download_url_expires,
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception("Failed to generate download URL", extra={"key": key})
            raise StorageError(f"Failed to generate download URL: {e}") from e

    async def delete_file(self, key: str) -> dict:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.exception("Failed to delete file", extra={"key": key})
            raise StorageError(f"Failed to delete file: {e}") from e
        logger.info("File deleted", extra={"key": key})
        return {"success": True, "message": "File deleted successfully"}

    async def configure_cors(self) -> None:
        try:
            self.s3_client.put_bucket_cors(
                Bucket=self.bucket_name,
                CORSConfiguration={
                    "CORSRules": [
                        {
                            "AllowedHeaders": ["*"],
                            "AllowedMethods": ["PUT", "POST", "GET"],
                            "AllowedOrigins": list(self.settings.cors_origins),
                            "ExposeHeaders": ["ETag"],
                        }
                    ]
                },
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception("Failed to configure CORS", extra={"bucket": self.bucket_name})
            raise StorageError(f"Failed to configure CORS: {e}") from e
        logger.info("CORS configuration applied", extra={"bucket": self.bucket_name})

    async def get_active_uploads(self) -> List[UploadRecord]:
        return self.registry.list_active()

    def _record(self, operation, *args) -> None:
        # the store call already succeeded; a registry outage must not fail it
        try:
            operation(*args)
        except redis.RedisError:
            logger.exception("Upload registry unavailable", extra={"operation": operation.__name__})
