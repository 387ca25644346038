import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import redis
from botocore.exceptions import BotoCoreError, ClientError

from upload_server.config import ServerSettings
from upload_server.models.upload_models import UploadStatus
from upload_server.services.upload_registry import UploadRegistry

logger = logging.getLogger(__name__)


class CleanupService:
    def __init__(self, s3_client: Any, settings: ServerSettings, registry: UploadRegistry):
        self.s3_client = s3_client
        self.settings = settings
        self.bucket_name = settings.bucket_name
        self.registry = registry

    async def start_cleanup_scheduler(self):
        """Run both cleanup passes every cleanup interval until cancelled"""
        while True:
            try:
                await self.cleanup_incomplete_uploads()
                await self.cleanup_finished_records()

                await asyncio.sleep(self.settings.cleanup_interval_hours * 60 * 60)

            except asyncio.CancelledError:
                logger.info("Cleanup scheduler cancelled")
                break
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Error in cleanup scheduler")
                await asyncio.sleep(60)

    async def cleanup_incomplete_uploads(self) -> int:
        """Abort multipart uploads that were never finalized on the store"""
        logger.info("Starting incomplete uploads cleanup", extra={"bucket": self.bucket_name})
        cutoff = datetime.now(timezone.utc) - self.settings.stale_upload_age
        cleanup_count = 0

        paginator = self.s3_client.get_paginator("list_multipart_uploads")
        for page in paginator.paginate(Bucket=self.bucket_name):
            for upload in page.get("Uploads", []):
                initiated = upload["Initiated"]
                if initiated.tzinfo is None:
                    initiated = initiated.replace(tzinfo=timezone.utc)
                if initiated >= cutoff:
                    continue

                try:
                    self.s3_client.abort_multipart_upload(
                        Bucket=self.bucket_name,
                        Key=upload["Key"],
                        UploadId=upload["UploadId"],
                    )
                except (BotoCoreError, ClientError):
                    logger.exception(
                        "Failed to abort stale upload",
                        extra={"key": upload["Key"], "upload_id": upload["UploadId"]},
                    )
                    continue

                cleanup_count += 1
                logger.info(
                    "Aborted stale upload",
                    extra={"key": upload["Key"], "upload_id": upload["UploadId"]},
                )
                try:
                    self.registry.mark_status(upload["UploadId"], UploadStatus.ABORTED)
                except redis.RedisError:
                    logger.exception("Upload registry unavailable during cleanup")

        logger.info("Incomplete uploads cleanup finished", extra={"aborted": cleanup_count})
        return cleanup_count

    async def cleanup_finished_records(self) -> int:
        """Drop registry records of completed or aborted uploads past their retention window"""
        try:
            self.registry.redis_client.ping()
        except redis.RedisError:
            logger.warning("Redis unavailable for cleanup")
            return 0

        cutoff = datetime.now(timezone.utc) - self.settings.finished_record_age
        cleaned_count = 0
        for record in self.registry.list_records():
            if record.status == UploadStatus.INITIATED:
                continue
            if record.updated_at < cutoff:
                self.registry.delete(record.upload_id)
                cleaned_count += 1

        logger.info("Upload record cleanup finished", extra={"removed": cleaned_count})
        return cleaned_count
