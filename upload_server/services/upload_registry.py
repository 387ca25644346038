import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import redis

from upload_server.models.upload_models import UploadRecord, UploadStatus

logger = logging.getLogger(__name__)

KEY_PREFIX = "multipart_upload:"


class UploadRegistry:
    """Redis-backed record of multipart uploads started through the API.

    Entries are written on initiate and updated on complete/abort; every write
    refreshes the TTL so forgotten uploads eventually fall out of Redis even if
    the cleanup task never sees them.
    """

    def __init__(self, redis_client: redis.Redis, ttl: timedelta):
        self.redis_client = redis_client
        self.ttl = ttl

    @staticmethod
    def _key(upload_id: str) -> str:
        return f"{KEY_PREFIX}{upload_id}"

    def record_initiated(
        self, key: str, upload_id: str, file_name: str, content_type: str
    ) -> UploadRecord:
        now = datetime.now(timezone.utc)
        record = UploadRecord(
            key=key,
            upload_id=upload_id,
            file_name=file_name,
            content_type=content_type,
            status=UploadStatus.INITIATED,
            created_at=now,
            updated_at=now,
        )
        self._store(record)
        return record

    def mark_status(self, upload_id: str, status: UploadStatus) -> Optional[UploadRecord]:
        record = self.get(upload_id)
        if record is None:
            # uploads started before the registry existed, or already expired
            return None
        record.status = status
        record.updated_at = datetime.now(timezone.utc)
        self._store(record)
        return record

    def get(self, upload_id: str) -> Optional[UploadRecord]:
        raw = self.redis_client.get(self._key(upload_id))
        if not raw:
            return None
        return UploadRecord.model_validate_json(raw)

    def list_records(self) -> List[UploadRecord]:
        records = []
        for redis_key in self.redis_client.keys(f"{KEY_PREFIX}*"):
            raw = self.redis_client.get(redis_key)
            if not raw:
                continue
            try:
                records.append(UploadRecord.model_validate_json(raw))
            except ValueError:
                logger.warning("Skipping unreadable upload record", extra={"redis_key": redis_key})
        return records

    def list_active(self) -> List[UploadRecord]:
        return [r for r in self.list_records() if r.status == UploadStatus.INITIATED]

    def delete(self, upload_id: str) -> None:
        self.redis_client.delete(self._key(upload_id))

    def _store(self, record: UploadRecord) -> None:
        try:
            self.redis_client.setex(
                self._key(record.upload_id),
                int(self.ttl.total_seconds()),
                record.model_dump_json(),
            )
        except redis.RedisError:
            logger.exception("Failed to store upload record", extra={"upload_id": record.upload_id})
            raise
