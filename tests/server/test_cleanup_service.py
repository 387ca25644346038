from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from upload_server.config import ServerSettings
from upload_server.models.upload_models import UploadStatus
from upload_server.services.cleanup_service import CleanupService
from upload_server.services.upload_registry import UploadRegistry


@pytest.fixture(name="cleanup_service")
def fixture_cleanup_service(
    s3_client: MagicMock, server_settings: ServerSettings, registry: UploadRegistry
) -> CleanupService:
    return CleanupService(s3_client, server_settings, registry)


@pytest.mark.asyncio
async def test_aborts_only_stale_uploads(
    cleanup_service: CleanupService, s3_client: MagicMock, registry: UploadRegistry
) -> None:
    now = datetime.now(timezone.utc)
    registry.record_initiated("old/a.bin", "old-upload", "a.bin", "text/plain")
    s3_client.get_paginator.return_value.paginate.return_value = [
        {
            "Uploads": [
                {"Key": "old/a.bin", "UploadId": "old-upload", "Initiated": now - timedelta(days=8)},
                {"Key": "new/b.bin", "UploadId": "new-upload", "Initiated": now - timedelta(hours=1)},
            ]
        }
    ]

    aborted = await cleanup_service.cleanup_incomplete_uploads()

    assert aborted == 1
    s3_client.abort_multipart_upload.assert_called_once_with(
        Bucket=cleanup_service.bucket_name, Key="old/a.bin", UploadId="old-upload"
    )
    assert registry.get("old-upload").status == UploadStatus.ABORTED


@pytest.mark.asyncio
async def test_abort_failure_does_not_stop_sweep(cleanup_service: CleanupService, s3_client: MagicMock) -> None:
    stale = datetime.now(timezone.utc) - timedelta(days=30)
    s3_client.get_paginator.return_value.paginate.return_value = [
        {
            "Uploads": [
                {"Key": "a", "UploadId": "u1", "Initiated": stale},
                {"Key": "b", "UploadId": "u2", "Initiated": stale},
            ]
        }
    ]
    s3_client.abort_multipart_upload.side_effect = [
        ClientError({"Error": {"Code": "AccessDenied"}}, "AbortMultipartUpload"),
        None,
    ]

    assert await cleanup_service.cleanup_incomplete_uploads() == 1
    assert s3_client.abort_multipart_upload.call_count == 2


@pytest.mark.asyncio
async def test_finished_records_removed_after_retention(
    cleanup_service: CleanupService, registry: UploadRegistry
) -> None:
    registry.record_initiated("k1", "finished-old", "a.bin", "text/plain")
    registry.record_initiated("k2", "finished-new", "b.bin", "text/plain")
    registry.record_initiated("k3", "active-old", "c.bin", "text/plain")
    registry.mark_status("finished-old", UploadStatus.COMPLETED)
    registry.mark_status("finished-new", UploadStatus.ABORTED)

    for upload_id in ("finished-old", "active-old"):
        record = registry.get(upload_id)
        record.updated_at -= timedelta(days=3)
        registry._store(record)  # pylint: disable=protected-access

    assert await cleanup_service.cleanup_finished_records() == 1
    assert registry.get("finished-old") is None
    assert registry.get("finished-new") is not None
    assert registry.get("active-old") is not None
