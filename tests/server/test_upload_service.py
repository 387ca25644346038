from unittest.mock import MagicMock

import pytest
import redis
from botocore.exceptions import ClientError
from faker import Faker

from upload_server.config import ServerSettings
from upload_server.exceptions import (
    ManifestRejectedError,
    StorageError,
    UploadValidationError,
)
from upload_server.models.upload_models import CompletedPart, UploadStatus
from upload_server.services.upload_registry import UploadRegistry
from upload_server.services.upload_service import UploadService, guess_content_type

fake = Faker()


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture(name="upload_service")
def fixture_upload_service(
    s3_client: MagicMock, server_settings: ServerSettings, registry: UploadRegistry
) -> UploadService:
    return UploadService(s3_client, server_settings, registry)


@pytest.mark.asyncio
async def test_initiate_upload_uses_random_prefix(
    upload_service: UploadService, s3_client: MagicMock, registry: UploadRegistry
) -> None:
    result = await upload_service.initiate_upload("report.pdf")

    prefix, name = result["key"].split("/")
    assert len(prefix) == 8
    assert name == "report.pdf"
    s3_client.create_multipart_upload.assert_called_once_with(
        Bucket=upload_service.bucket_name, Key=result["key"], ContentType="application/pdf"
    )
    assert registry.get(result["uploadId"]).status == UploadStatus.INITIATED


def test_content_type_falls_back_to_octet_stream() -> None:
    assert guess_content_type("notes.txt") == "text/plain"
    assert guess_content_type("blob") == "application/octet-stream"


def test_part_url_signed_for_24_hours(upload_service: UploadService, s3_client: MagicMock) -> None:
    upload_service.generate_part_url("ab12cd34/x.bin", "upload-1", 3)

    s3_client.generate_presigned_url.assert_called_once_with(
        "upload_part",
        Params={
            "Bucket": upload_service.bucket_name,
            "Key": "ab12cd34/x.bin",
            "UploadId": "upload-1",
            "PartNumber": 3,
        },
        ExpiresIn=86400,
        HttpMethod="PUT",
    )


@pytest.mark.parametrize("part_number", [0, 10001])
def test_part_url_rejects_out_of_range_part(upload_service: UploadService, part_number: int) -> None:
    with pytest.raises(UploadValidationError):
        upload_service.generate_part_url("key", "upload-1", part_number)


@pytest.mark.asyncio
async def test_complete_sorts_parts(upload_service: UploadService, s3_client: MagicMock) -> None:
    parts = [CompletedPart(etag="e2", part_number=2), CompletedPart(etag="e1", part_number=1)]

    location = await upload_service.complete_upload("key", "upload-1", parts)

    assert location == s3_client.complete_multipart_upload.return_value["Location"]
    s3_client.complete_multipart_upload.assert_called_once_with(
        Bucket=upload_service.bucket_name,
        Key="key",
        UploadId="upload-1",
        MultipartUpload={"Parts": [{"ETag": "e1", "PartNumber": 1}, {"ETag": "e2", "PartNumber": 2}]},
    )


@pytest.mark.asyncio
async def test_complete_with_gap_never_reaches_store(upload_service: UploadService, s3_client: MagicMock) -> None:
    parts = [CompletedPart(etag="e1", part_number=1), CompletedPart(etag="e3", part_number=3)]

    with pytest.raises(UploadValidationError, match="expected part 2"):
        await upload_service.complete_upload("key", "upload-1", parts)

    s3_client.complete_multipart_upload.assert_not_called()
    s3_client.abort_multipart_upload.assert_not_called()


@pytest.mark.asyncio
async def test_complete_rejected_by_store(upload_service: UploadService, s3_client: MagicMock) -> None:
    s3_client.complete_multipart_upload.side_effect = client_error("InvalidPart", "CompleteMultipartUpload")

    with pytest.raises(ManifestRejectedError):
        await upload_service.complete_upload("key", "upload-1", [CompletedPart(etag="e1", part_number=1)])


@pytest.mark.asyncio
async def test_abort_unknown_upload_is_a_no_op(upload_service: UploadService, s3_client: MagicMock) -> None:
    s3_client.abort_multipart_upload.side_effect = client_error("NoSuchUpload", "AbortMultipartUpload")

    await upload_service.abort_upload("key", fake.uuid4())
    await upload_service.abort_upload("key", fake.uuid4())

    assert s3_client.abort_multipart_upload.call_count == 2


@pytest.mark.asyncio
async def test_abort_marks_registry_record(
    upload_service: UploadService, registry: UploadRegistry
) -> None:
    result = await upload_service.initiate_upload("a.bin")

    await upload_service.abort_upload(result["key"], result["uploadId"])

    assert registry.get(result["uploadId"]).status == UploadStatus.ABORTED
    assert await upload_service.get_active_uploads() == []


@pytest.mark.asyncio
async def test_abort_other_store_errors_raise(upload_service: UploadService, s3_client: MagicMock) -> None:
    s3_client.abort_multipart_upload.side_effect = client_error("AccessDenied", "AbortMultipartUpload")

    with pytest.raises(StorageError):
        await upload_service.abort_upload("key", "upload-1")


@pytest.mark.asyncio
async def test_list_files_extracts_file_names(upload_service: UploadService, s3_client: MagicMock) -> None:
    modified = fake.date_time()
    s3_client.get_paginator.return_value.paginate.return_value = [
        {"Contents": [{"Key": "ab12cd34/photo.png", "Size": 42, "LastModified": modified, "ETag": '"x"'}]},
        {},
    ]

    files = await upload_service.list_files("ab12cd34")

    assert len(files) == 1
    assert files[0].file_name == "photo.png"
    assert files[0].size == 42
    s3_client.get_paginator.return_value.paginate.assert_called_once_with(
        Bucket=upload_service.bucket_name, Prefix="ab12cd34"
    )


def test_download_url_valid_for_72_hours(upload_service: UploadService, s3_client: MagicMock) -> None:
    upload_service.get_download_url("ab12cd34/photo.png")

    assert s3_client.generate_presigned_url.call_args.kwargs["ExpiresIn"] == 259200


@pytest.mark.asyncio
async def test_registry_outage_does_not_fail_initiate(
    s3_client: MagicMock, server_settings: ServerSettings
) -> None:
    redis_client = MagicMock()
    redis_client.setex.side_effect = redis.ConnectionError("down")
    service = UploadService(s3_client, server_settings, UploadRegistry(redis_client, ttl=server_settings.session_ttl))

    result = await service.initiate_upload("a.bin")

    assert result["uploadId"] == s3_client.create_multipart_upload.return_value["UploadId"]
