from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from faker import Faker

from upload_client.config import UploadConfig
from upload_server.config import ServerSettings
from upload_server.services.upload_registry import UploadRegistry

fake = Faker()

MiB = 1024 * 1024


@pytest.fixture
def upload_config() -> UploadConfig:
    return UploadConfig(
        api_url="http://uploader.test/api",
        chunk_size=20 * MiB,
        concurrency_limit=5,
        retry_budget=3,
        retry_delay=0,
    )


@pytest.fixture
def server_settings() -> ServerSettings:
    return ServerSettings(
        bucket_name=fake.slug(),
        aws_region="eu-west-3",
        aws_access_key=fake.password(),
        aws_secret_key=fake.password(),
    )


@pytest.fixture
def redis_client() -> MagicMock:
    store = {}
    client = MagicMock()
    client.get.side_effect = store.get
    client.setex.side_effect = lambda key, ttl, value: store.__setitem__(key, value)
    client.delete.side_effect = lambda key: store.pop(key, None)
    client.keys.side_effect = lambda pattern: [k for k in store if k.startswith(pattern.rstrip("*"))]
    client.store = store
    return client


@pytest.fixture
def registry(redis_client: MagicMock) -> UploadRegistry:
    return UploadRegistry(redis_client, ttl=timedelta(days=7))


@pytest.fixture
def s3_client() -> MagicMock:
    client = MagicMock()
    client.create_multipart_upload.return_value = {"UploadId": fake.uuid4()}
    client.generate_presigned_url.return_value = fake.url()
    client.complete_multipart_upload.return_value = {"Location": fake.url()}
    return client
