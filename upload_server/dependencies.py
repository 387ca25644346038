from functools import lru_cache
from typing import Annotated

import redis
from fastapi import Depends

from upload_server.config import ServerSettings, load_settings
from upload_server.services.cleanup_service import CleanupService
from upload_server.services.upload_registry import UploadRegistry
from upload_server.services.upload_service import UploadService, build_s3_client


@lru_cache
def get_settings() -> ServerSettings:
    return load_settings()


@lru_cache
def get_s3_client():
    return build_s3_client(get_settings())


@lru_cache
def get_registry() -> UploadRegistry:
    settings = get_settings()
    redis_client = redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password or None,
        db=settings.redis_db,
        socket_connect_timeout=5,
        health_check_interval=30,
    )
    return UploadRegistry(redis_client, ttl=settings.session_ttl)


def get_upload_service() -> UploadService:
    return UploadService(get_s3_client(), get_settings(), get_registry())


def get_cleanup_service() -> CleanupService:
    return CleanupService(get_s3_client(), get_settings(), get_registry())


UploadServiceDep = Annotated[UploadService, Depends(get_upload_service)]
