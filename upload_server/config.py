import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def cors_origins_from_env() -> List[str]:
    origins = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in origins.split(",") if origin.strip()]


@dataclass(frozen=True)
class ServerSettings:
    bucket_name: str
    aws_region: str = "ap-northeast-1"
    aws_access_key: Optional[str] = None
    aws_secret_key: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    use_accelerate_endpoint: bool = False
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    upload_url_expires: int = 24 * 60 * 60  # 24h
    download_url_expires: int = 3 * 24 * 60 * 60  # 72h
    session_ttl_days: int = 7
    cleanup_interval_hours: int = 6
    stale_upload_days: int = 7
    finished_record_hours: int = 48
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(days=self.session_ttl_days)

    @property
    def finished_record_age(self) -> timedelta:
        return timedelta(hours=self.finished_record_hours)

    @property
    def stale_upload_age(self) -> timedelta:
        return timedelta(days=self.stale_upload_days)


def load_settings() -> ServerSettings:
    bucket_name = os.getenv("BUCKET_NAME") or os.getenv("S3_BUCKET")
    if not bucket_name:
        raise ValueError("Environment variable BUCKET_NAME is required")

    return ServerSettings(
        bucket_name=bucket_name,
        aws_region=os.getenv("AWS_REGION", "ap-northeast-1"),
        aws_access_key=os.getenv("AWS_ACCESS_KEY"),
        aws_secret_key=os.getenv("AWS_SECRET_KEY"),
        s3_endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
        use_accelerate_endpoint=_env_bool("S3_USE_ACCELERATE", False),
        redis_host=os.getenv("REDIS_HOST", "redis"),
        redis_port=_env_int("REDIS_PORT", 6379),
        redis_password=os.getenv("REDIS_PASSWORD", ""),
        redis_db=_env_int("REDIS_DB", 0),
        upload_url_expires=_env_int("UPLOAD_URL_EXPIRES", 24 * 60 * 60),
        download_url_expires=_env_int("DOWNLOAD_URL_EXPIRES", 3 * 24 * 60 * 60),
        session_ttl_days=_env_int("SESSION_TTL_DAYS", 7),
        cleanup_interval_hours=_env_int("CLEANUP_INTERVAL_HOURS", 6),
        stale_upload_days=_env_int("STALE_UPLOAD_DAYS", 7),
        finished_record_hours=_env_int("FINISHED_RECORD_HOURS", 48),
        cors_origins=cors_origins_from_env(),
    )
