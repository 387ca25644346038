import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CHUNK_SIZE = 20 * 1024 * 1024  # 20MB keeps 100GB files under the part ceiling
MAX_PARTS = 10000


class UploadConfig(BaseModel):
    """Per-session tuning for the multipart uploader."""

    model_config = ConfigDict(frozen=True)

    api_url: str = "http://localhost:8000/api"
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    concurrency_limit: int = Field(default=5, ge=1)
    retry_budget: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=0.5, ge=0)
    request_timeout: float = Field(default=300.0, gt=0)
    part_timeout: float = Field(default=600.0, gt=0)
    max_parts: int = Field(default=MAX_PARTS, ge=1, le=MAX_PARTS)

    @classmethod
    def from_env(cls) -> "UploadConfig":
        load_dotenv()
        values = {
            "api_url": os.getenv("UPLOADER_API_URL"),
            "chunk_size": os.getenv("UPLOADER_CHUNK_SIZE"),
            "concurrency_limit": os.getenv("UPLOADER_CONCURRENCY_LIMIT"),
            "retry_budget": os.getenv("UPLOADER_RETRY_BUDGET"),
            "retry_delay": os.getenv("UPLOADER_RETRY_DELAY"),
            "request_timeout": os.getenv("UPLOADER_REQUEST_TIMEOUT"),
            "part_timeout": os.getenv("UPLOADER_PART_TIMEOUT"),
        }
        return cls(**{name: value for name, value in values.items() if value})
