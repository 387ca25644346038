from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_PARTS = 10000


class UploadStatus(str, Enum):
    INITIATED = "initiated"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class InitiateUploadRequest(ApiModel):
    file_name: str = Field(alias="fileName", min_length=1)
    content_type: Optional[str] = Field(default=None, alias="contentType")

    @field_validator("file_name")
    @classmethod
    def strip_directories(cls, value: str) -> str:
        name = value.replace("\\", "/").split("/")[-1].strip()
        if not name:
            raise ValueError("fileName must name a file")
        return name


class InitiateUploadResponse(ApiModel):
    upload_id: str = Field(alias="uploadId")
    key: str
    message: str = "Multipart upload initiated successfully"


class SignedUrlResponse(ApiModel):
    signed_url: str = Field(alias="signedUrl")
    part_number: int = Field(alias="partNumber")


class CompletedPart(ApiModel):
    etag: str = Field(alias="ETag", min_length=1)
    part_number: int = Field(alias="PartNumber", ge=1, le=MAX_PARTS)


class CompleteUploadRequest(ApiModel):
    key: str = Field(min_length=1)
    upload_id: str = Field(alias="uploadId", min_length=1)
    parts: List[CompletedPart]

    @field_validator("parts")
    @classmethod
    def require_parts(cls, value: List[CompletedPart]) -> List[CompletedPart]:
        if not value:
            raise ValueError("No parts provided for completion")
        return value


class CompleteUploadResponse(ApiModel):
    location: Optional[str] = None
    message: str = "Upload completed successfully"


class AbortUploadRequest(ApiModel):
    key: str = Field(min_length=1)
    upload_id: str = Field(alias="uploadId", min_length=1)


class DeleteFileRequest(ApiModel):
    key: str = Field(min_length=1)


class FileInfo(ApiModel):
    key: str
    file_name: str = Field(alias="fileName")
    size: int
    last_modified: datetime = Field(alias="lastModified")
    etag: str


class FileListResponse(ApiModel):
    files: List[FileInfo]
    count: int


class DownloadUrlResponse(ApiModel):
    download_url: str = Field(alias="downloadUrl")


class UploadRecord(BaseModel):
    key: str
    upload_id: str
    file_name: str
    content_type: str
    status: UploadStatus
    created_at: datetime
    updated_at: datetime
