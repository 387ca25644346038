from upload_client.config import UploadConfig
from upload_client.exceptions import (
    AbortError,
    FinalizeError,
    PartSetIncompleteError,
    PermanentUploadError,
    SessionStateError,
    SigningError,
    TooManyPartsError,
    TransientUploadError,
    UploadAbortedError,
    UploadError,
    UploadFailedError,
    ValidationError,
)
from upload_client.uploader import MultipartUploader

__all__ = [
    "AbortError",
    "FinalizeError",
    "MultipartUploader",
    "PartSetIncompleteError",
    "PermanentUploadError",
    "SessionStateError",
    "SigningError",
    "TooManyPartsError",
    "TransientUploadError",
    "UploadAbortedError",
    "UploadConfig",
    "UploadError",
    "UploadFailedError",
    "ValidationError",
]
