from typing import Optional, Sequence


class UploadError(Exception):
    """Base class for every error raised by the upload client."""


class ValidationError(UploadError):
    """Malformed initiate/complete request, or an input the uploader cannot plan."""


class TooManyPartsError(ValidationError):
    def __init__(self, part_count: int, max_parts: int):
        super().__init__(
            f"File needs {part_count} parts but multipart uploads allow at most {max_parts}; "
            "increase the chunk size"
        )
        self.part_count = part_count
        self.max_parts = max_parts


class SigningError(UploadError):
    """Credential issuance for a part failed."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class TransientUploadError(UploadError):
    """Network error, timeout or 5xx while sending a part."""


class PermanentUploadError(UploadError):
    """The part attempt cannot succeed as sent (4xx, response without an ETag)."""


class AbortError(UploadError):
    """The store's abort call failed."""


class SessionStateError(UploadError):
    """An operation was attempted from a state that does not allow it."""


class UploadAbortedError(UploadError):
    """The caller aborted the session before it finished."""


class UploadFailedError(UploadError):
    """Session-level failure, reported with the progress reached and the parts at fault."""

    reason = "the upload failed"

    def __init__(
        self,
        message: Optional[str] = None,
        failed_parts: Sequence[int] = (),
        progress: int = 0,
    ):
        self.failed_parts = sorted(failed_parts)
        self.progress = progress
        super().__init__(message or self.reason)

    def __str__(self) -> str:
        text = super().__str__()
        if self.failed_parts:
            text = f"{text} (failed parts: {', '.join(str(p) for p in self.failed_parts)})"
        return f"{text} at {self.progress}%"


class PartSetIncompleteError(UploadFailedError):
    reason = "some parts could not be uploaded"


class FinalizeError(UploadFailedError):
    reason = "the store rejected the final manifest"
