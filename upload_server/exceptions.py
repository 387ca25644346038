class UploadServerError(Exception):
    """Base class for errors raised by the upload API."""

    status_code = 500


class UploadValidationError(UploadServerError):
    """Malformed initiate/sign/complete/abort request."""

    status_code = 400


class StorageError(UploadServerError):
    """The object store call failed."""

    status_code = 500


class ManifestRejectedError(StorageError):
    """The object store rejected the part manifest on completion."""

    status_code = 502
