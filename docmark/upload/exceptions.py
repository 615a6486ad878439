class UploadFailedError(Exception):
    """Raised when the file transport rejects an upload."""
