class BackendError(Exception):
    """Raised when a call to the transport, job backend or policy store fails."""


class BackendNetworkError(BackendError):
    """Raised when the backend cannot be reached (connection refused, timeout)."""


class BackendResponseError(BackendError):
    """Raised when the backend answers with an error status or a malformed payload."""
