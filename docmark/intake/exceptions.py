class InputValidationError(Exception):
    """Base exception for input rejected before any network call."""


class FileTooLargeError(InputValidationError):
    """Raised when a selected file exceeds the configured size ceiling."""


class MissingExtensionError(InputValidationError):
    """Raised when a filename has no dot-delimited extension."""


class UnsupportedTypeError(InputValidationError):
    """Raised when a file extension is not in the allow-list."""


class InvalidFileUrlError(InputValidationError):
    """Raised when a remote file URL is blank or not absolute."""
