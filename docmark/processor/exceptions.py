from docmark.intake.exceptions import InputValidationError


class MissingPolicyError(InputValidationError):
    """Raised when an embed request has no policy selected."""


class MissingWatermarkTextError(InputValidationError):
    """Raised when an embed request has empty watermark text."""


class UnsupportedOperationError(InputValidationError):
    """Raised when the requested operation is neither embed nor extract."""


class SubmissionFailedError(Exception):
    """Raised when the job backend refuses or fails to create a task."""
