from dataclasses import dataclass


@dataclass(frozen=True)
class UploadedReference:
    """Stable locator returned by the file transport."""

    file_url: str
    file_name: str
    file_size_bytes: int
