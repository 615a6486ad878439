from dataclasses import dataclass, field


@dataclass(frozen=True)
class SelectedFile:
    """A validated local file waiting to be uploaded."""

    name: str
    size_bytes: int
    extension: str
    mime_type: str
    content: bytes = field(repr=False)
