import mimetypes
from collections.abc import Iterable
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlsplit

from docmark.intake.exceptions import (
    FileTooLargeError,
    InvalidFileUrlError,
    MissingExtensionError,
    UnsupportedTypeError,
)
from docmark.intake.models import SelectedFile
from docmark.logging.logger import Log
from docmark.upload.models import UploadedReference

DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024
DEFAULT_ALLOWED_EXTENSIONS = ("pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx")


def file_extension(name: str) -> str | None:
    """Return the lower-cased text after the last dot, or None without a dot."""
    _, dot, ext = name.rpartition(".")
    if not dot:
        return None
    return ext.lower()


def remote_reference(file_url: str) -> UploadedReference:
    """Reference a file the backend already stores, skipping the upload.

    Raises:
        InvalidFileUrlError: if the URL is blank or has no scheme and host.
    """
    url = file_url.strip()
    if not url:
        raise InvalidFileUrlError("Enter the URL of the file to process")
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise InvalidFileUrlError(f"File URL '{url}' must be absolute")
    name = PurePosixPath(unquote(parts.path)).name or parts.netloc
    return UploadedReference(file_url=url, file_name=name, file_size_bytes=0)


class FileIntake:
    """Validates a user-selected file and holds the current selection."""

    def __init__(
        self,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        allowed_extensions: Iterable[str] = DEFAULT_ALLOWED_EXTENSIONS,
    ) -> None:
        self._max_size_bytes = max_size_bytes
        self._allowed = frozenset(e.lower().lstrip(".") for e in allowed_extensions)
        self._selected: SelectedFile | None = None

    @property
    def selected(self) -> SelectedFile | None:
        return self._selected

    def select(self, name: str, content: bytes) -> SelectedFile:
        """Validate and store a new selection.

        The previous selection is kept untouched when validation fails.

        Raises:
            FileTooLargeError: if the content is larger than the ceiling.
            MissingExtensionError: if the name has no extension.
            UnsupportedTypeError: if the extension is not allowed.
        """
        extension = self._validate(name, len(content))
        selected = SelectedFile(
            name=name,
            size_bytes=len(content),
            extension=extension,
            mime_type=mimetypes.guess_type(name)[0] or "application/octet-stream",
            content=content,
        )
        self._selected = selected
        Log.info(f"Selected file {name} ({selected.size_bytes} bytes)")
        return selected

    def select_path(self, path: Path) -> SelectedFile:
        """Validate a file on disk, checking its size before reading it.

        Raises:
            FileNotFoundError: if the path does not exist.
            InputValidationError: see select().
        """
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        self._validate(path.name, path.stat().st_size)
        return self.select(path.name, path.read_bytes())

    def clear(self) -> None:
        self._selected = None

    def _validate(self, name: str, size_bytes: int) -> str:
        if size_bytes > self._max_size_bytes:
            limit_mb = round(self._max_size_bytes / 1024 / 1024)
            raise FileTooLargeError(
                f"File {name} is {size_bytes} bytes; the limit is {limit_mb}MB"
            )
        extension = file_extension(name)
        if extension is None:
            raise MissingExtensionError(f"File name '{name}' must include an extension")
        if extension not in self._allowed:
            raise UnsupportedTypeError(
                f"Unsupported file type '.{extension}'. "
                f"Supported: {', '.join(sorted(self._allowed))}"
            )
        return extension
