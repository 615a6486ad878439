import base64
import hashlib
import hmac
from collections.abc import Callable, Generator, Iterable
from email.utils import formatdate
from urllib.parse import quote

import httpx

# encodeURIComponent-compatible: these stay unescaped in signed query strings
_QUERY_SAFE = "!*'()"


def canonical_query_string(items: Iterable[tuple[str, str]]) -> str:
    """Sort parameters by key, then by value, and percent-encode the values."""
    grouped: dict[str, list[str]] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(value)
    pairs = [
        f"{key}={quote(value, safe=_QUERY_SAFE)}"
        for key in sorted(grouped)
        for value in sorted(grouped[key])
    ]
    return "&".join(pairs)


def calculate_signature(
    *,
    method: str,
    path: str,
    query_string: str,
    access_key: str,
    date: str,
    secret_key: str,
) -> str:
    """Return base64(HMAC-SHA256) over the newline-joined request fields."""
    sign_string = f"{method}\n{path}\n{query_string}\n{access_key}\n{date}\n"
    digest = hmac.new(
        secret_key.encode("utf-8"), sign_string.encode("utf-8"), hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


class HmacAuth(httpx.Auth):
    """Signs every request with the gateway's X-HMAC-* headers."""

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        algorithm: str = "hmac-sha256",
        date_factory: Callable[[], str] | None = None,
    ) -> None:
        self._access_key = access_key
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._date_factory = date_factory or (lambda: formatdate(usegmt=True))

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        date = self._date_factory()
        signature = calculate_signature(
            method=request.method,
            path=request.url.path,
            query_string=canonical_query_string(request.url.params.multi_items()),
            access_key=self._access_key,
            date=date,
            secret_key=self._secret_key,
        )
        request.headers["Date"] = date
        request.headers["X-HMAC-ALGORITHM"] = self._algorithm
        request.headers["X-HMAC-ACCESS-KEY"] = self._access_key
        request.headers["X-HMAC-SIGNATURE"] = signature
        yield request
