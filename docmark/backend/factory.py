from dataclasses import dataclass
from typing import ClassVar

import httpx

from docmark.backend.base import BaseFileTransport, BaseJobBackend, BasePolicyStore
from docmark.backend.example_backend import ExampleBackend
from docmark.backend.http_backend import HttpFileTransport, HttpJobBackend, HttpPolicyStore
from docmark.backend.signing import HmacAuth
from docmark.config.settings import Settings


@dataclass
class BackendBundle:
    """The three collaborators plus the HTTP client they share, if any."""

    transport: BaseFileTransport
    jobs: BaseJobBackend
    policies: BasePolicyStore
    client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


class BackendFactory:
    """Creates the configured backend adapters."""

    PROVIDERS: ClassVar[tuple[str, ...]] = ("http", "example")

    @classmethod
    def create(cls, settings: Settings) -> BackendBundle:
        provider = settings.backend_provider.lower()
        if provider == "example":
            backend = ExampleBackend()
            return BackendBundle(transport=backend, jobs=backend, policies=backend)
        if provider == "http":
            client = cls.create_http_client(settings)
            return BackendBundle(
                transport=HttpFileTransport(client),
                jobs=HttpJobBackend(client),
                policies=HttpPolicyStore(client),
                client=client,
            )
        raise ValueError(
            f"Unknown backend provider '{provider}'. Choose from: {list(cls.PROVIDERS)}"
        )

    @classmethod
    def create_http_client(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> httpx.AsyncClient:
        """Build the shared AsyncClient; requests are signed when keys are set."""
        return httpx.AsyncClient(
            base_url=settings.backend_base_url,
            timeout=settings.backend_timeout_seconds,
            verify=settings.backend_verify_ssl,
            auth=cls._resolve_auth(settings),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def _resolve_auth(cls, settings: Settings) -> HmacAuth | None:
        access_key = settings.backend_access_key.strip()
        secret_key = settings.backend_secret_key.strip()
        if not access_key and not secret_key:
            return None
        if not access_key or not secret_key:
            raise ValueError(
                "backend_access_key and backend_secret_key must be set together"
            )
        return HmacAuth(
            access_key=access_key,
            secret_key=secret_key,
            algorithm=settings.backend_hmac_algorithm,
        )
