"""Network access.

Provides HTTP/HTTPS requests, both for fetching extension sources and for
sideloaded code itself.
"""

from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from sideport.core.logging import get_logger

logger = get_logger(__name__)


class NetworkFetchCapability:
    """Make HTTP requests."""

    def __init__(
        self,
        allowed_domains: list[str] | None = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """Initialize network capability.

        Args:
            allowed_domains: If provided, only these domains are accessible.
                           If None, all domains are allowed.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self._allowed_domains = allowed_domains
        self._timeout = timeout
        self._transport = transport

    @property
    def timeout(self) -> float:
        return self._timeout

    def can_fetch(self, url: str) -> bool:
        """Check if a URL may be requested."""
        parsed = urlparse(str(url))
        if parsed.scheme not in ("http", "https"):
            return False
        if self._allowed_domains is None:
            return True

        domain = parsed.netloc.lower()
        return any(
            domain == allowed or domain.endswith(f".{allowed}")
            for allowed in self._allowed_domains
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[dict[str, str]] = None,
        body: Any = None
    ) -> httpx.Response:
        """Perform a request and return the response.

        Raises:
            PermissionError: the domain is not allowed.
            httpx.HTTPError: the request failed.
        """
        if not self.can_fetch(url):
            raise PermissionError(f"Domain not allowed: {url}")

        async with self.client() as client:
            response = await client.request(
                method=method.upper(),
                url=url,
                headers=headers or {},
                content=body
            )
            # Read before the client closes.
            await response.aread()
        logger.debug(f"{method.upper()} {url} -> {response.status_code}", component="network", url=url)
        return response
