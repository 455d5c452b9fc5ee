"""Async HTTP client wrapper with timeout configuration."""

from typing import Any, Dict, Optional

import httpx


class AsyncHTTPClient:
    """
    Async HTTP client wrapper around httpx.AsyncClient.

    Provides:
    - Configurable connect and read timeouts
    - Connection pooling via httpx
    - Lazy opening, so long-lived services can share one client
    - Context manager for scoped lifecycle management
    """

    def __init__(
        self,
        connect_timeout: float = 3.0,
        read_timeout: float = 30.0,
        write_timeout: float = 5.0,
        pool_timeout: float = 5.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HTTP client.

        Args:
            connect_timeout: Connection timeout in seconds
            read_timeout: Read timeout in seconds
            write_timeout: Write timeout in seconds
            pool_timeout: Pool timeout in seconds
            headers: Default headers sent with every request
            transport: Optional httpx transport (mock or ASGI transports in tests)
        """
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.pool_timeout = pool_timeout
        self.headers = headers or {}
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _open(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = httpx.Timeout(
                connect=self.connect_timeout,
                read=self.read_timeout,
                write=self.write_timeout,
                pool=self.pool_timeout
            )
            self._client = httpx.AsyncClient(
                timeout=timeout,
                headers=self.headers,
                transport=self.transport,
            )
        return self._client

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def __aenter__(self):
        """Enter async context manager."""
        self._open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client. Safe to call repeatedly."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Perform GET request.

        Args:
            url: URL to request
            params: Query parameters
            **kwargs: Additional arguments for httpx

        Returns:
            HTTP response
        """
        return await self._open().get(url, params=params, **kwargs)

    async def post(
        self,
        url: str,
        json: Optional[Any] = None,
        **kwargs
    ) -> httpx.Response:
        """Perform POST request with a JSON body."""
        return await self._open().post(url, json=json, **kwargs)
