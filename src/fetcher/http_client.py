"""Async HTTP client wrapper with timeout configuration."""

from typing import Any, Dict, Optional

import httpx


class AsyncHTTPClient:
    """
    Async HTTP client wrapper around httpx.AsyncClient.

    Provides:
    - A single per-attempt timeout
    - Redirect following (recipe sites redirect heavily)
    - Connection pooling via httpx
    - Context manager for proper lifecycle management
    """

    def __init__(
        self,
        timeout: float = 30.0,
        connect_timeout: Optional[float] = None,
        max_connections: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HTTP client.

        Args:
            timeout: Per-attempt timeout in seconds
            connect_timeout: Connection timeout in seconds (defaults to timeout)
            max_connections: Connection pool size
            transport: Optional transport (MockTransport/ASGITransport in tests)
        """
        self.timeout = timeout
        self.connect_timeout = connect_timeout if connect_timeout is not None else timeout
        self.max_connections = max_connections
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Enter async context manager."""
        timeout = httpx.Timeout(self.timeout, connect=self.connect_timeout)
        limits = httpx.Limits(max_connections=self.max_connections)
        self._client = httpx.AsyncClient(
            timeout=timeout,
            limits=limits,
            follow_redirects=True,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Perform GET request.

        Args:
            url: URL to request
            headers: Request headers
            timeout: Override of the per-attempt timeout in seconds
            **kwargs: Additional arguments for httpx

        Returns:
            HTTP response
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        if timeout is not None:
            kwargs["timeout"] = timeout
        return await self._client.get(url, headers=headers, **kwargs)
