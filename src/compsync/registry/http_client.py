"""HTTP registry transport built on ``httpx``.

Provides ``fetch_json``, a thin wrapper around ``httpx.AsyncClient`` with
standardised timeouts, user-agent headers, and error mapping, and
``HttpTransport``, the ``RegistryTransport`` that serves a registry laid
out as::

    {base}/index.json
    {base}/components/{name}.json

Error mapping:

- 404 on a descriptor → ``None`` (the client raises ``ComponentNotFound``)
- connection errors, timeouts, other HTTP errors → ``RegistryUnreachable``
- undecodable JSON → ``SchemaInvalid``
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from compsync import __version__
from compsync.exceptions import RegistryUnreachable, SchemaInvalid
from compsync.registry.base import RegistryTransport

logger = logging.getLogger(__name__)

# Timeout for all registry HTTP requests (seconds).
DEFAULT_TIMEOUT: float = 30.0

# User-Agent sent with every request.
USER_AGENT: str = f"compsync/{__version__}"

INDEX_PATH: str = "index.json"
COMPONENT_PATH: str = "components/{name}.json"


class NotFound(Exception):
    """Internal signal for a 404 response."""


async def fetch_json(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """Fetch a URL and parse the response as JSON.

    Args:
        url: The URL to fetch.
        client: Optional shared client. A short-lived one is created
            when omitted.
        timeout: Request timeout in seconds (ignored with ``client``).

    Returns:
        Parsed JSON response.

    Raises:
        NotFound: On a 404 response.
        RegistryUnreachable: On other HTTP errors, timeouts, or transport
            failures.
        SchemaInvalid: If the body is not valid JSON.
    """
    if client is None:
        async with httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        ) as own_client:
            return await fetch_json(url, client=own_client)

    try:
        resp = await client.get(url)
        resp.raise_for_status()
    except httpx.TimeoutException as exc:
        logger.warning("Timeout fetching %s", url)
        raise RegistryUnreachable(url, "timeout") from exc
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        if status == 404:
            raise NotFound(url) from exc
        logger.warning("HTTP %d from %s", status, url)
        raise RegistryUnreachable(url, f"HTTP {status}") from exc
    except httpx.RequestError as exc:
        logger.warning("Request error for %s: %s", url, exc)
        raise RegistryUnreachable(url, str(exc) or type(exc).__name__) from exc

    try:
        return resp.json()
    except ValueError as exc:
        logger.warning("Invalid JSON from %s", url)
        raise SchemaInvalid(url, [f"response is not valid JSON: {exc}"]) from exc


class HttpTransport(RegistryTransport):
    """Registry transport over HTTP(S).

    A single ``httpx.AsyncClient`` is shared across requests and created
    lazily, so connection pooling works across a whole resolution run.

    Args:
        base_url: Registry root URL.
        timeout: Per-request timeout in seconds.
        client: Optional preconfigured client (e.g. with a mock transport).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def location(self) -> str:
        """Return the registry base URL."""
        return self.base_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    async def get_index(self) -> Any:
        """Fetch ``index.json``. A 404 here means a misconfigured registry."""
        url = self.base_url + INDEX_PATH
        try:
            return await fetch_json(url, client=self._get_client())
        except NotFound as exc:
            raise RegistryUnreachable(url, "index not found") from exc

    async def get_descriptor(self, name: str) -> Any | None:
        """Fetch ``components/{name}.json``; None on 404."""
        url = self.base_url + COMPONENT_PATH.format(name=quote(name, safe="@"))
        try:
            return await fetch_json(url, client=self._get_client())
        except NotFound:
            return None

    async def aclose(self) -> None:
        """Close the shared client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
