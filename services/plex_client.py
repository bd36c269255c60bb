"""Low-level Plex HTTP client: authentication headers, status checks and JSON decoding."""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from core.errors import PlexError
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


class PlexClient:
    """Thin async wrapper around :class:`httpx.AsyncClient` bound to one Plex server."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        # Local Plex servers commonly present self-signed certificates.
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            verify=False,
            transport=transport,
            headers={"X-Plex-Token": token, "Accept": "application/json"},
        )

    async def __aenter__(self) -> "PlexClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, params=params, content=content, headers=headers)
        except httpx.RequestError as e:
            raise PlexError(f"Failed to reach Plex at {self.base_url}{path}: {e}") from e

        if not response.is_success:
            raise PlexError(f"Plex HTTP {response.status_code} for {method} {path}", status_code=response.status_code)
        return response

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self.request("GET", path, params=params)
        try:
            data = response.json()
        except ValueError as e:
            raise PlexError(f"Failed to parse JSON from Plex {path}") from e
        if not isinstance(data, dict):
            raise PlexError(f"Unexpected JSON payload from Plex {path}")
        return data

    def _same_server(self, url: httpx.URL) -> bool:
        base = httpx.URL(self.base_url)
        return (url.scheme, url.host, url.port) == (base.scheme, base.host, base.port)

    async def fetch_thumbnail(self, rating_key: str) -> Tuple[int, bytes, str]:
        """
        Fetch the current poster of an item, following at most one redirect.
        A redirect to another host is followed without the Plex token.
        Returns ``(status_code, body, content_type)``; transport errors raise :class:`PlexError`.
        """
        path = f"/library/metadata/{rating_key}/thumb"
        try:
            response = await self._client.get(path, follow_redirects=False)
            if response.is_redirect:
                location = response.headers.get("location", "")
                if not location:
                    return 500, b"redirect without location", "text/plain"
                target = location if location.startswith("http") else f"{self.base_url}{location}"
                follow = self._client.build_request("GET", target)
                if not self._same_server(follow.url):
                    del follow.headers["X-Plex-Token"]
                response = await self._client.send(follow, follow_redirects=False)
        except httpx.RequestError as e:
            raise PlexError(f"Plex unreachable while fetching thumbnail {rating_key}: {e}") from e

        content_type = response.headers.get("content-type", "image/jpeg")
        return response.status_code, response.content, content_type
