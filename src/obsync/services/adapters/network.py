"""HTTP network adapter built on httpx."""

import time
from collections.abc import Mapping
from typing import Any

import httpx

from obsync import __version__
from obsync.exceptions import HttpError, NetworkError, OfflineError
from obsync.logger import get_logger

from .base import NetworkAdapter

logger = get_logger(__name__)


class HttpNetwork(NetworkAdapter):
    """Network adapter probing the catalog for connectivity.

    ``is_online`` sends a HEAD request to ``{base_url}{probe_path}``; the answer
    is remembered for ``probe_ttl`` seconds so that a burst of fetches does not
    probe once per request.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        probe_path: str = "/version",
        probe_ttl: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.probe_path = probe_path
        self.probe_ttl = probe_ttl
        self.forced_offline = False
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            headers={"User-Agent": f"obsync/{__version__}"},
        )
        self._probe: tuple[float, bool] | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def is_online(self) -> bool:
        if self.forced_offline:
            return False

        now = time.monotonic()
        if self._probe is not None and now - self._probe[0] < self.probe_ttl:
            return self._probe[1]

        try:
            response = await self._client.head(f"{self.base_url}{self.probe_path}")
            online = response.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            online = False

        self._probe = (now, online)
        return online

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        if not await self.is_online():
            raise OfflineError(url=url)

        try:
            response = await self._client.request(method, url, params=params, headers=headers)
        except httpx.HTTPError as e:
            # Connectivity may have dropped; probe again on the next call
            self._probe = None
            raise NetworkError("network.request_failed", url=url, error=str(e)) from e

        if not response.is_success:
            raise HttpError(response.status_code, str(response.url))
        return response
