"""Network reachability tracking for online/offline routing."""

from __future__ import annotations

import logging

import httpx

from rock_identifier.config import PIPELINE_CONFIG

logger = logging.getLogger(__name__)


class NetworkMonitor:
    """Remembers the last known connectivity state and can re-probe it."""

    def __init__(
        self,
        probe_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.probe_url = probe_url or PIPELINE_CONFIG["network_probe_url"]
        self.timeout = timeout if timeout is not None else PIPELINE_CONFIG["http_timeout_seconds"]
        self._transport = transport
        self._online = True

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        self._online = online

    async def check(self) -> bool:
        """Probe the network and update the cached flag."""
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), transport=self._transport,
            ) as client:
                resp = await client.head(self.probe_url)
            self._online = resp.status_code < 500
        except httpx.HTTPError as exc:
            logger.warning("Network probe failed: %s", exc)
            self._online = False
        return self._online
