"""
HTTP Load Balancer Adapter

Architectural Intent:
- Implements LoadBalancerPort against a load balancer admin API:
  POST {base_url}/remove/{host} and POST {base_url}/add/{host}
- Raises on transport errors and non-2xx replies; BestEffortLoadBalancer
  turns those into logged warnings
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class HttpLoadBalancer:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url cannot be empty")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = headers or {}

    async def _post(self, action: str, host: str) -> None:
        url = f"{self._base_url}/{action}/{quote(host, safe='')}"
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(url, headers=self._headers)
        response.raise_for_status()
        logger.info("Load balancer %s %s: %d", action, host, response.status_code)

    async def deregister(self, host: str) -> None:
        await self._post("remove", host)

    async def register(self, host: str) -> None:
        await self._post("add", host)

