"""
HTTP Health Probe Adapter

Architectural Intent:
- Implements HealthProbePort with one httpx GET per attempt
- Returns the status code whatever it is; only transport failures raise,
  and the Health Gate counts those as failed attempts
"""

import logging

import httpx

logger = logging.getLogger(__name__)


class HttpHealthProbe:
    def __init__(self, verify: bool = True) -> None:
        self._verify = verify

    async def probe(self, url: str, timeout: float) -> int:
        async with httpx.AsyncClient(timeout=timeout, verify=self._verify) as client:
            response = await client.get(url)
        logger.debug("GET %s -> %d", url, response.status_code)
        return response.status_code
