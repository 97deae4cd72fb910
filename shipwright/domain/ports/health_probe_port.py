"""
Health Probe Port

Architectural Intent:
- Single HTTP GET against a host's health endpoint
- Returns the status code; transport failures raise (the Health Gate counts
  them as failed attempts)
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class HealthProbePort(Protocol):
    async def probe(self, url: str, timeout: float) -> int:
        """Return the HTTP status code of GET `url`. Raises on transport errors."""
        ...
