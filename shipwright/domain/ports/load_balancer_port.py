"""
Load Balancer Port

Architectural Intent:
- Membership control for the shared load balancer
- deregister/register are idempotent
- Callers never use this port directly: it is wrapped in
  BestEffortLoadBalancer so failures are logged, never fatal
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class LoadBalancerPort(Protocol):
    async def deregister(self, host: str) -> None: ...

    async def register(self, host: str) -> None: ...
