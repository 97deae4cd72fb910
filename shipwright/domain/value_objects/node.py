"""
Node Value Object

Architectural Intent:
- Immutable value object holding how to reach a fleet member
- Validates hostname format (DNS, IPv4, IPv6), port bounds, non-empty user
- Accepts IPv6 literals (health URLs bracket them)
- `connection` selects the executor: "ssh" (fabric) or "local" (subprocess)
"""

import re
from dataclasses import dataclass
from typing import Optional

# RFC 1123 hostname: labels of alnum/hyphens, dot-separated
_HOSTNAME_RE = re.compile(
    r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$"
)

_IPV4_RE = re.compile(
    r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$"
)

# Simplified: accepts common forms including ::1, fe80::1, etc.
_IPV6_RE = re.compile(r"^[0-9a-fA-F:]+$")

CONNECTION_KINDS = ("ssh", "local")


def is_valid_hostname(host: str) -> bool:
    """Validate hostname as DNS name, IPv4, or IPv6."""
    if not host:
        return False

    m = _IPV4_RE.match(host)
    if m:
        return all(0 <= int(g) <= 255 for g in m.groups())

    if _IPV6_RE.match(host) and ":" in host:
        return True

    if _HOSTNAME_RE.match(host) and len(host) <= 253:
        return True

    return False


@dataclass(frozen=True)
class Node:
    """
    Value Object representing the connection endpoint of a host.
    """
    host: str
    user: str = "root"
    port: int = 22
    key_file: Optional[str] = None
    connection: str = "ssh"

    def __post_init__(self) -> None:
        if self.connection not in CONNECTION_KINDS:
            raise ValueError(f"Unknown connection kind: {self.connection!r}")
        if self.connection == "ssh" and not self.user:
            raise ValueError("Node user cannot be empty")
        if not (1 <= self.port <= 65535):
            raise ValueError(f"Port must be 1-65535, got {self.port}")
        if not is_valid_hostname(self.host):
            raise ValueError(f"Invalid hostname: {self.host!r}")

    @property
    def is_local(self) -> bool:
        return self.connection == "local"

    def __str__(self) -> str:
        if self.is_local:
            return f"local:{self.host}"
        return f"{self.user}@{self.host}:{self.port}"
