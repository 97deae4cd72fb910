"""
Fleet Module

Architectural Intent:
- Fleet is the inventory aggregate: defaults + named groups of hosts
- A host belongs to exactly one group (enforced on construction)
- Variable precedence: fleet defaults < group vars < host vars
- HostSettings is the typed view of the merged vars the pipeline needs

Design Decisions:
- Groups may nest other groups (children); a nested group contributes its
  own hosts, it does not re-own them
- Raw vars stay strings (as read from inventory); HostSettings converts
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from shipwright.domain.errors import ConfigurationError
from shipwright.domain.value_objects.node import Node


@dataclass(frozen=True)
class HostDecl:
    """A host line as declared in the inventory, before merging."""
    name: str
    vars: Mapping[str, str] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class Group:
    name: str
    hosts: tuple[HostDecl, ...] = ()
    vars: Mapping[str, str] = field(default_factory=dict, hash=False)
    children: tuple[str, ...] = ()


@dataclass(frozen=True)
class HostSettings:
    """Typed per-host runtime settings derived from merged vars."""
    app_name: str = "app"
    app_dir: str = "/opt/app"
    app_port: int = 3000
    service_name: str = "app"
    health_path: str = "/health"
    health_scheme: str = "http"
    stop_command: str = ""
    start_command: str = ""
    install_command: str = ""
    remote_tmp_dir: str = "/tmp"

    def __post_init__(self) -> None:
        if not self.app_dir.startswith("/") or self.app_dir.rstrip("/") == "":
            raise ValueError(f"app_dir must be an absolute, non-root path: {self.app_dir!r}")
        if not (1 <= self.app_port <= 65535):
            raise ValueError(f"app_port must be 1-65535, got {self.app_port}")
        if not self.health_path.startswith("/"):
            raise ValueError(f"health_path must start with '/': {self.health_path!r}")

    @property
    def effective_stop_command(self) -> str:
        return self.stop_command or f"systemctl stop {self.service_name}"

    @property
    def effective_start_command(self) -> str:
        return self.start_command or f"systemctl daemon-reload && systemctl start {self.service_name}"

    @classmethod
    def from_vars(cls, merged: Mapping[str, Any]) -> "HostSettings":
        def pick(*names: str, default: str = "") -> str:
            for name in names:
                if name in merged and merged[name] != "":
                    return str(merged[name])
            return default

        try:
            port = int(pick("app_port", "nodejs_app_port", default="3000"))
        except ValueError as e:
            raise ValueError(f"app_port is not an integer: {e}") from e

        return cls(
            app_name=pick("app_name", "nodejs_app_name", default="app"),
            app_dir=pick("app_dir", "nodejs_app_dir", default="/opt/app").rstrip("/") or "/",
            app_port=port,
            service_name=pick("systemd_service_name", "service_name", default="app"),
            health_path=pick("health_path", default="/health"),
            health_scheme=pick("health_scheme", default="http"),
            stop_command=pick("stop_command"),
            start_command=pick("start_command"),
            install_command=pick("install_command"),
            remote_tmp_dir=pick("remote_tmp_dir", default="/tmp").rstrip("/") or "/",
        )


@dataclass(frozen=True)
class Host:
    """A resolved fleet member: connection, owning group, merged config."""
    name: str
    group: str
    node: Node
    settings: HostSettings
    vars: Mapping[str, str] = field(default_factory=dict, hash=False, compare=False)

    def url_for(self, path: str) -> str:
        """URL of `path` on the application port, as probed from the controller."""
        address = "127.0.0.1" if self.node.is_local else self.node.host
        if ":" in address:
            address = f"[{address}]"
        return f"{self.settings.health_scheme}://{address}:{self.settings.app_port}{path}"

    @property
    def health_url(self) -> str:
        return self.url_for(self.settings.health_path)

    def __str__(self) -> str:
        return self.name


class Fleet:
    """Inventory aggregate. Validates single-group ownership on construction."""

    def __init__(
        self,
        groups: Mapping[str, Group],
        defaults: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._groups = dict(groups)
        self._defaults = dict(defaults or {})
        self._owner: dict[str, str] = {}
        for group in self._groups.values():
            for decl in group.hosts:
                owner = self._owner.get(decl.name)
                if owner is not None and owner != group.name:
                    raise ConfigurationError(
                        f"Host {decl.name!r} declared in both {owner!r} and {group.name!r}"
                    )
                self._owner[decl.name] = group.name

    @property
    def defaults(self) -> Mapping[str, str]:
        return self._defaults

    @property
    def group_names(self) -> list[str]:
        return list(self._groups)

    @property
    def host_names(self) -> list[str]:
        return list(self._owner)

    def group(self, name: str) -> Optional[Group]:
        return self._groups.get(name)

    def owner_of(self, host_name: str) -> Optional[str]:
        return self._owner.get(host_name)

    def parents_of(self, group_name: str) -> list[str]:
        return [g.name for g in self._groups.values() if group_name in g.children]

    def __len__(self) -> int:
        return len(self._owner)
