"""
Target Resolver

Architectural Intent:
- Resolves a named group to an ordered list of Hosts with merged config
- Pure: reads the Fleet, touches nothing
- Fails with ConfigurationError before any host is contacted

Merge Order (lowest to highest precedence):
    fleet defaults < ancestor group vars (outermost first) < owning group vars
    < host vars
"""

from __future__ import annotations
import logging
import os
from typing import Mapping

from shipwright.domain.entities.fleet import Fleet, Host, HostSettings
from shipwright.domain.errors import ConfigurationError
from shipwright.domain.value_objects.node import Node

logger = logging.getLogger(__name__)

_ADDRESS_KEYS = ("ansible_host", "address")
_USER_KEYS = ("ansible_user", "user")
_PORT_KEYS = ("ansible_port", "ssh_port")
_KEY_FILE_KEYS = ("ansible_ssh_private_key_file", "key_file")
_CONNECTION_KEYS = ("ansible_connection", "connection")


def _first(merged: Mapping[str, str], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = merged.get(key)
        if value:
            return str(value)
    return ""


class TargetResolver:
    def resolve(self, fleet: Fleet, group: str) -> list[Host]:
        if fleet.group(group) is None:
            raise ConfigurationError(f"Group {group!r} is not defined in the inventory")

        hosts: list[Host] = []
        seen: set[str] = set()
        for owner, decl_name in self._walk(fleet, group, ()):
            if decl_name in seen:
                continue
            seen.add(decl_name)
            hosts.append(self._build_host(fleet, owner, decl_name))

        if not hosts:
            raise ConfigurationError(f"Group {group!r} has no hosts")
        logger.debug("Resolved group %s to %d hosts", group, len(hosts))
        return hosts

    def _walk(self, fleet: Fleet, group: str, trail: tuple[str, ...]):
        if group in trail:
            raise ConfigurationError(
                f"Circular group nesting: {' -> '.join(trail + (group,))}"
            )
        definition = fleet.group(group)
        if definition is None:
            raise ConfigurationError(f"Group {group!r} is not defined in the inventory")
        for decl in definition.hosts:
            yield group, decl.name
        for child in definition.children:
            yield from self._walk(fleet, child, trail + (group,))

    def _ancestors(self, fleet: Fleet, group: str) -> list[str]:
        """Ancestor groups, outermost first."""
        ordered: list[str] = []
        frontier = [group]
        while frontier:
            current = frontier.pop()
            for parent in fleet.parents_of(current):
                if parent not in ordered and parent != group:
                    ordered.insert(0, parent)
                    frontier.append(parent)
        return ordered

    def merged_vars(self, fleet: Fleet, owner: str, host_name: str) -> dict[str, str]:
        merged: dict[str, str] = dict(fleet.defaults)
        for ancestor in self._ancestors(fleet, owner):
            merged.update(fleet.group(ancestor).vars)
        definition = fleet.group(owner)
        merged.update(definition.vars)
        for decl in definition.hosts:
            if decl.name == host_name:
                merged.update(decl.vars)
        return merged

    def _build_host(self, fleet: Fleet, owner: str, name: str) -> Host:
        merged = self.merged_vars(fleet, owner, name)
        connection = _first(merged, _CONNECTION_KEYS) or "ssh"
        address = _first(merged, _ADDRESS_KEYS)
        if not address:
            if connection == "local":
                address = "localhost"
            else:
                raise ConfigurationError("Host has no address (ansible_host)", host=name)
        user = _first(merged, _USER_KEYS)
        if connection != "local" and not user:
            raise ConfigurationError("Host has no connection user (ansible_user)", host=name)

        port_value = _first(merged, _PORT_KEYS) or "22"
        key_file = _first(merged, _KEY_FILE_KEYS)
        try:
            node = Node(
                host=address,
                user=user or "root",
                port=int(port_value),
                key_file=os.path.expanduser(key_file) if key_file else None,
                connection=connection,
            )
            settings = HostSettings.from_vars(merged)
        except ValueError as e:
            raise ConfigurationError(str(e), host=name) from e

        return Host(name=name, group=owner, node=node, settings=settings, vars=merged)
