"""
INI Inventory Adapter

Architectural Intent:
- Implements InventoryPort for Ansible-style INI inventories
- Supports [group] host lines with key=value vars, [group:vars],
  [group:children], [all:vars] as fleet defaults, and # / ; comments
- A missing or unreadable file raises InventoryUnavailableError; malformed
  content raises ConfigurationError

Example:
    [web]
    web1 ansible_host=10.0.0.1 ansible_user=deploy

    [web:vars]
    nodejs_app_port=3000
"""

from __future__ import annotations
import logging
import shlex
from pathlib import Path

from shipwright.domain.entities.fleet import Fleet, Group, HostDecl
from shipwright.domain.errors import ConfigurationError, InventoryUnavailableError

logger = logging.getLogger(__name__)


class _GroupDraft:
    def __init__(self, name: str) -> None:
        self.name = name
        self.hosts: dict[str, dict[str, str]] = {}
        self.vars: dict[str, str] = {}
        self.children: list[str] = []

    def freeze(self) -> Group:
        return Group(
            name=self.name,
            hosts=tuple(HostDecl(name=n, vars=v) for n, v in self.hosts.items()),
            vars=dict(self.vars),
            children=tuple(self.children),
        )


def _split_assignment(token: str, where: str) -> tuple[str, str]:
    key, sep, value = token.partition("=")
    if not sep or not key:
        raise ConfigurationError(f"{where}: expected key=value, got {token!r}")
    return key.strip(), value.strip()


def parse_inventory(text: str, source: str = "<inventory>") -> Fleet:
    groups: dict[str, _GroupDraft] = {}
    defaults: dict[str, str] = {}

    def draft(name: str) -> _GroupDraft:
        if name not in groups:
            groups[name] = _GroupDraft(name)
        return groups[name]

    section, kind = "ungrouped", "hosts"
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line[0] in "#;":
            continue
        where = f"{source}:{lineno}"

        if line.startswith("["):
            if not line.endswith("]"):
                raise ConfigurationError(f"{where}: unterminated section header")
            header = line[1:-1].strip()
            name, _, suffix = header.partition(":")
            if not name or suffix not in ("", "vars", "children"):
                raise ConfigurationError(f"{where}: bad section [{header}]")
            section, kind = name, suffix or "hosts"
            if section != "all":
                draft(section)
            continue

        try:
            tokens = shlex.split(line, comments=True)
        except ValueError as e:
            raise ConfigurationError(f"{where}: {e}") from e
        if not tokens:
            continue

        if kind == "vars":
            key, value = _split_assignment(line, where)
            if section == "all":
                defaults[key] = value
            else:
                draft(section).vars[key] = value
        elif kind == "children":
            if section == "all":
                continue
            draft(section).children.append(tokens[0])
        else:
            host_vars = dict(_split_assignment(t, where) for t in tokens[1:])
            group = draft(section)
            group.hosts.setdefault(tokens[0], {}).update(host_vars)

    for group in groups.values():
        for child in group.children:
            if child not in groups:
                raise ConfigurationError(
                    f"{source}: group {group.name!r} lists unknown child {child!r}"
                )

    fleet = Fleet({name: g.freeze() for name, g in groups.items()}, defaults)
    logger.debug("Parsed %s: %d groups, %d hosts", source, len(groups), len(fleet))
    return fleet


class IniInventory:
    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def load(self) -> Fleet:
        try:
            text = self.path.read_text()
        except OSError as e:
            raise InventoryUnavailableError(
                f"Cannot read inventory {self.path}: {e}"
            ) from e
        return parse_inventory(text, str(self.path))
