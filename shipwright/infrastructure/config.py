"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to all Shipwright settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses; section names contain no
  underscore so SHIPWRIGHT_SECTION_KEY splits unambiguously
- Domain policies (RolloutPolicy, RetentionPolicy) are built from config,
  never read from it directly by the domain
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional
import json
import logging
import os

from shipwright.domain.entities.policy import (
    RetentionPolicy,
    RollbackEscalation,
    RolloutPolicy,
    Strategy,
)
from shipwright.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventoryConfig:
    """Inventory source configuration."""
    path: str = "inventory.ini"


@dataclass(frozen=True)
class SSHConfig:
    """SSH transport configuration."""
    connect_timeout: int = 30


@dataclass(frozen=True)
class RolloutConfig:
    """Default rollout policy."""
    strategy: str = "serial"
    canary_size: int = 1
    max_concurrency: int = 5
    health_retries: int = 10
    health_retry_delay: float = 30.0
    probe_timeout: float = 10.0
    rollback_on_failure: bool = True
    rollback_escalation: str = "escalate"
    drain_timeout: float = 30.0
    start_timeout: float = 60.0
    command_timeout: float = 300.0
    transfer_timeout: float = 300.0
    sweep_after_rollout: bool = True

    def to_policy(self, **overrides) -> RolloutPolicy:
        """Build the immutable RolloutPolicy, applying non-None overrides."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            values["strategy"] = Strategy(values["strategy"])
            values["rollback_escalation"] = RollbackEscalation(values["rollback_escalation"])
            return RolloutPolicy(**values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid rollout configuration: {e}") from e


@dataclass(frozen=True)
class RetentionConfig:
    """Backup retention configuration."""
    max_age_days: float = 7.0

    def to_policy(self) -> RetentionPolicy:
        try:
            return RetentionPolicy.days(self.max_age_days)
        except ValueError as e:
            raise ConfigurationError(f"Invalid retention configuration: {e}") from e


@dataclass(frozen=True)
class BackupConfig:
    """Backup store configuration."""
    root: str = "backups"


@dataclass(frozen=True)
class LoadBalancerConfig:
    """Load balancer admin API; empty url disables drain/register."""
    url: str = ""
    timeout: float = 10.0


@dataclass(frozen=True)
class NotificationsConfig:
    """Notification channels; the log channel is always on."""
    webhook_url: str = ""
    timeout: float = 10.0
    email_enabled: bool = False
    email_to: str = ""
    email_from: str = "shipwright@localhost"
    email_host: str = ""
    email_port: int = 587
    email_username: str = ""
    email_password: str = ""
    email_min_severity: str = "info"

    @property
    def email_recipients(self) -> list[str]:
        raw = self.email_to
        addresses = raw if isinstance(raw, (list, tuple)) else raw.split(",")
        return [a.strip() for a in addresses if a.strip()]


@dataclass(frozen=True)
class ShipwrightConfig:
    """Root configuration for the Shipwright application."""
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    rollout: RolloutConfig = field(default_factory=RolloutConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    loadbalancer: LoadBalancerConfig = field(default_factory=LoadBalancerConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    db_path: str = "shipwright.db"
    log_level: str = "WARNING"

    def with_overrides(self, **sections) -> "ShipwrightConfig":
        return replace(self, **sections)


def _env_override(data: dict, prefix: str = "SHIPWRIGHT") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern SHIPWRIGHT_SECTION_KEY.
    For example: SHIPWRIGHT_ROLLOUT_STRATEGY=canary,
    SHIPWRIGHT_LOADBALANCER_URL=http://lb.internal
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        name = key[len(prefix) + 1:].lower()
        if name in ("db_path", "log_level"):
            data[name] = value
            continue
        parts = name.split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
        elif len(parts) == 1:
            data[parts[0]] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    # Convert strings from the environment to the declared field type
    for f in fields(cls):
        if f.name in filtered and isinstance(filtered[f.name], str):
            raw = filtered[f.name]
            try:
                if f.type == "int":
                    filtered[f.name] = int(raw)
                elif f.type == "float":
                    filtered[f.name] = float(raw)
                elif f.type == "bool":
                    filtered[f.name] = raw.lower() in ("true", "1", "yes")
            except ValueError as e:
                raise ConfigurationError(
                    f"{cls.__name__}.{f.name}: cannot parse {raw!r}: {e}"
                ) from e

    return cls(**filtered)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "SHIPWRIGHT",
) -> ShipwrightConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (SHIPWRIGHT_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to shipwright.json in CWD.
        env_prefix: Environment variable prefix. Defaults to SHIPWRIGHT.
    """
    config_path = Path(path) if path else Path("shipwright.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    return ShipwrightConfig(
        inventory=_build_sub_config(InventoryConfig, data.get("inventory", {})),
        ssh=_build_sub_config(SSHConfig, data.get("ssh", {})),
        rollout=_build_sub_config(RolloutConfig, data.get("rollout", {})),
        retention=_build_sub_config(RetentionConfig, data.get("retention", {})),
        backup=_build_sub_config(BackupConfig, data.get("backup", {})),
        loadbalancer=_build_sub_config(
            LoadBalancerConfig, data.get("loadbalancer", {})
        ),
        notifications=_build_sub_config(
            NotificationsConfig, data.get("notifications", {})
        ),
        db_path=data.get("db_path", "shipwright.db"),
        log_level=data.get("log_level", "WARNING"),
    )
