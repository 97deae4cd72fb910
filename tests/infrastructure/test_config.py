"""Tests for configuration module."""

import json
import pytest
from unittest.mock import patch

from shipwright.domain.entities.policy import RollbackEscalation, Strategy
from shipwright.domain.errors import ConfigurationError
from shipwright.infrastructure.config import (
    InventoryConfig,
    LoadBalancerConfig,
    NotificationsConfig,
    RolloutConfig,
    ShipwrightConfig,
    load_config,
)


class TestDefaultConfig:
    def test_defaults(self):
        config = load_config(path="/nonexistent/shipwright.json")
        assert config.log_level == "WARNING"
        assert config.db_path == "shipwright.db"
        assert config.inventory.path == "inventory.ini"
        assert config.rollout.strategy == "serial"
        assert config.rollout.health_retries == 10
        assert config.retention.max_age_days == 7.0
        assert config.loadbalancer.url == ""

    def test_default_policies(self):
        config = ShipwrightConfig()
        policy = config.rollout.to_policy()
        assert policy.strategy == Strategy.SERIAL
        assert policy.rollback_escalation == RollbackEscalation.ESCALATE
        assert config.retention.to_policy().max_age.days == 7


class TestFileConfig:
    def test_load_from_file(self, tmp_path):
        config_file = tmp_path / "shipwright.json"
        config_file.write_text(json.dumps({
            "log_level": "DEBUG",
            "inventory": {"path": "/etc/shipwright/hosts.ini"},
            "rollout": {"strategy": "canary", "canary_size": 2, "health_retry_delay": 5},
            "loadbalancer": {"url": "http://lb.internal"},
            "unknown_section": {"x": 1},
        }))

        config = load_config(path=str(config_file))

        assert config.log_level == "DEBUG"
        assert config.inventory.path == "/etc/shipwright/hosts.ini"
        assert config.rollout.canary_size == 2
        assert config.loadbalancer.url == "http://lb.internal"
        assert config.rollout.to_policy().strategy == Strategy.CANARY

    def test_invalid_json_falls_back_to_defaults(self, tmp_path):
        config_file = tmp_path / "shipwright.json"
        config_file.write_text("{not json")
        assert load_config(path=str(config_file)).rollout.strategy == "serial"

    def test_unknown_keys_ignored(self, tmp_path):
        config_file = tmp_path / "shipwright.json"
        config_file.write_text(json.dumps({"ssh": {"connect_timeout": 5, "bogus": True}}))
        assert load_config(path=str(config_file)).ssh.connect_timeout == 5


class TestEnvOverride:
    def test_env_overrides_file(self, tmp_path):
        config_file = tmp_path / "shipwright.json"
        config_file.write_text(json.dumps({"rollout": {"health_retries": 3}}))
        env = {
            "SHIPWRIGHT_ROLLOUT_HEALTH_RETRIES": "7",
            "SHIPWRIGHT_ROLLOUT_ROLLBACK_ON_FAILURE": "false",
            "SHIPWRIGHT_RETENTION_MAX_AGE_DAYS": "14.5",
            "SHIPWRIGHT_DB_PATH": "/var/lib/shipwright/state.db",
            "SHIPWRIGHT_LOADBALANCER_URL": "http://lb:8080",
        }
        with patch.dict("os.environ", env):
            config = load_config(path=str(config_file))

        assert config.rollout.health_retries == 7
        assert config.rollout.rollback_on_failure is False
        assert config.retention.max_age_days == 14.5
        assert config.db_path == "/var/lib/shipwright/state.db"
        assert config.loadbalancer.url == "http://lb:8080"

    def test_email_settings_from_env(self, tmp_path):
        config_file = tmp_path / "shipwright.json"
        config_file.write_text(json.dumps({"notifications": {"email_to": ["ops@example.com"]}}))
        env = {
            "SHIPWRIGHT_NOTIFICATIONS_EMAIL_ENABLED": "true",
            "SHIPWRIGHT_NOTIFICATIONS_EMAIL_HOST": "smtp.example.com",
            "SHIPWRIGHT_NOTIFICATIONS_EMAIL_PORT": "2525",
        }
        with patch.dict("os.environ", env):
            config = load_config(path=str(config_file))

        notifications = config.notifications
        assert notifications.email_enabled is True
        assert notifications.email_host == "smtp.example.com"
        assert notifications.email_port == 2525
        assert notifications.email_recipients == ["ops@example.com"]
        assert notifications.email_min_severity == "info"

    def test_email_recipients_split(self):
        notifications = NotificationsConfig(email_to="ops@example.com, oncall@example.com,")
        assert notifications.email_recipients == ["ops@example.com", "oncall@example.com"]
        assert NotificationsConfig().email_port == 587

    def test_unparseable_env_value(self):
        with patch.dict("os.environ", {"SHIPWRIGHT_ROLLOUT_MAX_CONCURRENCY": "many"}):
            with pytest.raises(ConfigurationError, match="max_concurrency"):
                load_config(path="/nonexistent/shipwright.json")


class TestRolloutConfig:
    def test_overrides_skip_none(self):
        policy = RolloutConfig().to_policy(max_concurrency=None, health_retries=2)
        assert policy.max_concurrency == 5
        assert policy.health_retries == 2

    def test_invalid_strategy(self):
        with pytest.raises(ConfigurationError, match="Invalid rollout configuration"):
            RolloutConfig(strategy="big-bang").to_policy()

    def test_invalid_value(self):
        with pytest.raises(ConfigurationError):
            RolloutConfig().to_policy(health_retries=0)


class TestConfigImmutability:
    def test_frozen(self):
        config = ShipwrightConfig()
        with pytest.raises(AttributeError):
            config.log_level = "DEBUG"

    def test_with_overrides(self):
        config = ShipwrightConfig().with_overrides(
            inventory=InventoryConfig(path="other.ini"),
            loadbalancer=LoadBalancerConfig(url="http://lb"),
        )
        assert config.inventory.path == "other.ini"
        assert config.loadbalancer.url == "http://lb"
