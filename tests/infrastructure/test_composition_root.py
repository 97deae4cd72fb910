"""Tests for composition root DI container."""

import pytest

from shipwright.composition_root import ShipwrightContainer, create_container
from shipwright.domain.errors import ConfigurationError
from shipwright.infrastructure.adapters.email_notifier import EmailNotifier
from shipwright.infrastructure.adapters.fabric_adapter import FabricAdapter
from shipwright.infrastructure.adapters.http_load_balancer import HttpLoadBalancer
from shipwright.infrastructure.adapters.logging_notifier import FanOutNotifier, LoggingNotifier
from shipwright.infrastructure.adapters.webhook_notifier import WebhookNotifier
from shipwright.infrastructure.config import (
    BackupConfig,
    LoadBalancerConfig,
    NotificationsConfig,
    ShipwrightConfig,
    SSHConfig,
)


@pytest.fixture
def config(tmp_path):
    return ShipwrightConfig(
        db_path=str(tmp_path / "shipwright.db"),
        backup=BackupConfig(root=str(tmp_path / "backups")),
    )


class TestCompositionRoot:
    def test_create_container(self, config):
        container = create_container(config)
        try:
            assert isinstance(container, ShipwrightContainer)
            assert container.run_rollout is not None
            assert container.disaster_recovery is not None
            assert container.sweep_retention is not None
            assert container.monitor_fleet is not None
        finally:
            container.close()

    def test_shared_collaborators(self, config):
        container = create_container(config)
        try:
            rollout = container.run_rollout
            assert rollout.backup_manager is container.backup_manager
            assert rollout.repository is container.repository
            assert rollout.group_lock is container.disaster_recovery.group_lock
            assert rollout.group_lock is container.sweep_retention.group_lock
            assert container.backup_manager.store is container.backup_store
            assert rollout.executor.remote_executor is container.executor
        finally:
            container.close()

    def test_ssh_settings_reach_fabric(self, config):
        container = create_container(config.with_overrides(ssh=SSHConfig(connect_timeout=7)))
        try:
            assert isinstance(container.executor.ssh, FabricAdapter)
            assert container.executor.ssh.connect_timeout == 7
        finally:
            container.close()

    def test_load_balancer_disabled_without_url(self, config):
        container = create_container(config)
        try:
            assert not container.load_balancer.enabled
        finally:
            container.close()

    def test_optional_integrations_wired_from_urls(self, config):
        container = create_container(
            config.with_overrides(
                loadbalancer=LoadBalancerConfig(url="http://lb.internal"),
                notifications=NotificationsConfig(webhook_url="https://hooks.example.com/x"),
            )
        )
        try:
            assert container.load_balancer.enabled
            assert isinstance(container.load_balancer._port, HttpLoadBalancer)
            fan_out = container.notifier._port
            assert isinstance(fan_out, FanOutNotifier)
            assert [type(c) for c in fan_out.channels] == [LoggingNotifier, WebhookNotifier]
        finally:
            container.close()

    def test_email_channel_wired_when_enabled(self, config):
        container = create_container(
            config.with_overrides(
                notifications=NotificationsConfig(
                    email_enabled=True,
                    email_host="smtp.example.com",
                    email_to="ops@example.com",
                    email_min_severity="warning",
                )
            )
        )
        try:
            channels = container.notifier._port.channels
            assert [type(c) for c in channels] == [LoggingNotifier, EmailNotifier]
            assert channels[1].recipients == ["ops@example.com"]
        finally:
            container.close()

    def test_email_needs_a_host(self, config):
        container = create_container(
            config.with_overrides(notifications=NotificationsConfig(email_enabled=True))
        )
        try:
            assert [type(c) for c in container.notifier._port.channels] == [LoggingNotifier]
        finally:
            container.close()

    def test_bad_email_severity_is_a_configuration_error(self, config):
        with pytest.raises(ConfigurationError, match="e-mail"):
            create_container(
                config.with_overrides(
                    notifications=NotificationsConfig(
                        email_enabled=True, email_host="smtp", email_to="a@b",
                        email_min_severity="loud",
                    )
                )
            )

    def test_locks_persist_in_the_repository(self, config):
        container = create_container(config)
        try:
            assert container.run_rollout.group_lock._store is container.repository
            assert container.monitor_fleet.service_control is container.backup_manager.service_control
        finally:
            container.close()
