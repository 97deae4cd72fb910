"""Tests for TargetResolver."""

import pytest

from shipwright.domain.entities.fleet import Fleet, Group, HostDecl
from shipwright.domain.errors import ConfigurationError
from shipwright.domain.services.target_resolver import TargetResolver


def _fleet():
    return Fleet(
        {
            "production": Group(
                name="production",
                hosts=(
                    HostDecl("prod1", {"ansible_host": "192.168.1.10"}),
                    HostDecl("prod2", {"ansible_host": "192.168.1.11", "nodejs_app_port": "4000"}),
                ),
                vars={"app_environment": "production"},
            ),
            "local": Group(
                name="local",
                hosts=(HostDecl("localhost", {"ansible_connection": "local"}),),
            ),
            "webservers": Group(
                name="webservers",
                vars={
                    "ansible_user": "ubuntu",
                    "nodejs_app_port": "3000",
                    "nodejs_app_dir": "/opt/nodejs-app",
                    "systemd_service_name": "nodejs-app",
                },
                children=("production", "local"),
            ),
        },
        defaults={"health_path": "/healthz"},
    )


class TestResolve:
    def test_walks_children_in_order(self):
        hosts = TargetResolver().resolve(_fleet(), "webservers")
        assert [h.name for h in hosts] == ["prod1", "prod2", "localhost"]
        assert [h.group for h in hosts] == ["production", "production", "local"]

    def test_merges_vars_with_precedence(self):
        prod1, prod2, _ = TargetResolver().resolve(_fleet(), "webservers")
        assert prod1.node.user == "ubuntu"
        assert prod1.settings.app_port == 3000
        assert prod2.settings.app_port == 4000
        assert prod1.settings.app_dir == "/opt/nodejs-app"
        assert prod1.settings.service_name == "nodejs-app"
        assert prod1.settings.health_path == "/healthz"
        assert prod1.vars["app_environment"] == "production"

    def test_health_url(self):
        prod1, _, local = TargetResolver().resolve(_fleet(), "webservers")
        assert prod1.health_url == "http://192.168.1.10:3000/healthz"
        assert local.health_url == "http://127.0.0.1:3000/healthz"

    def test_url_for_other_endpoints(self):
        prod1 = TargetResolver().resolve(_fleet(), "production")[0]
        assert prod1.url_for("/ready") == "http://192.168.1.10:3000/ready"

    def test_key_file_home_is_expanded(self, monkeypatch):
        monkeypatch.setenv("HOME", "/home/deploy")
        fleet = Fleet(
            {"web": Group(name="web", hosts=(HostDecl("w", {"ansible_host": "h", "ansible_user": "u"}),),
                          vars={"ansible_ssh_private_key_file": "~/.ssh/id_rsa"})}
        )
        host = TargetResolver().resolve(fleet, "web")[0]
        assert host.node.key_file == "/home/deploy/.ssh/id_rsa"

    def test_absolute_key_file_untouched(self):
        fleet = Fleet(
            {"web": Group(name="web", hosts=(HostDecl("w", {"ansible_host": "h", "ansible_user": "u", "key_file": "/keys/deploy"}),))}
        )
        assert TargetResolver().resolve(fleet, "web")[0].node.key_file == "/keys/deploy"

    def test_local_connection_defaults_address(self):
        local = TargetResolver().resolve(_fleet(), "local")[0]
        assert local.node.is_local
        assert local.node.host == "localhost"

    def test_unknown_group(self):
        with pytest.raises(ConfigurationError, match="not defined"):
            TargetResolver().resolve(_fleet(), "staging")

    def test_empty_group(self):
        fleet = Fleet({"empty": Group(name="empty")})
        with pytest.raises(ConfigurationError, match="no hosts"):
            TargetResolver().resolve(fleet, "empty")

    def test_missing_user(self):
        fleet = Fleet({"web": Group(name="web", hosts=(HostDecl("w", {"ansible_host": "10.0.0.1"}),))})
        with pytest.raises(ConfigurationError, match="user"):
            TargetResolver().resolve(fleet, "web")

    def test_missing_address(self):
        fleet = Fleet({"web": Group(name="web", hosts=(HostDecl("w", {"ansible_user": "u"}),))})
        with pytest.raises(ConfigurationError, match="address"):
            TargetResolver().resolve(fleet, "web")

    def test_bad_port_is_configuration_error(self):
        fleet = Fleet(
            {"web": Group(name="web", hosts=(HostDecl("w", {"ansible_host": "h", "ansible_user": "u", "app_port": "http"}),))}
        )
        with pytest.raises(ConfigurationError, match="app_port"):
            TargetResolver().resolve(fleet, "web")

    def test_circular_nesting(self):
        fleet = Fleet(
            {
                "a": Group(name="a", children=("b",)),
                "b": Group(name="b", children=("a",)),
            }
        )
        with pytest.raises(ConfigurationError, match="Circular"):
            TargetResolver().resolve(fleet, "a")


class TestFleet:
    def test_host_in_two_groups_rejected(self):
        with pytest.raises(ConfigurationError, match="declared in both"):
            Fleet(
                {
                    "a": Group(name="a", hosts=(HostDecl("w1"),)),
                    "b": Group(name="b", hosts=(HostDecl("w1"),)),
                }
            )

    def test_parents_and_owner(self):
        fleet = _fleet()
        assert fleet.parents_of("production") == ["webservers"]
        assert fleet.owner_of("prod2") == "production"
        assert len(fleet) == 3
        assert fleet.host_names == ["prod1", "prod2", "localhost"]
