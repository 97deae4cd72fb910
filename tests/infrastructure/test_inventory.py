"""Tests for the INI inventory adapter."""

import textwrap

import pytest

from shipwright.domain.errors import ConfigurationError, InventoryUnavailableError
from shipwright.domain.services.target_resolver import TargetResolver
from shipwright.infrastructure.inventory import IniInventory, parse_inventory

INVENTORY = textwrap.dedent(
    """\
    # Production fleet
    [all:vars]
    health_path=/health

    [production]
    prod1 ansible_host=192.168.1.10
    prod2 ansible_host=192.168.1.11 ansible_port=2222

    [staging]
    staging1 ansible_host=192.168.1.20 app_environment=staging

    [local]
    localhost ansible_connection=local

    ; the parent group carries the shared settings
    [webservers:children]
    production
    staging
    local

    [webservers:vars]
    ansible_user=ubuntu
    nodejs_app_port=3000
    nodejs_app_dir=/opt/nodejs-app
    systemd_service_name=nodejs-app
    install_command=npm ci --production
    """
)


class TestParseInventory:
    def test_groups_hosts_and_children(self):
        fleet = parse_inventory(INVENTORY)
        assert fleet.group_names == ["production", "staging", "local", "webservers"]
        assert [h.name for h in fleet.group("production").hosts] == ["prod1", "prod2"]
        assert fleet.group("webservers").children == ("production", "staging", "local")
        assert fleet.defaults == {"health_path": "/health"}

    def test_vars_keep_spaces(self):
        fleet = parse_inventory(INVENTORY)
        assert fleet.group("webservers").vars["install_command"] == "npm ci --production"

    def test_resolves_end_to_end(self):
        hosts = TargetResolver().resolve(parse_inventory(INVENTORY), "webservers")
        by_name = {h.name: h for h in hosts}
        assert by_name["prod2"].node.port == 2222
        assert by_name["prod1"].node.user == "ubuntu"
        assert by_name["localhost"].node.is_local
        assert by_name["staging1"].vars["app_environment"] == "staging"
        assert by_name["prod1"].settings.service_name == "nodejs-app"

    def test_quoted_host_vars(self):
        fleet = parse_inventory('[web]\nweb1 ansible_host=10.0.0.1 start_command="pm2 start all"\n')
        assert fleet.group("web").hosts[0].vars["start_command"] == "pm2 start all"

    def test_hosts_before_any_section_are_ungrouped(self):
        fleet = parse_inventory("web1 ansible_host=10.0.0.1\n")
        assert fleet.group("ungrouped").hosts[0].name == "web1"

    @pytest.mark.parametrize(
        "text,match",
        [
            ("[web\nweb1\n", "unterminated"),
            ("[web:extra]\n", "bad section"),
            ("[web]\nweb1 ansible_host\n", "key=value"),
            ("[web:children]\ndb\n", "unknown child"),
            ('[web]\nweb1 start_command="pm2\n', "No closing quotation"),
        ],
    )
    def test_malformed(self, text, match):
        with pytest.raises(ConfigurationError, match=match):
            parse_inventory(text)


class TestIniInventory:
    def test_load_file(self, tmp_path):
        path = tmp_path / "inventory.ini"
        path.write_text(INVENTORY)
        assert len(IniInventory(str(path)).load()) == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(InventoryUnavailableError, match="Cannot read inventory"):
            IniInventory(str(tmp_path / "nope.ini")).load()
