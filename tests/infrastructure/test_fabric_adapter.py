"""Tests for FabricAdapter."""

import socket
import time

import pytest
from unittest.mock import patch, MagicMock
from invoke.exceptions import CommandTimedOut
from paramiko.ssh_exception import SSHException

from shipwright.domain.errors import ConnectivityError, StepTimeout
from shipwright.domain.value_objects.node import Node
from shipwright.infrastructure.adapters.fabric_adapter import FabricAdapter

CONNECTION = "shipwright.infrastructure.adapters.fabric_adapter.Connection"


def _result(exited=0, stdout="", stderr=""):
    result = MagicMock()
    result.exited = exited
    result.stdout = stdout
    result.stderr = stderr
    result.failed = exited != 0
    return result


class TestFabricAdapter:
    def test_get_connection(self):
        adapter = FabricAdapter()
        node = Node(host="10.0.0.1", user="deploy", port=2222)
        with patch(CONNECTION) as mock_conn_cls:
            adapter._get_connection(node)
            mock_conn_cls.assert_called_once_with(
                host="10.0.0.1",
                user="deploy",
                port=2222,
                connect_timeout=30,
                connect_kwargs={"allow_agent": True, "look_for_keys": True},
            )

    def test_get_connection_with_key_file(self):
        adapter = FabricAdapter(connect_timeout=5)
        node = Node(host="10.0.0.1", user="deploy", key_file="~/.ssh/deploy_ed25519")
        with patch(CONNECTION) as mock_conn_cls:
            adapter._get_connection(node)
            kwargs = mock_conn_cls.call_args.kwargs
            assert kwargs["connect_timeout"] == 5
            assert kwargs["connect_kwargs"]["key_filename"] == "~/.ssh/deploy_ed25519"

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        adapter = FabricAdapter()
        node = Node(host="10.0.0.1", user="deploy")
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn = mock_conn_cls.return_value
            mock_conn.run.return_value = _result(0, stdout="active\n")

            result = await adapter.run(node, "systemctl is-active app", timeout=10)

            assert result.ok
            assert result.stdout == "active\n"
            mock_conn.run.assert_called_once_with(
                "systemctl is-active app", hide=True, warn=True, timeout=10
            )
            mock_conn.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_not_an_exception(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.run.return_value = _result(3, stderr="inactive")
            result = await adapter.run(Node(host="10.0.0.1"), "false", timeout=10)
            assert result.exit_code == 3
            assert result.stderr == "inactive"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [SSHException("Error reading SSH protocol banner"), socket.gaierror("Name or service not known"), ConnectionRefusedError(111, "refused")],
    )
    async def test_connection_errors_become_connectivity_error(self, error):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn = mock_conn_cls.return_value
            mock_conn.run.side_effect = error
            with pytest.raises(ConnectivityError) as exc_info:
                await adapter.run(Node(host="10.0.0.1"), "true", timeout=10)
            assert exc_info.value.host == "10.0.0.1"
            mock_conn.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_command_timeout_becomes_step_timeout(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.run.side_effect = CommandTimedOut(MagicMock(), 10)
            with pytest.raises(StepTimeout, match="timed out"):
                await adapter.run(Node(host="10.0.0.1"), "sleep 60", timeout=10)

    @pytest.mark.asyncio
    async def test_hung_connection_bounded_by_wait_for(self):
        adapter = FabricAdapter(connect_timeout=0)
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.run.side_effect = lambda *a, **kw: time.sleep(0.5)
            with pytest.raises(StepTimeout):
                await adapter.run(Node(host="10.0.0.1"), "true", timeout=0.05)

    @pytest.mark.asyncio
    async def test_upload_and_download(self):
        adapter = FabricAdapter()
        node = Node(host="10.0.0.1")
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn = mock_conn_cls.return_value
            await adapter.upload(node, "/tmp/release.tar.gz", "/tmp/r.tar.gz", timeout=60)
            await adapter.download(node, "/tmp/b.tar.gz", "/var/backups/b.tar.gz", timeout=60)

            mock_conn.put.assert_called_once_with("/tmp/release.tar.gz", remote="/tmp/r.tar.gz")
            mock_conn.get.assert_called_once_with("/tmp/b.tar.gz", local="/var/backups/b.tar.gz")

    @pytest.mark.asyncio
    async def test_upload_connection_failure(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.put.side_effect = SSHException("sftp channel closed")
            with pytest.raises(ConnectivityError):
                await adapter.upload(Node(host="10.0.0.1"), "a", "b", timeout=60)
