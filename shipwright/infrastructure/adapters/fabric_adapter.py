"""
Fabric Adapter

Architectural Intent:
- Infrastructure adapter implementing RemoteExecutorPort via Fabric/SSH
- Fabric is blocking: every call runs in a worker thread and is bounded by
  asyncio.wait_for on top of Fabric's own command timeout
- Connection-level failures are translated into ConnectivityError inside the
  worker thread, so an outer TimeoutError always means "step timed out"

Security:
- SSH connections use connect_timeout, allow_agent, look_for_keys
- An explicit key_file from the inventory is passed as key_filename
"""

import asyncio
import logging
import socket
from typing import Callable, TypeVar

from fabric import Connection
from invoke.exceptions import CommandTimedOut
from paramiko.ssh_exception import SSHException

from shipwright.domain.errors import ConnectivityError, StepTimeout
from shipwright.domain.ports.remote_executor_port import CommandResult, RemoteExecutorPort
from shipwright.domain.value_objects.node import Node

logger = logging.getLogger(__name__)

T = TypeVar("T")

# paramiko's NoValidConnectionsError is a socket.error, covered by ConnectionError/OSError
_CONNECT_ERRORS = (SSHException, socket.gaierror, ConnectionError, socket.timeout)


class FabricAdapter(RemoteExecutorPort):
    """Adapter implementing RemoteExecutorPort via Fabric/SSH."""

    def __init__(self, connect_timeout: int = 30) -> None:
        self.connect_timeout = connect_timeout

    def _get_connection(self, node: Node) -> Connection:
        connect_kwargs = {
            "allow_agent": True,
            "look_for_keys": True,
        }
        if node.key_file:
            connect_kwargs["key_filename"] = node.key_file
        return Connection(
            host=node.host,
            user=node.user,
            port=node.port,
            connect_timeout=self.connect_timeout,
            connect_kwargs=connect_kwargs,
        )

    async def _call(
        self, node: Node, what: str, fn: Callable[[Connection], T], timeout: float
    ) -> T:
        def guarded() -> T:
            conn = self._get_connection(node)
            try:
                return fn(conn)
            except CommandTimedOut as e:
                raise StepTimeout(
                    f"{what} timed out after {timeout:.0f}s", host=node.host
                ) from e
            except _CONNECT_ERRORS as e:
                raise ConnectivityError(
                    f"cannot reach {node}: {e}", host=node.host
                ) from e
            finally:
                conn.close()

        # Headroom for the SSH handshake, which has its own connect_timeout.
        budget = timeout + self.connect_timeout
        try:
            return await asyncio.wait_for(asyncio.to_thread(guarded), timeout=budget)
        except asyncio.TimeoutError as e:
            raise StepTimeout(f"{what} timed out after {budget:.0f}s", host=node.host) from e

    async def run(self, node: Node, command: str, timeout: float) -> CommandResult:
        logger.debug("%s$ %s", node, command)
        result = await self._call(
            node,
            "command",
            lambda conn: conn.run(command, hide=True, warn=True, timeout=timeout),
            timeout,
        )
        if result.failed:
            logger.debug("%s: exit %d: %s", node, result.exited, result.stderr.strip())
        return CommandResult(
            exit_code=result.exited,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    async def upload(
        self, node: Node, local_path: str, remote_path: str, timeout: float
    ) -> None:
        logger.debug("%s: put %s -> %s", node, local_path, remote_path)
        await self._call(
            node, "upload", lambda conn: conn.put(local_path, remote=remote_path), timeout
        )

    async def download(
        self, node: Node, remote_path: str, local_path: str, timeout: float
    ) -> None:
        logger.debug("%s: get %s -> %s", node, remote_path, local_path)
        await self._call(
            node, "download", lambda conn: conn.get(remote_path, local=local_path), timeout
        )
