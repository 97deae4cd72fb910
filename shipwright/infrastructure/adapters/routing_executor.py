"""
Routing Executor

Architectural Intent:
- Single RemoteExecutorPort seen by the application layer; dispatches each
  call to the SSH or local adapter according to the node's connection type
"""

from typing import Optional

from shipwright.domain.ports.remote_executor_port import CommandResult, RemoteExecutorPort
from shipwright.domain.value_objects.node import Node
from shipwright.infrastructure.adapters.fabric_adapter import FabricAdapter
from shipwright.infrastructure.adapters.local_executor import LocalExecutor


class RoutingExecutor(RemoteExecutorPort):
    def __init__(
        self,
        ssh: Optional[RemoteExecutorPort] = None,
        local: Optional[RemoteExecutorPort] = None,
    ) -> None:
        self.ssh = ssh or FabricAdapter()
        self.local = local or LocalExecutor()

    def _for(self, node: Node) -> RemoteExecutorPort:
        return self.local if node.is_local else self.ssh

    async def run(self, node: Node, command: str, timeout: float) -> CommandResult:
        return await self._for(node).run(node, command, timeout)

    async def upload(
        self, node: Node, local_path: str, remote_path: str, timeout: float
    ) -> None:
        await self._for(node).upload(node, local_path, remote_path, timeout)

    async def download(
        self, node: Node, remote_path: str, local_path: str, timeout: float
    ) -> None:
        await self._for(node).download(node, remote_path, local_path, timeout)
