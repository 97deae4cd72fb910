"""
Local Executor Adapter

Architectural Intent:
- Implements RemoteExecutorPort for hosts declared with connection=local
  (the control machine itself), mirroring Ansible's local connection
- Commands run through the shell with asyncio subprocesses; transfers are
  plain file copies
"""

import asyncio
import logging
import shutil

from shipwright.domain.errors import StepTimeout
from shipwright.domain.ports.remote_executor_port import CommandResult, RemoteExecutorPort
from shipwright.domain.value_objects.node import Node

logger = logging.getLogger(__name__)


class LocalExecutor(RemoteExecutorPort):
    async def run(self, node: Node, command: str, timeout: float) -> CommandResult:
        logger.debug("local$ %s", command)
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise StepTimeout(
                f"command timed out after {timeout:.0f}s", host=node.host
            ) from e
        return CommandResult(
            exit_code=proc.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

    async def _copy(self, node: Node, src: str, dst: str, timeout: float) -> None:
        try:
            await asyncio.wait_for(asyncio.to_thread(shutil.copyfile, src, dst), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise StepTimeout(f"copy timed out after {timeout:.0f}s", host=node.host) from e

    async def upload(
        self, node: Node, local_path: str, remote_path: str, timeout: float
    ) -> None:
        await self._copy(node, local_path, remote_path, timeout)

    async def download(
        self, node: Node, remote_path: str, local_path: str, timeout: float
    ) -> None:
        await self._copy(node, remote_path, local_path, timeout)
