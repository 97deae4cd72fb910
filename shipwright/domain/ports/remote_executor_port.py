"""
Remote Executor Port

Architectural Intent:
- Port interface for executing commands and moving files on fleet hosts
- Every call takes an explicit timeout; nothing blocks indefinitely
- Implemented by adapters (Fabric/SSH, local subprocess)

Error Contract:
- Host unreachable (connect/auth failure) -> ConnectivityError
- Timeout exceeded -> StepTimeout
- A command that ran but exited non-zero is NOT an exception: it comes back
  as a CommandResult with ok == False
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from shipwright.domain.value_objects.node import Node


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class RemoteExecutorPort(ABC):
    """
    Port interface for executing commands on remote infrastructure.
    """

    @abstractmethod
    async def run(self, node: Node, command: str, timeout: float) -> CommandResult:
        """
        Runs a shell command on the node and returns its result.
        """
        pass

    @abstractmethod
    async def upload(
        self, node: Node, local_path: str, remote_path: str, timeout: float
    ) -> None:
        """
        Copies a local file to the node.
        """
        pass

    @abstractmethod
    async def download(
        self, node: Node, remote_path: str, local_path: str, timeout: float
    ) -> None:
        """
        Copies a file from the node to the local filesystem.
        """
        pass
